from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chatrelay.time_context import create_time_snapshot, resolve_timezone
from chatrelay.tools.server_tools import build_default_registry


@pytest.mark.anyio
async def test_weather_uses_requested_unit() -> None:
    registry = build_default_registry()

    outcome = await registry.execute(
        "getWeather", {"location": "Paris", "unit": "celsius"}, call_id="call_1"
    )

    assert outcome.error is None
    report = outcome.result
    assert report["location"] == "Paris"
    assert report["temperature"] == 22
    assert report["unit"] == "celsius"
    assert report["conditions"] in {"Sunny", "Cloudy", "Rainy", "Partly Cloudy"}
    assert 40 <= report["humidity"] < 80
    assert 5 <= report["windSpeed"] < 25


@pytest.mark.anyio
async def test_weather_requires_location() -> None:
    outcome = await build_default_registry().execute(
        "getWeather", {"location": ""}, call_id="call_1"
    )

    assert outcome.is_error
    assert "location" in outcome.error


@pytest.mark.anyio
async def test_product_search_respects_category_and_limit() -> None:
    outcome = await build_default_registry().execute(
        "searchProducts",
        {"query": "lamp", "category": "Home", "maxResults": 2},
        call_id="call_1",
    )

    assert outcome.error is None
    result = outcome.result
    assert result["query"] == "lamp"
    assert result["totalFound"] == 5
    assert [product["name"] for product in result["results"]] == [
        "lamp Product 1",
        "lamp Product 2",
    ]
    assert {product["category"] for product in result["results"]} == {"Home"}


@pytest.mark.anyio
async def test_current_time_rejects_unknown_zone() -> None:
    outcome = await build_default_registry().execute(
        "getCurrentTime", {"timezone": "Mars/Olympus"}, call_id="call_1"
    )

    assert outcome.is_error
    assert "Unknown timezone" in outcome.error


def test_time_snapshot_payload() -> None:
    now = datetime(2024, 1, 15, 17, 30, 5, tzinfo=timezone.utc)

    payload = create_time_snapshot("America/New_York", now=now).as_payload()

    assert payload["timezone"] == "America/New_York"
    assert payload["datetime"] == "2024-01-15T17:30:05Z"
    assert payload["timestamp"] == int(now.timestamp() * 1000)
    assert (payload["year"], payload["month"], payload["day"]) == (2024, 1, 15)
    assert payload["hour"] == 12
    assert payload["minute"] == 30


def test_resolve_timezone_defaults_to_utc() -> None:
    assert resolve_timezone(None) is timezone.utc
    assert resolve_timezone("UTC") is timezone.utc
