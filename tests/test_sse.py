from __future__ import annotations

from typing import AsyncIterator

import pytest

from chatrelay.sse import iter_events, parse_event


async def _lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


def test_parse_event_joins_multiline_data() -> None:
    event = parse_event(["event: delta", "data: first", "data: second", "id: 7"])

    assert event.event == "delta"
    assert event.data == "first\nsecond"
    assert event.event_id == "7"


def test_parse_event_defaults_to_message() -> None:
    event = parse_event(["data:{}"])

    assert event.event == "message"
    assert event.data == "{}"
    assert event.event_id is None


@pytest.mark.anyio
async def test_iter_events_splits_on_blank_lines_and_skips_comments() -> None:
    events = [
        event
        async for event in iter_events(
            _lines(
                ": keep-alive",
                "event: text-delta",
                'data: {"delta": "Hi"}\r',
                "",
                "",
                "data: [DONE]",
            )
        )
    ]

    assert [(event.event, event.data) for event in events] == [
        ("text-delta", '{"delta": "Hi"}'),
        ("message", "[DONE]"),
    ]
