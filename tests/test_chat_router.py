from __future__ import annotations

import json
import re
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from chatrelay.app import create_app
from chatrelay.chat.orchestrator import ChatOrchestrator
from chatrelay.providers.base import ProviderFinish, TextDelta, ToolCallRequest
from chatrelay.sse import parse_event


def _events(body: str) -> list[tuple[str, dict[str, Any]]]:
    blocks = [block for block in re.split(r"\r?\n\r?\n", body) if block.strip()]
    parsed = [parse_event(block.splitlines()) for block in blocks]
    return [(event.event, json.loads(event.data)) for event in parsed]


@pytest.fixture
def selected() -> list[tuple[str, Any]]:
    return []


@pytest.fixture
def client(make_settings, scripted_connector, selected) -> Iterator[TestClient]:
    settings = make_settings()

    def fake_selector(provider_id: str, settings: Any) -> Any:
        connector = scripted_connector(
            [
                ToolCallRequest("call_1", "getCurrentTime", {"timezone": "UTC"}),
                ProviderFinish("tool-calls"),
            ],
            [TextDelta("It is noon."), ProviderFinish("stop")],
        )
        selected.append((provider_id, connector))
        return connector

    orchestrator = ChatOrchestrator(settings, selector=fake_selector)
    app = create_app(settings, orchestrator=orchestrator)
    with TestClient(app) as test_client:
        yield test_client


def test_chat_streams_typed_events(client, selected) -> None:
    response = client.post(
        "/api/chat",
        json={"messages": [{"role": "user", "content": "What time is it?"}]},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _events(response.text)
    assert [name for name, _ in events] == [
        "tool-call",
        "tool-result",
        "text-delta",
        "done",
    ]
    assert events[1][1]["callId"] == "call_1"
    assert events[1][1]["result"]["timezone"] == "UTC"
    assert events[-1][1]["finishReason"] == "stop"

    provider_id, connector = selected[0]
    assert provider_id == "openai"
    assert connector.calls[0]["model"] == "gpt-4o"


def test_chat_uses_requested_provider_model(client, selected) -> None:
    response = client.post(
        "/api/chat",
        json={
            "messages": [{"role": "user", "content": "Hi"}],
            "provider": "gemini",
            "conversationId": "conv_1",
        },
    )

    assert response.status_code == 200
    provider_id, connector = selected[0]
    assert provider_id == "gemini"
    assert connector.calls[0]["model"] == "gemini-2.0-flash"


def test_chat_rejects_orphan_tool_result(client) -> None:
    response = client.post(
        "/api/chat",
        json={
            "messages": [
                {
                    "role": "user",
                    "parts": [
                        {"type": "tool-result", "name": "getWeather", "callId": "nope"}
                    ],
                }
            ]
        },
    )

    assert response.status_code == 422


def test_chat_rejects_empty_history(client) -> None:
    response = client.post("/api/chat", json={"messages": []})

    assert response.status_code == 422


def test_missing_provider_key_returns_json_error(make_settings) -> None:
    app = create_app(make_settings())
    with TestClient(app) as test_client:
        response = test_client.post(
            "/api/chat",
            json={
                "messages": [{"role": "user", "content": "Hi"}],
                "provider": "anthropic",
            },
        )

    assert response.status_code == 500
    assert response.json() == {"error": "ANTHROPIC_API_KEY not configured"}


def test_tools_endpoint_lists_declarations(client) -> None:
    response = client.get("/api/tools")

    assert response.status_code == 200
    sites = {tool["name"]: tool["executionSite"] for tool in response.json()}
    assert sites["getWeather"] == "server"
    assert sites["copy_to_clipboard"] == "client"


def test_health_reports_defaults(client) -> None:
    response = client.get("/health")

    assert response.json() == {
        "status": "ok",
        "defaultProvider": "openai",
        "defaultModel": "gpt-4o",
    }


def test_conversation_crud(client) -> None:
    created = client.post(
        "/api/conversations",
        json={
            "messages": [{"role": "user", "content": "Plan a trip to Rome"}],
            "model": "gpt-4o",
            "provider": "openai",
        },
    )
    assert created.status_code == 200
    record = created.json()
    assert record["title"] == "Plan a trip to Rome"
    assert record["createdAt"] == record["updatedAt"]

    listing = client.get("/api/conversations").json()
    assert [item["id"] for item in listing] == [record["id"]]
    assert listing[0]["messageCount"] == 1

    renamed = client.post(
        "/api/conversations",
        json={"id": record["id"], "title": "Rome", "messages": record["messages"]},
    ).json()
    assert renamed["title"] == "Rome"
    assert renamed["createdAt"] == record["createdAt"]

    fetched = client.get(f"/api/conversations/{record['id']}")
    assert fetched.json()["messages"][0]["parts"][0]["content"] == "Plan a trip to Rome"

    deleted = client.delete(f"/api/conversations/{record['id']}")
    assert deleted.json() == {
        "success": True,
        "message": f"Conversation {record['id']} deleted",
    }
    assert client.get(f"/api/conversations/{record['id']}").status_code == 404
    assert client.delete(f"/api/conversations/{record['id']}").status_code == 404


def test_unexpected_setup_failure_returns_json_error(make_settings) -> None:
    def broken_selector(provider_id: str, settings: Any) -> Any:
        raise RuntimeError("connector pool exhausted")

    settings = make_settings()
    orchestrator = ChatOrchestrator(settings, selector=broken_selector)
    app = create_app(settings, orchestrator=orchestrator)
    with TestClient(app) as test_client:
        response = test_client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "Hi"}]},
        )

    assert response.status_code == 500
    assert response.json() == {"error": "connector pool exhausted"}
