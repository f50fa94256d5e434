from __future__ import annotations

import asyncio
from typing import Any, AsyncGenerator

import pytest

from chatrelay.chat.streaming.multiplexer import TurnMultiplexer
from chatrelay.chat.streaming.types import TurnState
from chatrelay.errors import UpstreamStreamError
from chatrelay.providers.base import (
    ProviderFinish,
    TextDelta,
    ThinkingDelta,
    ToolCallRequest,
)
from chatrelay.schemas.chat import Message, ToolCallPart, ToolResultPart
from chatrelay.tools.server_tools import build_default_registry

HISTORY = [Message(role="user", content="Hello")]


def _multiplexer(connector: Any, **kwargs: Any) -> TurnMultiplexer:
    options: dict[str, Any] = {"model": "test-model", "message_id": "msg_test"}
    options.update(kwargs)
    return TurnMultiplexer(connector, build_default_registry(timeout=1.0), **options)


async def _run(multiplexer: TurnMultiplexer) -> list[tuple[str, dict[str, Any]]]:
    return [(event.event, event.data) async for event in multiplexer.run(HISTORY)]


@pytest.mark.anyio
async def test_text_only_turn_completes(scripted_connector) -> None:
    connector = scripted_connector(
        [ThinkingDelta("Let me"), TextDelta("Hi "), TextDelta("there"), ProviderFinish("stop")]
    )
    multiplexer = _multiplexer(connector)

    events = await _run(multiplexer)

    assert [name for name, _ in events] == [
        "thinking-delta",
        "text-delta",
        "text-delta",
        "done",
    ]
    assert events[1][1] == {"messageId": "msg_test", "delta": "Hi "}
    done = events[-1][1]
    assert done["finishReason"] == "stop"
    assert done["message"]["parts"] == [
        {"type": "thinking", "content": "Let me"},
        {"type": "text", "content": "Hi there"},
    ]
    assert multiplexer.state is TurnState.COMPLETED
    assert connector.calls[0]["model"] == "test-model"


@pytest.mark.anyio
async def test_server_tool_result_follows_its_call(scripted_connector) -> None:
    connector = scripted_connector(
        [
            ToolCallRequest("call_1", "getWeather", {"location": "Oslo"}),
            ProviderFinish("tool-calls"),
        ],
        [TextDelta("It is mild."), ProviderFinish("stop")],
    )
    multiplexer = _multiplexer(connector)

    events = await _run(multiplexer)

    names = [name for name, _ in events]
    assert names == ["tool-call", "tool-result", "text-delta", "done"]
    call, result = events[0][1], events[1][1]
    assert call["executionSite"] == "server"
    assert call["input"] == {"location": "Oslo"}
    assert result["callId"] == call["callId"] == "call_1"
    assert result["result"]["location"] == "Oslo"

    # The follow-up call sees the call and its result.
    follow_up = connector.calls[1]["messages"][-1]
    assert isinstance(follow_up.parts[0], ToolCallPart)
    assert isinstance(follow_up.parts[1], ToolResultPart)

    parts = events[-1][1]["message"]["parts"]
    assert [part["type"] for part in parts] == ["tool-call", "tool-result", "text"]


@pytest.mark.anyio
async def test_invalid_tool_arguments_produce_error_result(scripted_connector) -> None:
    connector = scripted_connector(
        [ToolCallRequest("call_1", "getWeather", {}), ProviderFinish("tool-calls")],
        [TextDelta("Sorry."), ProviderFinish("stop")],
    )

    events = await _run(_multiplexer(connector))

    result = events[1][1]
    assert events[1][0] == "tool-result"
    assert "Invalid arguments for tool getWeather" in result["error"]
    assert "result" not in result
    assert events[-1][0] == "done"


@pytest.mark.anyio
async def test_client_tool_suspends_turn(scripted_connector) -> None:
    connector = scripted_connector(
        [
            TextDelta("Switching theme."),
            ToolCallRequest("call_7", "update_ui_theme", {"theme": "dark"}),
            ProviderFinish("tool-calls"),
        ]
    )

    events = await _run(_multiplexer(connector))

    assert [name for name, _ in events] == ["text-delta", "tool-call", "done"]
    assert events[1][1]["executionSite"] == "client"
    assert events[-1][1]["finishReason"] == "client-tool-call"
    assert len(connector.calls) == 1


@pytest.mark.anyio
async def test_each_result_directly_follows_its_call(scripted_connector) -> None:
    connector = scripted_connector(
        [
            ToolCallRequest("call_a", "getWeather", {"location": "Oslo"}),
            ToolCallRequest("call_b", "getCurrentTime", {"timezone": "UTC"}),
            ToolCallRequest("call_c", "toggle_sidebar", {}),
            ProviderFinish("tool-calls"),
        ],
        [TextDelta("never requested"), ProviderFinish("stop")],
    )

    events = await _run(_multiplexer(connector))

    assert [(name, data.get("callId")) for name, data in events] == [
        ("tool-call", "call_a"),
        ("tool-result", "call_a"),
        ("tool-call", "call_b"),
        ("tool-result", "call_b"),
        ("tool-call", "call_c"),
        ("done", None),
    ]
    assert events[4][1]["executionSite"] == "client"
    assert events[-1][1]["finishReason"] == "client-tool-call"
    assert len(connector.calls) == 1


@pytest.mark.anyio
async def test_upstream_error_ends_with_error_event(scripted_connector) -> None:
    connector = scripted_connector(
        [TextDelta("partial"), UpstreamStreamError(401, "Invalid API key")]
    )
    multiplexer = _multiplexer(connector)

    events = await _run(multiplexer)

    assert events == [
        ("text-delta", {"messageId": "msg_test", "delta": "partial"}),
        ("error", {"error": "Invalid API key"}),
    ]
    assert multiplexer.state is TurnState.FAILED
    assert connector.closed == 1


class StallingConnector:
    def __init__(self) -> None:
        self.closed = False

    async def stream(self, **kwargs: Any) -> AsyncGenerator[Any, None]:
        try:
            yield TextDelta("hello")
            await asyncio.sleep(10)
            yield TextDelta("never")
        finally:
            self.closed = True


@pytest.mark.anyio
async def test_stalled_stream_is_reported() -> None:
    connector = StallingConnector()

    events = await _run(_multiplexer(connector, idle_timeout=0.05))

    assert [name for name, _ in events] == ["text-delta", "error"]
    assert "stalled" in events[-1][1]["error"]
    assert connector.closed is True


@pytest.mark.anyio
async def test_hop_limit_stops_tool_loop(scripted_connector) -> None:
    def tool_round(index: int) -> list[Any]:
        return [
            ToolCallRequest(f"call_{index}", "getCurrentTime", {}),
            ProviderFinish("tool-calls"),
        ]

    connector = scripted_connector(*(tool_round(index) for index in range(5)))

    events = await _run(_multiplexer(connector, hop_limit=2))

    assert len(connector.calls) == 3
    assert events[-1][0] == "done"
    assert events[-1][1]["finishReason"] == "hop-limit"
    assert [name for name, _ in events].count("tool-result") == 3


@pytest.mark.anyio
async def test_closing_consumer_closes_provider_stream() -> None:
    connector = StallingConnector()
    stream = _multiplexer(connector).run(HISTORY)

    first = await stream.__anext__()
    await stream.aclose()

    assert first.event == "text-delta"
    assert connector.closed is True


@pytest.mark.anyio
async def test_multiplexer_runs_once(scripted_connector) -> None:
    multiplexer = _multiplexer(scripted_connector([ProviderFinish()]))
    await _run(multiplexer)

    with pytest.raises(RuntimeError):
        await _run(multiplexer)
