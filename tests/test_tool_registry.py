from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from chatrelay.tools.client_schemas import CLIENT_TOOL_NAMES, CLIENT_TOOLS
from chatrelay.tools.registry import ExecutionSite, ToolDefinition, ToolRegistry
from chatrelay.tools.server_tools import build_default_registry


class EchoInput(BaseModel):
    text: str


class EchoOutput(BaseModel):
    echoed: str


def _echo(params: EchoInput) -> dict[str, str]:
    return {"echoed": params.text}


def _registry(*definitions: ToolDefinition, timeout: float = 1.0) -> ToolRegistry:
    return ToolRegistry(definitions, default_timeout=timeout)


@pytest.mark.anyio
async def test_execute_validates_and_runs_sync_handler() -> None:
    registry = _registry(
        ToolDefinition("echo", "Echo text", EchoInput, handler=_echo, output_model=EchoOutput)
    )

    outcome = await registry.execute("echo", {"text": "hi"}, call_id="call_1")

    assert outcome.is_error is False
    assert outcome.result == {"echoed": "hi"}
    part = outcome.to_part()
    assert part.call_id == "call_1"
    assert part.to_wire() == {
        "type": "tool-result",
        "name": "echo",
        "callId": "call_1",
        "result": {"echoed": "hi"},
    }


@pytest.mark.anyio
async def test_invalid_arguments_become_error_outcome() -> None:
    registry = _registry(ToolDefinition("echo", "Echo text", EchoInput, handler=_echo))

    outcome = await registry.execute("echo", {"wrong": 1}, call_id="call_1")

    assert outcome.is_error
    assert "Invalid arguments for tool echo" in outcome.error
    assert "text" in outcome.error


@pytest.mark.anyio
async def test_unparsable_argument_text_is_a_validation_error() -> None:
    registry = _registry(ToolDefinition("echo", "Echo text", EchoInput, handler=_echo))

    outcome = await registry.execute("echo", "{not json", call_id="call_1")

    assert outcome.is_error
    assert "Invalid arguments for tool echo" in outcome.error


@pytest.mark.anyio
async def test_unknown_tool_reports_error() -> None:
    outcome = await _registry().execute("missing", {}, call_id="call_9")

    assert outcome.error == "Unknown tool: missing"
    assert outcome.call_id == "call_9"


@pytest.mark.anyio
async def test_handler_exception_is_captured() -> None:
    async def explode(params: EchoInput) -> None:
        raise RuntimeError("boom")

    registry = _registry(ToolDefinition("explode", "Fails", EchoInput, handler=explode))

    outcome = await registry.execute("explode", {"text": "x"}, call_id="call_1")

    assert outcome.error == "Tool explode failed: boom"


@pytest.mark.anyio
async def test_slow_handler_times_out() -> None:
    async def slow(params: EchoInput) -> dict[str, str]:
        await asyncio.sleep(5)
        return {"echoed": params.text}

    registry = _registry(ToolDefinition("slow", "Slow", EchoInput, handler=slow))

    outcome = await registry.execute("slow", {"text": "x"}, call_id="call_1", timeout=0.05)

    assert outcome.error == "Tool slow failed: timed out after 0.05s"


@pytest.mark.anyio
async def test_malformed_result_is_rejected() -> None:
    registry = _registry(
        ToolDefinition(
            "echo",
            "Echo text",
            EchoInput,
            handler=lambda params: {"unexpected": True},
            output_model=EchoOutput,
        )
    )

    outcome = await registry.execute("echo", {"text": "x"}, call_id="call_1")

    assert outcome.is_error
    assert "malformed result" in outcome.error


@pytest.mark.anyio
async def test_client_tools_are_not_executed_on_server() -> None:
    registry = _registry(*CLIENT_TOOLS)

    outcome = await registry.execute("toggle_sidebar", {}, call_id="call_1")

    assert outcome.error == "Tool toggle_sidebar must be executed by the client"


def test_register_rejects_duplicates_and_missing_handlers() -> None:
    definition = ToolDefinition("echo", "Echo text", EchoInput, handler=_echo)
    registry = _registry(definition)

    with pytest.raises(ValueError, match="already registered"):
        registry.register(definition)
    with pytest.raises(ValueError, match="requires a handler"):
        registry.register(ToolDefinition("bare", "No handler", EchoInput))


def test_default_registry_describes_both_sites() -> None:
    registry = build_default_registry(timeout=2.0)
    described = {tool["name"]: tool for tool in registry.describe()}

    assert {"getWeather", "searchProducts", "getCurrentTime"} <= set(described)
    assert CLIENT_TOOL_NAMES <= set(described)
    assert len(CLIENT_TOOL_NAMES) == 13
    assert described["getWeather"]["executionSite"] == "server"
    assert described["change_model"]["executionSite"] == "client"
    assert registry.execution_site("create_conversation") is ExecutionSite.CLIENT
    assert described["getWeather"]["inputSchema"]["required"] == ["location"]
