"""Anthropic Messages API streaming connector."""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, AsyncIterator, Optional, Sequence

from ..schemas.chat import Message
from ..sse import ServerSentEvent
from ..tools.registry import ToolDefinition
from .base import (
    AssistantTurn,
    ProviderConnector,
    ProviderEvent,
    ProviderFinish,
    TextDelta,
    ThinkingDelta,
    ToolCallRequest,
    ToolResults,
    UserTurn,
    compose_system_prompt,
    normalize_history,
    parse_tool_arguments,
    tool_result_text,
)

logger = logging.getLogger(__name__)

STOP_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool-calls",
    "refusal": "content-filter",
}


def to_anthropic_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert neutral history into alternating Anthropic messages.

    Tool results become user-side ``tool_result`` blocks; adjacent messages
    of the same role are merged.
    """

    out: list[dict[str, Any]] = []

    def _append(role: str, blocks: list[dict[str, Any]]) -> None:
        if not blocks:
            return
        if out and out[-1]["role"] == role:
            out[-1]["content"].extend(blocks)
        else:
            out.append({"role": role, "content": blocks})

    for item in normalize_history(messages):
        if isinstance(item, UserTurn):
            _append("user", [{"type": "text", "text": item.text}])
        elif isinstance(item, AssistantTurn):
            blocks: list[dict[str, Any]] = []
            if item.text:
                blocks.append({"type": "text", "text": item.text})
            for call in item.tool_calls:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": call.call_id,
                        "name": call.name,
                        "input": call.input,
                    }
                )
            _append("assistant", blocks)
        elif isinstance(item, ToolResults):
            _append(
                "user",
                [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.call_id,
                        "content": tool_result_text(result),
                        "is_error": result.is_error,
                    }
                    for result in item.results
                ],
            )
    return out


class AnthropicConnector(ProviderConnector):
    provider_id = "anthropic"
    display_name = "Anthropic"

    @property
    def _base_url(self) -> str:
        return str(self._settings.anthropic_base_url).rstrip("/")

    @property
    def _headers(self) -> dict[str, str]:
        key = self._settings.anthropic_api_key
        return {
            "x-api-key": key.get_secret_value() if key else "",
            "anthropic-version": self._settings.anthropic_version,
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def build_request(
        self,
        *,
        model: str,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        system_prompt: Optional[str],
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": self._settings.anthropic_max_tokens,
            "stream": True,
            "messages": to_anthropic_messages(messages),
        }
        system = compose_system_prompt(system_prompt, messages)
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.input_schema,
                }
                for tool in tools
            ]
        return f"{self._base_url}/messages", self._headers, payload

    async def parse_events(
        self, events: AsyncIterator[ServerSentEvent]
    ) -> AsyncGenerator[ProviderEvent, None]:
        tool_blocks: dict[int, dict[str, Any]] = {}
        stop_reason: Optional[str] = None
        emitted_calls = False

        async for event in events:
            chunk = self._decode(event)
            if chunk is None:
                continue
            chunk_type = chunk.get("type")

            if chunk_type == "content_block_start":
                block = chunk.get("content_block") or {}
                if block.get("type") == "tool_use":
                    tool_blocks[chunk.get("index", 0)] = {
                        "id": block.get("id"),
                        "name": block.get("name"),
                        "json": "",
                    }
            elif chunk_type == "content_block_delta":
                delta = chunk.get("delta") or {}
                delta_type = delta.get("type")
                if delta_type == "text_delta" and delta.get("text"):
                    yield TextDelta(delta["text"])
                elif delta_type == "thinking_delta" and delta.get("thinking"):
                    yield ThinkingDelta(delta["thinking"])
                elif delta_type == "input_json_delta":
                    block = tool_blocks.get(chunk.get("index", 0))
                    if block is not None:
                        block["json"] += delta.get("partial_json") or ""
            elif chunk_type == "content_block_stop":
                block = tool_blocks.pop(chunk.get("index", 0), None)
                if block is not None and block.get("name"):
                    emitted_calls = True
                    yield ToolCallRequest(
                        call_id=block.get("id") or f"toolu_{chunk.get('index', 0)}",
                        name=block["name"],
                        arguments=parse_tool_arguments(block["json"]),
                    )
            elif chunk_type == "message_delta":
                delta = chunk.get("delta") or {}
                stop_reason = delta.get("stop_reason") or stop_reason
            elif chunk_type == "message_stop":
                break

        reason = STOP_REASONS.get(stop_reason or "end_turn", stop_reason or "stop")
        if emitted_calls:
            reason = "tool-calls"
        yield ProviderFinish(reason)


__all__ = ["AnthropicConnector", "to_anthropic_messages"]
