"""OpenAI chat completions streaming connector."""

from __future__ import annotations

import json
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

FINISH_REASONS = {
    "stop": "stop",
    "length": "length",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "content_filter": "content-filter",
}


def merge_tool_calls(accumulator: list[dict[str, Any]], deltas: Any) -> None:
    """Fold streamed tool call fragments into ``accumulator`` by index."""

    for delta in deltas or []:
        if not isinstance(delta, dict):
            continue

        index = delta.get("index")
        delta_id = delta.get("id")
        if not isinstance(index, int) or index < 0:
            index = None
            if isinstance(delta_id, str):
                for existing_index, existing in enumerate(accumulator):
                    if existing.get("id") == delta_id:
                        index = existing_index
                        break
            if index is None:
                index = len(accumulator)

        while len(accumulator) <= index:
            accumulator.append({"id": None, "name": None, "arguments": ""})

        entry = accumulator[index]
        if delta_id:
            entry["id"] = delta_id

        function_delta = delta.get("function") or {}
        if function_name := function_delta.get("name"):
            entry["name"] = function_name
        if arguments_fragment := function_delta.get("arguments"):
            entry["arguments"] += arguments_fragment


def finalize_tool_calls(tool_calls: list[dict[str, Any]]) -> list[ToolCallRequest]:
    finalized: list[ToolCallRequest] = []
    for index, call in enumerate(tool_calls):
        name = call.get("name")
        if not (isinstance(name, str) and name.strip()):
            continue
        finalized.append(
            ToolCallRequest(
                call_id=call.get("id") or f"call_{index}",
                name=name,
                arguments=parse_tool_arguments(call.get("arguments")),
            )
        )
    return finalized


def to_openai_messages(
    messages: Sequence[Message], system_prompt: Optional[str]
) -> list[dict[str, Any]]:
    payload: list[dict[str, Any]] = []
    system = compose_system_prompt(system_prompt, messages)
    if system:
        payload.append({"role": "system", "content": system})

    for item in normalize_history(messages):
        if isinstance(item, UserTurn):
            payload.append({"role": "user", "content": item.text})
        elif isinstance(item, AssistantTurn):
            entry: dict[str, Any] = {"role": "assistant", "content": item.text or None}
            if item.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": call.call_id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": _dumps(call.input),
                        },
                    }
                    for call in item.tool_calls
                ]
            payload.append(entry)
        elif isinstance(item, ToolResults):
            for result in item.results:
                payload.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.call_id,
                        "content": tool_result_text(result),
                    }
                )
    return payload


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


class OpenAIConnector(ProviderConnector):
    provider_id = "openai"
    display_name = "OpenAI"

    @property
    def _base_url(self) -> str:
        return str(self._settings.openai_base_url).rstrip("/")

    @property
    def _headers(self) -> dict[str, str]:
        key = self._settings.openai_api_key
        return {
            "Authorization": f"Bearer {key.get_secret_value() if key else ''}",
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
            "stream": True,
            "messages": to_openai_messages(messages, system_prompt),
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.input_schema,
                    },
                }
                for tool in tools
            ]
        return f"{self._base_url}/chat/completions", self._headers, payload

    async def parse_events(
        self, events: AsyncIterator[ServerSentEvent]
    ) -> AsyncGenerator[ProviderEvent, None]:
        pending_calls: list[dict[str, Any]] = []
        finish_reason: Optional[str] = None

        async for event in events:
            if event.data == "[DONE]":
                break
            chunk = self._decode(event)
            if chunk is None:
                continue
            for choice in chunk.get("choices") or []:
                delta = choice.get("delta") or {}
                reasoning = delta.get("reasoning_content") or delta.get("reasoning")
                if isinstance(reasoning, str) and reasoning:
                    yield ThinkingDelta(reasoning)
                content = delta.get("content")
                if isinstance(content, str) and content:
                    yield TextDelta(content)
                if delta.get("tool_calls"):
                    merge_tool_calls(pending_calls, delta["tool_calls"])
                if choice.get("finish_reason"):
                    finish_reason = choice["finish_reason"]

        calls = finalize_tool_calls(pending_calls)
        for call in calls:
            yield call
        reason = FINISH_REASONS.get(finish_reason or "stop", finish_reason or "stop")
        if calls:
            reason = "tool-calls"
        yield ProviderFinish(reason)


__all__ = [
    "OpenAIConnector",
    "finalize_tool_calls",
    "merge_tool_calls",
    "to_openai_messages",
]
