"""Google Gemini ``streamGenerateContent`` connector."""

from __future__ import annotations

import logging
import os
import uuid
from typing import Any, AsyncGenerator, AsyncIterator, Optional, Sequence

from ..errors import ConfigurationError
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
)

logger = logging.getLogger(__name__)

GOOGLE_KEY_ENV = "GOOGLE_GENERATIVE_AI_API_KEY"

FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content-filter",
    "RECITATION": "content-filter",
    "PROHIBITED_CONTENT": "content-filter",
}

# Keys of pydantic JSON schema that the Gemini function declaration schema
# does not accept.
_UNSUPPORTED_SCHEMA_KEYS = {"title", "additionalProperties", "$defs", "$schema", "default"}


def to_gemini_schema(schema: Any) -> Any:
    """Reduce a pydantic JSON schema to the OpenAPI subset Gemini accepts."""

    if isinstance(schema, list):
        return [to_gemini_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema

    options = schema.get("anyOf")
    if isinstance(options, list):
        concrete = [option for option in options if option.get("type") != "null"]
        if len(concrete) == 1:
            merged = {k: v for k, v in schema.items() if k != "anyOf"}
            merged.update(concrete[0])
            if len(concrete) != len(options):
                merged["nullable"] = True
            return to_gemini_schema(merged)

    reduced: dict[str, Any] = {}
    for key, value in schema.items():
        if key in _UNSUPPORTED_SCHEMA_KEYS:
            continue
        if key == "properties" and isinstance(value, dict):
            # Property names are user data, not schema keywords.
            reduced[key] = {name: to_gemini_schema(prop) for name, prop in value.items()}
        else:
            reduced[key] = to_gemini_schema(value)
    return reduced


def to_gemini_contents(messages: Sequence[Message]) -> list[dict[str, Any]]:
    contents: list[dict[str, Any]] = []

    def _append(role: str, parts: list[dict[str, Any]]) -> None:
        if not parts:
            return
        if contents and contents[-1]["role"] == role:
            contents[-1]["parts"].extend(parts)
        else:
            contents.append({"role": role, "parts": parts})

    for item in normalize_history(messages):
        if isinstance(item, UserTurn):
            _append("user", [{"text": item.text}])
        elif isinstance(item, AssistantTurn):
            parts: list[dict[str, Any]] = []
            if item.text:
                parts.append({"text": item.text})
            for call in item.tool_calls:
                parts.append(
                    {
                        "functionCall": {
                            "id": call.call_id,
                            "name": call.name,
                            "args": call.input,
                        }
                    }
                )
            _append("model", parts)
        elif isinstance(item, ToolResults):
            _append(
                "user",
                [
                    {
                        "functionResponse": {
                            "id": result.call_id,
                            "name": result.name,
                            "response": (
                                {"error": result.error}
                                if result.is_error
                                else {"result": result.result}
                            ),
                        }
                    }
                    for result in item.results
                ],
            )
    return contents


class GeminiConnector(ProviderConnector):
    provider_id = "gemini"
    display_name = "Gemini"

    @property
    def _base_url(self) -> str:
        return str(self._settings.gemini_base_url).rstrip("/")

    @property
    def _headers(self) -> dict[str, str]:
        api_key = os.environ.get(GOOGLE_KEY_ENV)
        if not api_key:
            raise ConfigurationError(f"{GOOGLE_KEY_ENV} not configured")
        return {
            "x-goog-api-key": api_key,
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
        payload: dict[str, Any] = {"contents": to_gemini_contents(messages)}
        system = compose_system_prompt(system_prompt, messages)
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if tools:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        {
                            "name": tool.name,
                            "description": tool.description,
                            "parameters": to_gemini_schema(tool.input_schema),
                        }
                        for tool in tools
                    ]
                }
            ]
        url = f"{self._base_url}/models/{model}:streamGenerateContent?alt=sse"
        return url, self._headers, payload

    async def parse_events(
        self, events: AsyncIterator[ServerSentEvent]
    ) -> AsyncGenerator[ProviderEvent, None]:
        finish_reason: Optional[str] = None
        emitted_calls = False

        async for event in events:
            chunk = self._decode(event)
            if chunk is None:
                continue
            for candidate in chunk.get("candidates") or []:
                content = candidate.get("content") or {}
                for part in content.get("parts") or []:
                    text = part.get("text")
                    if isinstance(text, str) and text:
                        if part.get("thought"):
                            yield ThinkingDelta(text)
                        else:
                            yield TextDelta(text)
                    function_call = part.get("functionCall")
                    if isinstance(function_call, dict) and function_call.get("name"):
                        emitted_calls = True
                        yield ToolCallRequest(
                            call_id=function_call.get("id")
                            or f"call_{uuid.uuid4().hex[:12]}",
                            name=function_call["name"],
                            arguments=parse_tool_arguments(function_call.get("args")),
                        )
                if candidate.get("finishReason"):
                    finish_reason = candidate["finishReason"]

        reason = FINISH_REASONS.get(finish_reason or "STOP", "other")
        if emitted_calls:
            reason = "tool-calls"
        yield ProviderFinish(reason)


__all__ = [
    "GOOGLE_KEY_ENV",
    "GeminiConnector",
    "to_gemini_contents",
    "to_gemini_schema",
]
