"""Shared plumbing for vendor streaming connectors."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator, Optional, Sequence, Union

import httpx
from fastapi import status

from ..config import Settings
from ..errors import UpstreamStreamError
from ..schemas.chat import Message, TextPart, ToolCallPart, ToolResultPart
from ..sse import ServerSentEvent, iter_events
from ..tools.registry import ToolDefinition

logger = logging.getLogger(__name__)

UNRESOLVED_TOOL_CALL_ERROR = "Tool call was not resolved by the client"


@dataclass
class TextDelta:
    text: str


@dataclass
class ThinkingDelta:
    text: str


@dataclass
class ToolCallRequest:
    call_id: str
    name: str
    # Raw JSON text is kept when the vendor sent unparsable arguments so the
    # registry can report it as a validation failure.
    arguments: Union[dict[str, Any], str] = field(default_factory=dict)

    @property
    def input(self) -> dict[str, Any]:
        return self.arguments if isinstance(self.arguments, dict) else {}


@dataclass
class ProviderFinish:
    reason: str = "stop"


ProviderEvent = Union[TextDelta, ThinkingDelta, ToolCallRequest, ProviderFinish]


# Neutral history, flattened so every assistant tool call is immediately
# followed by the results answering it.


@dataclass
class UserTurn:
    text: str


@dataclass
class AssistantTurn:
    text: str = ""
    tool_calls: list[ToolCallPart] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.text and not self.tool_calls


@dataclass
class ToolResults:
    results: list[ToolResultPart] = field(default_factory=list)


HistoryItem = Union[UserTurn, AssistantTurn, ToolResults]


def compose_system_prompt(
    system_prompt: Optional[str], messages: Sequence[Message]
) -> Optional[str]:
    sections = [system_prompt] if system_prompt else []
    sections.extend(
        message.text() for message in messages if message.role == "system"
    )
    sections = [section for section in sections if section and section.strip()]
    return "\n\n".join(sections) if sections else None


def normalize_history(messages: Sequence[Message]) -> list[HistoryItem]:
    """Flatten messages into alternating user, assistant and result items.

    Tool results are moved directly behind the assistant turn that issued the
    call. Calls that never received a result get a synthetic error result,
    since vendors reject histories with dangling tool calls.
    """

    items: list[HistoryItem] = []
    results_by_id: dict[str, ToolResultPart] = {}

    for message in messages:
        if message.role == "system":
            continue
        if message.role == "user":
            for result in message.tool_results():
                results_by_id[result.call_id] = result
            text = message.text()
            if text:
                items.append(UserTurn(text))
            continue

        current = AssistantTurn()
        for part in message.parts:
            if isinstance(part, TextPart):
                if current.tool_calls:
                    items.append(current)
                    current = AssistantTurn()
                current.text += part.content
            elif isinstance(part, ToolCallPart):
                current.tool_calls.append(part)
            elif isinstance(part, ToolResultPart):
                results_by_id[part.call_id] = part
        if not current.is_empty():
            items.append(current)

    flattened: list[HistoryItem] = []
    for item in items:
        flattened.append(item)
        if isinstance(item, AssistantTurn) and item.tool_calls:
            flattened.append(
                ToolResults([_result_for(call, results_by_id) for call in item.tool_calls])
            )
    return flattened


def _result_for(
    call: ToolCallPart, results_by_id: dict[str, ToolResultPart]
) -> ToolResultPart:
    result = results_by_id.get(call.call_id)
    if result is not None:
        return result
    logger.info(
        "Repairing dangling tool call %s (%s) with a synthetic error result",
        call.call_id,
        call.name,
    )
    return ToolResultPart(
        name=call.name, call_id=call.call_id, error=UNRESOLVED_TOOL_CALL_ERROR
    )


def tool_result_text(result: ToolResultPart) -> str:
    if result.error is not None:
        return f"Error: {result.error}"
    if isinstance(result.result, str):
        return result.result
    return json.dumps(result.result, ensure_ascii=False, default=str)


def parse_tool_arguments(raw: Any) -> Union[dict[str, Any], str]:
    if isinstance(raw, dict):
        return raw
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return str(raw)
    return parsed if isinstance(parsed, dict) else str(raw)


def extract_error_detail(raw: bytes, vendor: str) -> Any:
    if not raw:
        return f"{vendor} returned an empty error response."
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        text = raw.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        return error or payload
    return payload


class ProviderConnector(ABC):
    """Stream one model response from a vendor as provider events."""

    provider_id: str = ""
    display_name: str = ""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[float, httpx.AsyncClient] = {}

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client

        key = float(self._settings.request_timeout)
        pool = ProviderConnector._client_pool
        client = pool.get(key)
        if client is not None:
            return client

        async with ProviderConnector._client_lock:
            client = pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(timeout=timeout, limits=limits, http2=True)
                pool[key] = client
        return client

    @classmethod
    async def aclose_shared(cls) -> None:
        async with ProviderConnector._client_lock:
            clients = list(ProviderConnector._client_pool.values())
            ProviderConnector._client_pool.clear()
        for client in clients:
            await client.aclose()

    @abstractmethod
    def build_request(
        self,
        *,
        model: str,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        system_prompt: Optional[str],
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return the url, headers and JSON payload for a streaming call."""

    @abstractmethod
    def parse_events(
        self, events: AsyncIterator[ServerSentEvent]
    ) -> AsyncGenerator[ProviderEvent, None]:
        """Translate vendor SSE events into provider events."""

    async def stream(
        self,
        *,
        model: str,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition] = (),
        system_prompt: Optional[str] = None,
    ) -> AsyncGenerator[ProviderEvent, None]:
        """Stream one model response; closing the generator releases the connection."""

        url, headers, payload = self.build_request(
            model=model,
            messages=messages,
            tools=tools,
            system_prompt=system_prompt,
        )
        client = await self._get_http_client()
        logger.debug("Streaming %s model %s", self.provider_id, model)
        try:
            async with client.stream("POST", url, headers=headers, json=payload) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    detail = extract_error_detail(body, self.display_name)
                    raise UpstreamStreamError(response.status_code, detail)

                events = iter_events(response.aiter_lines())
                async for event in self.parse_events(events):
                    yield event
        except httpx.HTTPError as exc:
            raise UpstreamStreamError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    def _decode(self, event: ServerSentEvent) -> Optional[dict[str, Any]]:
        if not event.data or event.data == "[DONE]":
            return None
        try:
            chunk = json.loads(event.data)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON %s event: %s", self.provider_id, event.data)
            return None
        if isinstance(chunk, dict) and "error" in chunk:
            error = chunk["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise UpstreamStreamError(status.HTTP_502_BAD_GATEWAY, message or error)
        return chunk if isinstance(chunk, dict) else None


__all__ = [
    "AssistantTurn",
    "HistoryItem",
    "ProviderConnector",
    "ProviderEvent",
    "ProviderFinish",
    "TextDelta",
    "ThinkingDelta",
    "ToolCallRequest",
    "ToolResults",
    "UNRESOLVED_TOOL_CALL_ERROR",
    "UserTurn",
    "compose_system_prompt",
    "extract_error_detail",
    "normalize_history",
    "parse_tool_arguments",
    "tool_result_text",
]
