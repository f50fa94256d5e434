"""HTTP client for the chatrelay server API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional

import httpx

from ..errors import ChatRelayError
from ..schemas.conversations import (
    Conversation,
    ConversationListItem,
    ConversationUpsert,
)
from ..sse import iter_events

logger = logging.getLogger(__name__)


class ApiError(ChatRelayError):
    """The server answered with a non-success status."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


@dataclass
class ChatEvent:
    event: str
    data: dict[str, Any]


def _error_detail(response: httpx.Response, body: bytes) -> str:
    try:
        payload = json.loads(body.decode("utf-8", errors="ignore") or "null")
    except json.JSONDecodeError:
        return body.decode("utf-8", errors="ignore") or response.reason_phrase
    if isinstance(payload, dict):
        detail = payload.get("error") or payload.get("detail")
        if detail:
            return detail if isinstance(detail, str) else json.dumps(detail)
    return response.reason_phrase


class ChatApiClient:
    """Talk to the chat and conversations endpoints."""

    def __init__(
        self,
        server_url: str,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.server_url = server_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.server_url, timeout=httpx.Timeout(timeout, read=None)
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, f"{self.server_url}{path}", **kwargs)
        if response.status_code >= 400:
            raise ApiError(response.status_code, _error_detail(response, response.content))
        return response.json()

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

    async def list_conversations(self) -> list[ConversationListItem]:
        payload = await self._request("GET", "/api/conversations")
        return [ConversationListItem.model_validate(item) for item in payload]

    async def get_conversation(self, conversation_id: str) -> Conversation:
        payload = await self._request("GET", f"/api/conversations/{conversation_id}")
        return Conversation.model_validate(payload)

    async def save_conversation(self, conversation: ConversationUpsert) -> Conversation:
        payload = await self._request(
            "POST", "/api/conversations", json=conversation.to_wire()
        )
        return Conversation.model_validate(payload)

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/api/conversations/{conversation_id}")

    async def stream_turn(
        self, payload: dict[str, Any]
    ) -> AsyncGenerator[ChatEvent, None]:
        """POST a turn and yield its events until the stream closes."""

        async with self._client.stream(
            "POST",
            f"{self.server_url}/api/chat",
            json=payload,
            headers={"Accept": "text/event-stream"},
        ) as response:
            if response.status_code != 200:
                body = await response.aread()
                raise ApiError(response.status_code, _error_detail(response, body))
            async for event in iter_events(response.aiter_lines()):
                try:
                    data = json.loads(event.data) if event.data else {}
                except json.JSONDecodeError:
                    logger.debug("Ignoring non-JSON event %s", event.event)
                    continue
                yield ChatEvent(event.event, data)


__all__ = ["ApiError", "ChatApiClient", "ChatEvent"]
