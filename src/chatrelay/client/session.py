"""Client conversation session with debounced autosave."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncGenerator, Callable, Optional

import httpx

from ..chat.streaming.types import FINISH_CLIENT_TOOL_CALL
from ..schemas.chat import Message, TextPart, ToolResultPart
from ..schemas.conversations import Conversation, ConversationUpsert
from .api import ApiError, ChatApiClient, ChatEvent
from .context import ModelConfig
from .tools import ClientToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_DELAY = 1.0
DEFAULT_CLIENT_TOOL_ROUNDS = 8


class ConversationSession:
    """Own the messages of one conversation and keep them saved.

    Saves are debounced: each change restarts a timer and only the last one
    fires. All writes go through one lock so two saves of the same
    conversation never overlap.
    """

    def __init__(
        self,
        api: ChatApiClient,
        *,
        conversation_id: Optional[str] = None,
        title: Optional[str] = None,
        messages: Optional[list[Message]] = None,
        get_model_config: Callable[[], ModelConfig] = ModelConfig,
        tools: Optional[ClientToolRegistry] = None,
        autosave_delay: float = DEFAULT_AUTOSAVE_DELAY,
        max_client_tool_rounds: int = DEFAULT_CLIENT_TOOL_ROUNDS,
    ):
        self._api = api
        self.conversation_id = conversation_id
        self.title = title
        self.messages: list[Message] = list(messages or [])
        self._get_model_config = get_model_config
        self._tools = tools
        self._autosave_delay = autosave_delay
        self._max_client_tool_rounds = max_client_tool_rounds
        self._save_lock = asyncio.Lock()
        self._timer: Optional[asyncio.Task[None]] = None
        self._inflight: set[asyncio.Task[Any]] = set()
        self._dirty = False
        self._closed = False
        self.save_count = 0

    @classmethod
    def from_conversation(
        cls, api: ChatApiClient, conversation: Conversation, **kwargs: Any
    ) -> "ConversationSession":
        return cls(
            api,
            conversation_id=conversation.id,
            title=conversation.title,
            messages=list(conversation.messages),
            **kwargs,
        )

    # Autosave

    def schedule_save(self) -> None:
        """Mark the conversation dirty and restart the autosave timer."""

        if self._closed:
            return
        self._dirty = True
        timer = self._timer
        if timer is not None and not timer.done() and timer not in self._inflight:
            timer.cancel()
        self._timer = asyncio.create_task(self._save_after_delay())

    async def _save_after_delay(self) -> None:
        await asyncio.sleep(self._autosave_delay)
        task = asyncio.current_task()
        if task is not None:
            self._inflight.add(task)
        try:
            await self.save()
        finally:
            if task is not None:
                self._inflight.discard(task)

    async def save(self) -> Optional[Conversation]:
        """Write the conversation now; failures are logged, not raised."""

        async with self._save_lock:
            if self._closed:
                return None
            if not self.messages:
                self._dirty = False
                return None
            self._dirty = False
            config = self._get_model_config()
            upsert = ConversationUpsert(
                id=self.conversation_id,
                title=self.title,
                messages=list(self.messages),
                model=config.model,
                provider=config.provider,
            )
            try:
                saved = await self._api.save_conversation(upsert)
            except (ApiError, httpx.HTTPError) as exc:
                self._dirty = True
                logger.warning(
                    "Autosave of conversation %s failed: %s",
                    self.conversation_id or "(new)",
                    exc,
                )
                return None
            self.conversation_id = saved.id
            self.title = saved.title
            self.save_count += 1
            return saved

    async def flush(self) -> None:
        """Cancel a pending timer and save immediately if anything changed."""

        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done() and timer not in self._inflight:
            timer.cancel()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        if self._dirty:
            await self.save()

    def discard(self) -> None:
        """Stop saving this conversation, e.g. after it was deleted.

        Pending timers are cancelled and later saves or follow-up turns of a
        running ``send`` become no-ops.
        """

        self._closed = True
        timer = self._timer
        self._timer = None
        if timer is not None and not timer.done() and timer not in self._inflight:
            timer.cancel()
        self._dirty = False

    @property
    def closed(self) -> bool:
        return self._closed

    # Turns

    def _turn_payload(self) -> dict[str, Any]:
        config = self._get_model_config()
        payload: dict[str, Any] = {
            "messages": [message.to_wire() for message in self.messages],
            "model": config.model,
            "provider": config.provider,
        }
        if self.conversation_id:
            payload["conversationId"] = self.conversation_id
        return payload

    async def send(self, text: str) -> AsyncGenerator[ChatEvent, None]:
        """Send a user message and yield every event of the resulting turns.

        When a turn stops for client tools, the tools run locally, a
        ``client-tool-result`` event is yielded per call, and a follow-up turn
        carrying the results is started.
        """

        self.messages.append(Message(role="user", parts=[TextPart(content=text)]))
        self.schedule_save()

        rounds = 0
        while True:
            done: Optional[dict[str, Any]] = None
            async for event in self._api.stream_turn(self._turn_payload()):
                if event.event == "done":
                    done = event.data
                yield event
            if done is None:
                return

            message = Message.model_validate(done.get("message") or {"role": "assistant"})
            self.messages.append(message)
            self.schedule_save()

            if done.get("finishReason") != FINISH_CLIENT_TOOL_CALL or self._tools is None:
                return
            if rounds >= self._max_client_tool_rounds:
                logger.warning("Stopping after %d client tool rounds", rounds)
                return
            rounds += 1

            answered = {result.call_id for result in message.tool_results()}
            results: list[ToolResultPart] = []
            for call in message.tool_calls():
                if call.call_id in answered or not self._tools.handles(call.name):
                    continue
                outcome = await self._tools.execute(call.name, call.input)
                succeeded = bool(outcome.get("success"))
                part = ToolResultPart(
                    name=call.name,
                    call_id=call.call_id,
                    result=outcome if succeeded else None,
                    error=None
                    if succeeded
                    else str(outcome.get("error") or "Client tool failed"),
                )
                results.append(part)
                yield ChatEvent("client-tool-result", part.to_wire())
            if not results or self._closed:
                return

            self.messages.append(Message(role="user", parts=results))
            self.schedule_save()


__all__ = ["ConversationSession"]
