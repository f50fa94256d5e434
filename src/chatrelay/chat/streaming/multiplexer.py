"""Multiplex provider output and inline tool execution into one event stream."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, Optional, Sequence

from ...errors import ChatRelayError, UpstreamStreamError
from ...providers.base import (
    ProviderConnector,
    ProviderFinish,
    TextDelta,
    ThinkingDelta,
    ToolCallRequest,
)
from ...schemas.chat import Message, new_message_id
from ...tools.registry import ExecutionSite, ToolOutcome, ToolRegistry
from .content_builder import AssistantMessageBuilder
from .types import FINISH_CLIENT_TOOL_CALL, FINISH_HOP_LIMIT, StreamEvent, TurnState

logger = logging.getLogger(__name__)


class TurnMultiplexer:
    """Drive one chat turn and yield typed stream events as they happen.

    The multiplexer pulls one provider event at a time, so the consumer's
    read pace throttles the provider. Server tools run inline and their
    paired ``tool-result`` is yielded before anything else. Client tools are
    announced and end the turn once the current model response finishes.
    """

    def __init__(
        self,
        connector: ProviderConnector,
        registry: ToolRegistry,
        *,
        model: str,
        system_prompt: Optional[str] = None,
        tool_timeout: float = 5.0,
        idle_timeout: float = 60.0,
        hop_limit: int = 8,
        message_id: Optional[str] = None,
    ) -> None:
        self._connector = connector
        self._registry = registry
        self._model = model
        self._system_prompt = system_prompt
        self._tool_timeout = tool_timeout
        self._idle_timeout = idle_timeout
        self._hop_limit = hop_limit
        self.message_id = message_id or new_message_id()
        self.state = TurnState.IDLE

    async def run(
        self, history: Sequence[Message]
    ) -> AsyncGenerator[StreamEvent, None]:
        if self.state is not TurnState.IDLE:
            raise RuntimeError("A multiplexer drives a single turn")

        builder = AssistantMessageBuilder(self.message_id)
        tools = self._registry.definitions()
        follow_ups = 0
        finish_reason = "stop"

        try:
            while True:
                self.state = TurnState.ADAPTING
                conversation = list(history)
                if builder.has_content:
                    conversation.append(builder.build())

                server_calls = 0
                client_calls = 0
                stream = self._connector.stream(
                    model=self._model,
                    messages=conversation,
                    tools=tools,
                    system_prompt=self._system_prompt,
                )
                try:
                    while True:
                        try:
                            async with asyncio.timeout(self._idle_timeout):
                                provider_event = await stream.__anext__()
                        except StopAsyncIteration:
                            break
                        except TimeoutError as exc:
                            raise UpstreamStreamError.stalled(self._idle_timeout) from exc

                        self.state = TurnState.STREAMING
                        if isinstance(provider_event, TextDelta):
                            builder.add_text(provider_event.text)
                            yield self._delta("text-delta", provider_event.text)
                        elif isinstance(provider_event, ThinkingDelta):
                            builder.add_thinking(provider_event.text)
                            yield self._delta("thinking-delta", provider_event.text)
                        elif isinstance(provider_event, ToolCallRequest):
                            site = (
                                self._registry.execution_site(provider_event.name)
                                or ExecutionSite.SERVER
                            )
                            builder.add_tool_call(
                                provider_event.call_id,
                                provider_event.name,
                                provider_event.input,
                            )
                            yield self._tool_call_event(provider_event, site)
                            if site is ExecutionSite.CLIENT:
                                client_calls += 1
                                continue
                            outcome = await self._registry.execute(
                                provider_event.name,
                                provider_event.arguments,
                                call_id=provider_event.call_id,
                                timeout=self._tool_timeout,
                            )
                            builder.add_tool_result(outcome.to_part())
                            yield self._tool_result_event(outcome)
                            server_calls += 1
                        elif isinstance(provider_event, ProviderFinish):
                            finish_reason = provider_event.reason
                finally:
                    await stream.aclose()

                if client_calls:
                    finish_reason = FINISH_CLIENT_TOOL_CALL
                    break
                if not server_calls:
                    break
                if follow_ups >= self._hop_limit:
                    logger.warning(
                        "Tool loop stopped after %d follow-ups for message %s",
                        follow_ups,
                        self.message_id,
                    )
                    finish_reason = FINISH_HOP_LIMIT
                    break
                follow_ups += 1
        except ChatRelayError as exc:
            self.state = TurnState.FAILED
            logger.warning("Turn %s failed: %s", self.message_id, exc)
            yield StreamEvent("error", {"error": str(exc)})
            return
        except Exception as exc:
            self.state = TurnState.FAILED
            logger.exception("Turn %s failed unexpectedly", self.message_id)
            yield StreamEvent("error", {"error": str(exc) or type(exc).__name__})
            return

        self.state = TurnState.COMPLETED
        yield StreamEvent(
            "done",
            {
                "messageId": self.message_id,
                "finishReason": finish_reason,
                "message": builder.build().to_wire(),
            },
        )

    def _delta(self, event: str, text: str) -> StreamEvent:
        return StreamEvent(event, {"messageId": self.message_id, "delta": text})

    def _tool_call_event(
        self, request: ToolCallRequest, site: ExecutionSite
    ) -> StreamEvent:
        return StreamEvent(
            "tool-call",
            {
                "messageId": self.message_id,
                "callId": request.call_id,
                "name": request.name,
                "input": request.input,
                "executionSite": site.value,
            },
        )

    def _tool_result_event(self, outcome: ToolOutcome) -> StreamEvent:
        data = {
            "messageId": self.message_id,
            "callId": outcome.call_id,
            "name": outcome.name,
        }
        if outcome.is_error:
            data["error"] = outcome.error
        else:
            data["result"] = outcome.result
        return StreamEvent("tool-result", data)


__all__ = ["TurnMultiplexer"]
