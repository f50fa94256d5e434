"""Chat orchestrator coordinating provider selection, tools and storage."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Optional

from ..providers.base import ProviderConnector
from ..providers.selector import resolve_provider_id, select_provider
from ..repository import ConversationRepository
from ..schemas.chat import ChatRequest, Message
from ..tools.registry import ToolRegistry
from ..tools.server_tools import build_default_registry
from .streaming.multiplexer import TurnMultiplexer
from .streaming.types import StreamEvent

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

ConnectorSelector = Callable[..., ProviderConnector]


@dataclass
class PreparedTurn:
    """A validated turn whose provider is ready to be streamed."""

    provider_id: str
    model: str
    conversation_id: Optional[str]
    history: list[Message]
    multiplexer: TurnMultiplexer

    @property
    def message_id(self) -> str:
        return self.multiplexer.message_id

    async def events(self) -> AsyncGenerator[StreamEvent, None]:
        stream = self.multiplexer.run(self.history)
        try:
            async for event in stream:
                yield event
        finally:
            await stream.aclose()


class ChatOrchestrator:
    """High-level coordination for chat turns and conversation storage."""

    def __init__(
        self,
        settings: Settings,
        *,
        registry: Optional[ToolRegistry] = None,
        repository: Optional[ConversationRepository] = None,
        selector: ConnectorSelector = select_provider,
    ):
        self._settings = settings
        self._registry = registry or build_default_registry(
            timeout=settings.tool_timeout
        )
        self._repo = repository or ConversationRepository(
            settings.resolve_database_path()
        )
        self._selector = selector
        self._init_lock = asyncio.Lock()
        self._ready = asyncio.Event()

    async def initialize(self) -> None:
        """Open the conversation store once."""

        async with self._init_lock:
            if self._ready.is_set():
                return
            await self._repo.initialize()
            self._ready.set()
            logger.info(
                "Chat orchestrator ready: %d tool(s) declared", len(self._registry)
            )

    async def shutdown(self) -> None:
        """Clean up held resources."""

        try:
            await asyncio.wait_for(ProviderConnector.aclose_shared(), timeout=2.0)
        except (asyncio.TimeoutError, Exception) as exc:
            logger.warning("Error closing provider HTTP clients: %s", exc)

        try:
            await asyncio.wait_for(self._repo.close(), timeout=2.0)
        except (asyncio.TimeoutError, Exception) as exc:
            logger.warning("Error closing repository: %s", exc)

        self._ready.clear()

    @property
    def repository(self) -> ConversationRepository:
        return self._repo

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def describe_tools(self) -> list[dict[str, Any]]:
        return self._registry.describe()

    def prepare_turn(self, request: ChatRequest) -> PreparedTurn:
        """Resolve the provider for ``request``.

        Raises ``ConfigurationError`` before any stream starts when the
        provider credential is missing.
        """

        provider_id = resolve_provider_id(
            request.provider or self._settings.default_provider
        )
        connector = self._selector(provider_id, self._settings)
        model = request.model or self._settings.default_model_for(provider_id)
        multiplexer = TurnMultiplexer(
            connector,
            self._registry,
            model=model,
            system_prompt=self._settings.system_prompt,
            tool_timeout=self._settings.tool_timeout,
            idle_timeout=self._settings.stream_idle_timeout,
            hop_limit=self._settings.tool_hop_limit,
        )
        logger.info(
            "Starting turn %s with %s/%s (conversation %s)",
            multiplexer.message_id,
            provider_id,
            model,
            request.conversation_id or "-",
        )
        return PreparedTurn(
            provider_id=provider_id,
            model=model,
            conversation_id=request.conversation_id,
            history=list(request.messages),
            multiplexer=multiplexer,
        )


__all__ = ["ChatOrchestrator", "PreparedTurn"]
