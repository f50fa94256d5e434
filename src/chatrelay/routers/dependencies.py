"""Request-scoped accessors for services stored on the application state."""

from __future__ import annotations

from fastapi import Request

from ..chat.orchestrator import ChatOrchestrator
from ..repository import ConversationRepository


def get_chat_orchestrator(request: Request) -> ChatOrchestrator:
    orchestrator = getattr(request.app.state, "chat_orchestrator", None)
    if orchestrator is None:
        raise RuntimeError("Chat orchestrator is not configured")
    return orchestrator


def get_conversation_repository(request: Request) -> ConversationRepository:
    return get_chat_orchestrator(request).repository


__all__ = ["get_chat_orchestrator", "get_conversation_repository"]
