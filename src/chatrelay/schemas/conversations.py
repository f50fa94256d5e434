"""Pydantic models for persisted conversations."""

from __future__ import annotations

import secrets
import time
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .chat import Message, WireModel


def generate_conversation_id() -> str:
    return f"conv_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


class Conversation(WireModel):
    """Durable record of one conversation."""

    id: str
    title: str
    messages: List[Message] = Field(default_factory=list)
    model: Optional[str] = None
    provider: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConversationListItem(WireModel):
    """Summary row returned by the listing endpoint."""

    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationListItem":
        return cls(
            id=conversation.id,
            title=conversation.title,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            message_count=len(conversation.messages),
        )


class ConversationUpsert(WireModel):
    """Partial conversation accepted by the save endpoint."""

    id: Optional[str] = None
    title: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)
    model: Optional[str] = None
    provider: Optional[str] = None


class DeleteResponse(WireModel):
    success: bool = True
    message: str


__all__ = [
    "Conversation",
    "ConversationListItem",
    "ConversationUpsert",
    "DeleteResponse",
    "generate_conversation_id",
]
