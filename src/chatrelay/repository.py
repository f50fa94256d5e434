"""SQLite-backed store for conversation documents."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

import aiosqlite
from pydantic import ValidationError

from .errors import NotFoundError, StorageError
from .schemas.chat import Message, TextPart
from .schemas.conversations import (
    Conversation,
    ConversationListItem,
    ConversationUpsert,
    generate_conversation_id,
)

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"
TITLE_LIMIT = 50


def generate_title(messages: Sequence[Message]) -> str:
    """Derive a title from the first text part of the first user message."""

    for message in messages:
        if message.role != "user":
            continue
        for part in message.parts:
            if isinstance(part, TextPart) and part.content:
                title = part.content[:TITLE_LIMIT]
                if len(part.content) > TITLE_LIMIT:
                    title += "..."
                return title
        break
    return DEFAULT_TITLE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


class ConversationRepository:
    """Persist one JSON document per conversation id.

    Each upsert is a single transaction, so a crash never leaves a partially
    written record. Writes to the same id are serialized in-process.
    """

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None
        self._locks: dict[str, asyncio.Lock] = {}

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure the table exists."""

        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                document TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_conversations_updated_at
                ON conversations(updated_at DESC);
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StorageError("Conversation store is not initialized")
        return self._connection

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def list(self) -> list[ConversationListItem]:
        """Return summaries newest first, skipping unreadable records."""

        connection = self._require_connection()
        try:
            cursor = await connection.execute(
                "SELECT id, document FROM conversations ORDER BY updated_at DESC"
            )
            rows = await cursor.fetchall()
            await cursor.close()
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to list conversations: {exc}") from exc

        items: list[ConversationListItem] = []
        for row in rows:
            try:
                conversation = Conversation.model_validate_json(row["document"])
            except (ValidationError, ValueError) as exc:
                logger.warning("Skipping unreadable conversation %s: %s", row["id"], exc)
                continue
            items.append(ConversationListItem.from_conversation(conversation))

        items.sort(key=lambda item: item.updated_at, reverse=True)
        return items

    async def get(self, conversation_id: str) -> Conversation:
        document = await self._fetch_document(conversation_id)
        if document is None:
            raise NotFoundError(conversation_id)
        try:
            return Conversation.model_validate_json(document)
        except (ValidationError, ValueError) as exc:
            raise StorageError(
                f"Conversation {conversation_id} is unreadable: {exc}"
            ) from exc

    async def upsert(self, partial: ConversationUpsert) -> Conversation:
        """Create or replace a conversation, preserving ``createdAt``."""

        conversation_id = partial.id or generate_conversation_id()
        async with self._lock_for(conversation_id):
            existing = await self._load_existing(conversation_id)
            now = _utcnow()
            if existing is not None and existing.updated_at > now:
                now = existing.updated_at

            conversation = Conversation(
                id=conversation_id,
                title=partial.title or generate_title(partial.messages),
                messages=partial.messages,
                model=partial.model,
                provider=partial.provider,
                created_at=existing.created_at if existing is not None else now,
                updated_at=now,
            )
            await self._write(conversation)
        return conversation

    async def delete(self, conversation_id: str) -> None:
        connection = self._require_connection()
        async with self._lock_for(conversation_id):
            try:
                cursor = await connection.execute(
                    "DELETE FROM conversations WHERE id = ?", (conversation_id,)
                )
                deleted = cursor.rowcount
                await cursor.close()
                await connection.commit()
            except aiosqlite.Error as exc:
                raise StorageError(
                    f"Failed to delete conversation {conversation_id}: {exc}"
                ) from exc
        if not deleted:
            raise NotFoundError(conversation_id)

    async def _fetch_document(self, conversation_id: str) -> Optional[str]:
        connection = self._require_connection()
        try:
            cursor = await connection.execute(
                "SELECT document FROM conversations WHERE id = ? LIMIT 1",
                (conversation_id,),
            )
            row = await cursor.fetchone()
            await cursor.close()
        except aiosqlite.Error as exc:
            raise StorageError(
                f"Failed to read conversation {conversation_id}: {exc}"
            ) from exc
        return None if row is None else row["document"]

    async def _load_existing(self, conversation_id: str) -> Optional[Conversation]:
        document = await self._fetch_document(conversation_id)
        if document is None:
            return None
        try:
            return Conversation.model_validate_json(document)
        except (ValidationError, ValueError) as exc:
            logger.warning(
                "Overwriting unreadable conversation %s: %s", conversation_id, exc
            )
            return None

    async def _write(self, conversation: Conversation) -> None:
        connection = self._require_connection()
        document = conversation.model_dump_json(by_alias=True)
        try:
            await connection.execute(
                """
                INSERT INTO conversations(id, document, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    document = excluded.document,
                    updated_at = excluded.updated_at
                """,
                (
                    conversation.id,
                    document,
                    _format_timestamp(conversation.created_at),
                    _format_timestamp(conversation.updated_at),
                ),
            )
            await connection.commit()
        except aiosqlite.Error as exc:
            await connection.rollback()
            raise StorageError(
                f"Failed to save conversation {conversation.id}: {exc}"
            ) from exc


__all__ = [
    "ConversationRepository",
    "DEFAULT_TITLE",
    "generate_conversation_id",
    "generate_title",
]
