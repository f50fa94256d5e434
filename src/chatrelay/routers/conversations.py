"""Conversation persistence API routes."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..errors import NotFoundError, StorageError
from ..repository import ConversationRepository
from ..schemas.conversations import (
    Conversation,
    ConversationListItem,
    ConversationUpsert,
    DeleteResponse,
)
from .dependencies import get_conversation_repository

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


def _storage_failure(exc: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
    )


@router.get("", response_model=List[ConversationListItem])
async def list_conversations(
    repository: ConversationRepository = Depends(get_conversation_repository),
) -> List[ConversationListItem]:
    try:
        return await repository.list()
    except StorageError as exc:
        raise _storage_failure(exc) from exc


@router.get("/{conversation_id}", response_model=Conversation)
async def read_conversation(
    conversation_id: str,
    repository: ConversationRepository = Depends(get_conversation_repository),
) -> Conversation:
    try:
        return await repository.get(conversation_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_failure(exc) from exc


@router.post("", response_model=Conversation)
async def save_conversation(
    payload: ConversationUpsert,
    repository: ConversationRepository = Depends(get_conversation_repository),
) -> Conversation:
    try:
        return await repository.upsert(payload)
    except StorageError as exc:
        raise _storage_failure(exc) from exc


@router.delete("/{conversation_id}", response_model=DeleteResponse)
async def delete_conversation(
    conversation_id: str,
    repository: ConversationRepository = Depends(get_conversation_repository),
) -> DeleteResponse:
    try:
        await repository.delete(conversation_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return DeleteResponse(message=f"Conversation {conversation_id} deleted")


__all__ = ["router"]
