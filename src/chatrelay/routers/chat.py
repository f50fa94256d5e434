"""Chat streaming API routes."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from ..chat.orchestrator import ChatOrchestrator
from ..errors import ConfigurationError
from ..schemas.chat import ChatRequest
from .dependencies import get_chat_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


@router.post("/chat", response_model=None, status_code=200)
async def stream_chat(
    payload: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> EventSourceResponse | JSONResponse:
    """Stream one chat turn as Server-Sent Events."""

    try:
        turn = orchestrator.prepare_turn(payload)
    except ConfigurationError as exc:
        logger.error("Chat turn rejected: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc)},
        )
    except Exception as exc:
        logger.exception("Failed to prepare chat turn")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(exc) or type(exc).__name__},
        )

    async def event_publisher():
        events = turn.events()
        try:
            async for event in events:
                yield event.to_sse()
        finally:
            await events.aclose()

    return EventSourceResponse(event_publisher())


@router.get("/tools")
async def list_tools(
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
) -> list[dict[str, Any]]:
    """Return every tool declared to the model."""

    return orchestrator.describe_tools()


__all__ = ["router"]
