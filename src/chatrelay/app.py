"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .chat.orchestrator import ChatOrchestrator
from .config import PROJECT_ROOT, Settings, get_settings
from .logging_handlers import DateStampedFileHandler, cleanup_old_logs
from .routers.chat import router as chat_router
from .routers.conversations import router as conversations_router

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _configure_logging() -> None:
    """Configure the root logger from LOG_LEVEL, LOG_DIR and LOG_RETENTION_HOURS."""

    load_dotenv(PROJECT_ROOT / ".env")

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handlers: list[logging.Handler] = []
    log_dir = os.getenv("LOG_DIR")
    if log_dir:
        file_handler = DateStampedFileHandler(log_dir)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("chatrelay").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    if log_dir:
        try:
            retention_hours = int(os.getenv("LOG_RETENTION_HOURS", "0"))
        except ValueError:
            retention_hours = 0
        cleanup_old_logs([log_dir], retention_hours, logging.getLogger(__name__))


def create_app(
    settings: Optional[Settings] = None,
    *,
    orchestrator: Optional[ChatOrchestrator] = None,
) -> FastAPI:
    _configure_logging()

    settings = settings or get_settings()
    orchestrator = orchestrator or ChatOrchestrator(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await orchestrator.initialize()
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(orchestrator.shutdown(), timeout=10.0)
            except asyncio.TimeoutError:
                logging.warning("Orchestrator shutdown timed out after 10s")

    app = FastAPI(
        title="chatrelay",
        version="0.1.0",
        description="Streaming multi-provider chat relay with server and client tools.",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.chat_orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(conversations_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {
            "status": "ok",
            "defaultProvider": settings.default_provider,
            "defaultModel": settings.default_model,
        }

    return app


__all__ = ["create_app"]
