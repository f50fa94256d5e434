"""Type definitions for the chat streaming subsystem."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

SseEvent = dict[str, str | None]

FINISH_CLIENT_TOOL_CALL = "client-tool-call"
FINISH_HOP_LIMIT = "hop-limit"


class TurnState(str, Enum):
    IDLE = "idle"
    ADAPTING = "adapting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StreamEvent:
    """One typed event of a turn, serialized as an SSE frame."""

    event: str
    data: dict[str, Any]

    def to_sse(self) -> SseEvent:
        return {"event": self.event, "data": json.dumps(self.data, default=str)}


__all__ = [
    "FINISH_CLIENT_TOOL_CALL",
    "FINISH_HOP_LIMIT",
    "SseEvent",
    "StreamEvent",
    "TurnState",
]
