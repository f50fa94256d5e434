"""Domain exceptions shared by the chat pipeline and the conversation store."""

from __future__ import annotations

from typing import Any

from fastapi import status


class ChatRelayError(Exception):
    """Base class for every error raised by chatrelay."""


class ConfigurationError(ChatRelayError):
    """A provider credential or setting required for a turn is missing."""


class ToolValidationError(ChatRelayError):
    """Model-supplied tool arguments failed the tool's input schema."""

    def __init__(self, tool_name: str, detail: str):
        super().__init__(f"Invalid arguments for tool {tool_name}: {detail}")
        self.tool_name = tool_name
        self.detail = detail


class ToolExecutionError(ChatRelayError):
    """A tool handler raised, timed out, or returned a malformed result."""

    def __init__(self, tool_name: str, detail: str):
        super().__init__(f"Tool {tool_name} failed: {detail}")
        self.tool_name = tool_name
        self.detail = detail


class UpstreamStreamError(ChatRelayError):
    """Wrap transport or API failures when talking to a model provider."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail

    @classmethod
    def stalled(cls, seconds: float) -> "UpstreamStreamError":
        return cls(
            status.HTTP_504_GATEWAY_TIMEOUT,
            f"Provider stream stalled for more than {seconds:g}s",
        )


class NotFoundError(ChatRelayError):
    """A conversation lookup or delete referenced an unknown id."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} not found")
        self.conversation_id = conversation_id


class StorageError(ChatRelayError):
    """Reading or writing a persisted conversation record failed."""


__all__ = [
    "ChatRelayError",
    "ConfigurationError",
    "NotFoundError",
    "StorageError",
    "ToolExecutionError",
    "ToolValidationError",
    "UpstreamStreamError",
]
