"""Incremental assembly of the assistant message for a turn."""

from __future__ import annotations

from typing import Any

from ...schemas.chat import (
    Message,
    MessagePart,
    TextPart,
    ThinkingPart,
    ToolCallPart,
    ToolResultPart,
)


class AssistantMessageBuilder:
    """Accumulate streamed parts in arrival order.

    Consecutive text (or thinking) deltas are folded into a single part so the
    finished message matches what the client rendered.
    """

    __slots__ = ("message_id", "_parts")

    def __init__(self, message_id: str) -> None:
        self.message_id = message_id
        self._parts: list[MessagePart] = []

    def add_text(self, text: str) -> None:
        if not text:
            return
        last = self._parts[-1] if self._parts else None
        if isinstance(last, TextPart):
            last.content += text
        else:
            self._parts.append(TextPart(content=text))

    def add_thinking(self, text: str) -> None:
        if not text:
            return
        last = self._parts[-1] if self._parts else None
        if isinstance(last, ThinkingPart):
            last.content += text
        else:
            self._parts.append(ThinkingPart(content=text))

    def add_tool_call(self, call_id: str, name: str, arguments: dict[str, Any]) -> ToolCallPart:
        part = ToolCallPart(name=name, input=arguments, call_id=call_id)
        self._parts.append(part)
        return part

    def add_tool_result(self, part: ToolResultPart) -> None:
        self._parts.append(part)

    @property
    def has_content(self) -> bool:
        return bool(self._parts)

    def build(self) -> Message:
        return Message(
            id=self.message_id,
            role="assistant",
            parts=[part.model_copy() for part in self._parts],
        )


__all__ = ["AssistantMessageBuilder"]
