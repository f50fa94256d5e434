"""Pydantic models for chat messages, parts and turn requests."""

from __future__ import annotations

import uuid
from typing import Annotated, Any, Iterable, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:16]}"


class WireModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _call_id_field() -> Any:
    return Field(
        validation_alias=AliasChoices("callId", "toolCallId", "call_id"),
        serialization_alias="callId",
    )


class TextPart(WireModel):
    type: Literal["text"] = "text"
    content: str = ""


class ThinkingPart(WireModel):
    type: Literal["thinking"] = "thinking"
    content: str = ""


class ToolCallPart(WireModel):
    type: Literal["tool-call"] = "tool-call"
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    call_id: str = _call_id_field()


class ToolResultPart(WireModel):
    type: Literal["tool-result"] = "tool-result"
    name: str
    call_id: str = _call_id_field()
    result: Any = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


MessagePart = Annotated[
    Union[TextPart, ThinkingPart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


class Message(WireModel):
    """A single conversation message made of ordered parts."""

    id: str = Field(default_factory=new_message_id)
    role: Literal["user", "assistant", "system"]
    parts: List[MessagePart] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_plain_content(cls, data: Any) -> Any:
        # Plain ``content`` strings are accepted as a single text part.
        if isinstance(data, dict) and "parts" not in data and "content" in data:
            data = dict(data)
            content = data.pop("content")
            data["parts"] = [{"type": "text", "content": content or ""}]
        return data

    def text(self) -> str:
        return "".join(
            part.content for part in self.parts if isinstance(part, TextPart)
        )

    def tool_calls(self) -> list[ToolCallPart]:
        return [part for part in self.parts if isinstance(part, ToolCallPart)]

    def tool_results(self) -> list[ToolResultPart]:
        return [part for part in self.parts if isinstance(part, ToolResultPart)]


def validate_tool_pairing(messages: Iterable[Message]) -> None:
    """Raise ``ValueError`` when a tool-result has no earlier tool-call."""

    seen: set[str] = set()
    for message in messages:
        for part in message.parts:
            if isinstance(part, ToolCallPart):
                seen.add(part.call_id)
            elif isinstance(part, ToolResultPart) and part.call_id not in seen:
                raise ValueError(
                    f"tool-result for call {part.call_id!r} does not reference "
                    "an earlier tool-call"
                )


class ChatRequest(WireModel):
    """Incoming chat turn payload."""

    messages: List[Message] = Field(min_length=1)
    conversation_id: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None

    @model_validator(mode="after")
    def _check_tool_pairing(self) -> "ChatRequest":
        validate_tool_pairing(self.messages)
        return self


__all__ = [
    "ChatRequest",
    "Message",
    "MessagePart",
    "TextPart",
    "ThinkingPart",
    "ToolCallPart",
    "ToolResultPart",
    "WireModel",
    "new_message_id",
    "validate_tool_pairing",
]
