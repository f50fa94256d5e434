"""Declarations of tools that run inside the client runtime.

The server advertises these to the model; the terminal client in
``chatrelay.client`` owns the matching handlers.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import Field

from ..schemas.chat import WireModel
from .registry import ExecutionSite, ToolDefinition

ProviderName = Literal["openai", "anthropic", "gemini"]
NotificationType = Literal["success", "error", "info", "warning"]
ThemeName = Literal["light", "dark", "auto"]


# Conversation navigation


class CreateConversationInput(WireModel):
    first_message: Optional[str] = None


class SwitchConversationInput(WireModel):
    conversation_id: str


class DeleteConversationInput(WireModel):
    conversation_id: str


class RenameConversationInput(WireModel):
    conversation_id: str
    new_title: str = Field(min_length=1)


class ListConversationsInput(WireModel):
    limit: Optional[int] = Field(default=None, ge=1)


# UI control


class ShowNotificationInput(WireModel):
    message: str
    type: NotificationType = "info"
    duration: int = Field(default=4000, ge=0)


class ToggleSidebarInput(WireModel):
    open: Optional[bool] = None


class ChangeModelInput(WireModel):
    provider: ProviderName
    model: str = Field(min_length=1)


class UpdateThemeInput(WireModel):
    theme: ThemeName


# Client-local


class SaveToStorageInput(WireModel):
    key: str = Field(min_length=1)
    value: Any = None


class GetFromStorageInput(WireModel):
    key: str = Field(min_length=1)


class CopyToClipboardInput(WireModel):
    text: str


class GetUserLocationInput(WireModel):
    pass


def _client_tool(
    name: str, description: str, input_model: type[WireModel]
) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=description,
        input_model=input_model,
        execution_site=ExecutionSite.CLIENT,
    )


CLIENT_TOOLS: tuple[ToolDefinition, ...] = (
    _client_tool(
        "create_conversation",
        "Start a new, empty conversation and make it active",
        CreateConversationInput,
    ),
    _client_tool(
        "switch_conversation",
        "Open an existing conversation by id",
        SwitchConversationInput,
    ),
    _client_tool(
        "delete_conversation",
        "Delete a conversation by id",
        DeleteConversationInput,
    ),
    _client_tool(
        "rename_conversation",
        "Change the title of a conversation",
        RenameConversationInput,
    ),
    _client_tool(
        "list_conversations",
        "List saved conversations, newest first",
        ListConversationsInput,
    ),
    _client_tool(
        "show_notification",
        "Show a short notification to the user",
        ShowNotificationInput,
    ),
    _client_tool(
        "toggle_sidebar",
        "Open or close the conversation sidebar; omit 'open' to flip it",
        ToggleSidebarInput,
    ),
    _client_tool(
        "change_model",
        "Switch the provider and model used for the next turns",
        ChangeModelInput,
    ),
    _client_tool(
        "update_ui_theme",
        "Switch the interface theme between light, dark and auto",
        UpdateThemeInput,
    ),
    _client_tool(
        "save_to_storage",
        "Persist a JSON value under a key in the user's local storage",
        SaveToStorageInput,
    ),
    _client_tool(
        "get_from_storage",
        "Read a value previously saved to local storage",
        GetFromStorageInput,
    ),
    _client_tool(
        "copy_to_clipboard",
        "Copy text to the user's clipboard",
        CopyToClipboardInput,
    ),
    _client_tool(
        "get_user_location",
        "Get the user's approximate latitude and longitude",
        GetUserLocationInput,
    ),
)

CLIENT_TOOL_NAMES = frozenset(definition.name for definition in CLIENT_TOOLS)


def client_tool(name: str) -> Optional[ToolDefinition]:
    for definition in CLIENT_TOOLS:
        if definition.name == name:
            return definition
    return None


__all__ = [
    "CLIENT_TOOLS",
    "CLIENT_TOOL_NAMES",
    "ChangeModelInput",
    "CopyToClipboardInput",
    "CreateConversationInput",
    "DeleteConversationInput",
    "GetFromStorageInput",
    "GetUserLocationInput",
    "ListConversationsInput",
    "RenameConversationInput",
    "SaveToStorageInput",
    "ShowNotificationInput",
    "SwitchConversationInput",
    "ToggleSidebarInput",
    "UpdateThemeInput",
    "client_tool",
]
