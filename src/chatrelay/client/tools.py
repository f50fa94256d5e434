"""Handlers for tools executed inside the client runtime."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..errors import ToolValidationError
from ..tools import client_schemas as schemas
from .context import AppContext, ModelConfig, Notification

logger = logging.getLogger(__name__)

ContextAccessor = Callable[[], AppContext]
ClientToolHandler = Callable[[Any], Awaitable[dict[str, Any]]]


class ClientToolRegistry:
    """Capability table mapping client tool names to handlers.

    The context is read through ``get_context`` on every call so a handler
    always sees the current application state. ``execute`` never raises;
    every failure comes back as ``{"success": False, "error": ...}``.
    """

    def __init__(self, get_context: ContextAccessor):
        self._get_context = get_context
        self._handlers: dict[str, ClientToolHandler] = {
            "create_conversation": self._create_conversation,
            "switch_conversation": self._switch_conversation,
            "delete_conversation": self._delete_conversation,
            "rename_conversation": self._rename_conversation,
            "list_conversations": self._list_conversations,
            "show_notification": self._show_notification,
            "toggle_sidebar": self._toggle_sidebar,
            "change_model": self._change_model,
            "update_ui_theme": self._update_ui_theme,
            "save_to_storage": self._save_to_storage,
            "get_from_storage": self._get_from_storage,
            "copy_to_clipboard": self._copy_to_clipboard,
            "get_user_location": self._get_user_location,
        }

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def handles(self, name: str) -> bool:
        return name in self._handlers

    async def execute(
        self, name: str, arguments: Optional[Mapping[str, Any]]
    ) -> dict[str, Any]:
        handler = self._handlers.get(name)
        definition = schemas.client_tool(name)
        if handler is None or definition is None:
            return {"success": False, "error": f"Unknown client tool: {name}"}
        try:
            params = definition.parse_arguments(arguments)
            result = await handler(params)
        except ToolValidationError as exc:
            return {"success": False, "error": str(exc)}
        except Exception as exc:
            logger.warning("Client tool %s failed: %s", name, exc)
            return {"success": False, "error": str(exc) or type(exc).__name__}
        result.setdefault("success", True)
        return result

    # Conversation navigation

    async def _create_conversation(
        self, params: schemas.CreateConversationInput
    ) -> dict[str, Any]:
        conversation_id = await self._get_context().navigator.new_conversation()
        return {"success": True, "conversationId": conversation_id}

    async def _switch_conversation(
        self, params: schemas.SwitchConversationInput
    ) -> dict[str, Any]:
        await self._get_context().navigator.select_conversation(params.conversation_id)
        return {"success": True}

    async def _delete_conversation(
        self, params: schemas.DeleteConversationInput
    ) -> dict[str, Any]:
        await self._get_context().navigator.delete_conversation(params.conversation_id)
        return {"success": True}

    async def _rename_conversation(
        self, params: schemas.RenameConversationInput
    ) -> dict[str, Any]:
        await self._get_context().navigator.rename_conversation(
            params.conversation_id, params.new_title
        )
        return {"success": True}

    async def _list_conversations(
        self, params: schemas.ListConversationsInput
    ) -> dict[str, Any]:
        context = self._get_context()
        conversations = await context.navigator.refresh_conversations()
        if params.limit:
            conversations = conversations[: params.limit]
        return {
            "success": True,
            "conversations": [
                {
                    "id": item.id,
                    "title": item.title,
                    "messageCount": item.message_count,
                    "updatedAt": item.updated_at.isoformat(),
                }
                for item in conversations
            ],
        }

    # UI control

    async def _show_notification(
        self, params: schemas.ShowNotificationInput
    ) -> dict[str, Any]:
        self._get_context().notify(
            Notification(
                message=params.message, type=params.type, duration=params.duration
            )
        )
        return {"success": True, "shown": True}

    async def _toggle_sidebar(
        self, params: schemas.ToggleSidebarInput
    ) -> dict[str, Any]:
        context = self._get_context()
        if params.open is None:
            context.sidebar_open = not context.sidebar_open
        else:
            context.sidebar_open = params.open
        return {"success": True, "isOpen": context.sidebar_open}

    async def _change_model(self, params: schemas.ChangeModelInput) -> dict[str, Any]:
        context = self._get_context()
        context.model_config = ModelConfig(provider=params.provider, model=params.model)
        return {"success": True, "provider": params.provider, "model": params.model}

    async def _update_ui_theme(
        self, params: schemas.UpdateThemeInput
    ) -> dict[str, Any]:
        context = self._get_context()
        if params.theme == "auto":
            context.storage.remove("theme")
        else:
            context.storage.set("theme", params.theme)
        context.theme = params.theme
        return {"success": True, "theme": params.theme}

    # Client-local

    async def _save_to_storage(
        self, params: schemas.SaveToStorageInput
    ) -> dict[str, Any]:
        self._get_context().storage.set(params.key, params.value)
        return {"success": True, "saved": True}

    async def _get_from_storage(
        self, params: schemas.GetFromStorageInput
    ) -> dict[str, Any]:
        found, value = self._get_context().storage.get(params.key)
        return {"success": True, "found": found, "value": value}

    async def _copy_to_clipboard(
        self, params: schemas.CopyToClipboardInput
    ) -> dict[str, Any]:
        self._get_context().clipboard.copy(params.text)
        return {"success": True, "copied": True}

    async def _get_user_location(
        self, params: schemas.GetUserLocationInput
    ) -> dict[str, Any]:
        provider = self._get_context().location_provider
        if provider is None:
            return {
                "success": False,
                "error": "Geolocation is not available in this client",
            }
        latitude, longitude = await provider()
        return {"success": True, "latitude": latitude, "longitude": longitude}


__all__ = ["ClientToolRegistry", "ContextAccessor"]
