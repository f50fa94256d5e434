"""Client-side application state that client tools read and mutate."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol

from ..schemas.conversations import ConversationListItem

logger = logging.getLogger(__name__)

CACHE_DIR = Path.home() / ".cache" / "chatrelay"
STORAGE_FILE = CACHE_DIR / "storage.json"

LocationProvider = Callable[[], Awaitable[tuple[float, float]]]


class ConversationNavigator(Protocol):
    """Conversation operations the client runtime exposes to its tools."""

    async def new_conversation(self) -> str: ...

    async def select_conversation(self, conversation_id: str) -> None: ...

    async def delete_conversation(self, conversation_id: str) -> None: ...

    async def rename_conversation(self, conversation_id: str, title: str) -> None: ...

    async def refresh_conversations(self) -> list[ConversationListItem]: ...


@dataclass
class ModelConfig:
    provider: str = "openai"
    model: str = "gpt-4o"


@dataclass
class Notification:
    message: str
    type: str = "info"
    duration: int = 4000


class LocalStorage:
    """JSON-file key/value store standing in for browser local storage."""

    def __init__(self, path: Path = STORAGE_FILE):
        self._path = path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self._path} does not hold an object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def get(self, key: str) -> tuple[bool, Any]:
        data = self._read()
        if key not in data:
            return False, None
        return True, data[key]

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = json.loads(json.dumps(value))
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


@dataclass
class Clipboard:
    """In-process clipboard; the terminal has no portable system clipboard."""

    text: Optional[str] = None

    def copy(self, text: str) -> None:
        self.text = text


@dataclass
class AppContext:
    navigator: ConversationNavigator
    storage: LocalStorage = field(default_factory=LocalStorage)
    clipboard: Clipboard = field(default_factory=Clipboard)
    model_config: ModelConfig = field(default_factory=ModelConfig)
    conversations: list[ConversationListItem] = field(default_factory=list)
    active_conversation_id: Optional[str] = None
    sidebar_open: bool = True
    theme: str = "auto"
    notifications: list[Notification] = field(default_factory=list)
    notifier: Optional[Callable[[Notification], None]] = None
    location_provider: Optional[LocationProvider] = None

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)
        if self.notifier is not None:
            self.notifier(notification)


__all__ = [
    "AppContext",
    "Clipboard",
    "ConversationNavigator",
    "LocalStorage",
    "LocationProvider",
    "ModelConfig",
    "Notification",
]
