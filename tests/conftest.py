import pathlib
import sys
from typing import Any, AsyncGenerator, Callable

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from chatrelay.config import Settings  # noqa: E402
from chatrelay.providers.base import ProviderEvent  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    """Build settings isolated from the developer's `.env` and credentials."""

    def _factory(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "openai_api_key": "sk-test",
            "anthropic_api_key": None,
            "gemini_api_key": None,
            "conversations_database_path": tmp_path / "conversations.db",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)  # pyright: ignore[reportCallIssue]

    return _factory


class ScriptedConnector:
    """Connector stand-in replaying one scripted event list per model call."""

    provider_id = "scripted"

    def __init__(self, *responses: list[ProviderEvent]) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = 0

    async def stream(self, **kwargs: Any) -> AsyncGenerator[ProviderEvent, None]:
        self.calls.append(kwargs)
        events = self._responses.pop(0) if self._responses else []
        try:
            for event in events:
                if isinstance(event, Exception):
                    raise event
                yield event
        finally:
            self.closed += 1


@pytest.fixture
def scripted_connector() -> type[ScriptedConnector]:
    return ScriptedConnector
