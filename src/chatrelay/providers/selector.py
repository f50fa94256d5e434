"""Choose and construct the connector for a turn."""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

import httpx

from ..config import Settings
from ..errors import ConfigurationError
from .anthropic import AnthropicConnector
from .base import ProviderConnector
from .gemini import GOOGLE_KEY_ENV, GeminiConnector
from .openai import OpenAIConnector

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "openai"

ConnectorFactory = Callable[..., ProviderConnector]

CONNECTORS: dict[str, tuple[ConnectorFactory, str, str]] = {
    "openai": (OpenAIConnector, "openai_api_key", "OPENAI_API_KEY"),
    "anthropic": (AnthropicConnector, "anthropic_api_key", "ANTHROPIC_API_KEY"),
    "gemini": (GeminiConnector, "gemini_api_key", "GEMINI_API_KEY"),
}


def resolve_provider_id(provider_id: Optional[str]) -> str:
    """Normalize ``provider_id``; unknown ids fall back to OpenAI."""

    if not provider_id:
        return DEFAULT_PROVIDER
    normalized = provider_id.strip().lower()
    if normalized not in CONNECTORS:
        logger.warning(
            "Unknown provider '%s'; falling back to %s", provider_id, DEFAULT_PROVIDER
        )
        return DEFAULT_PROVIDER
    return normalized


def select_provider(
    provider_id: Optional[str],
    settings: Settings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ProviderConnector:
    """Validate the provider credential and return a ready connector.

    Raises ``ConfigurationError`` naming the missing environment variable
    before any network traffic happens.
    """

    resolved = resolve_provider_id(provider_id)
    factory, attribute, env_var = CONNECTORS[resolved]
    credential = getattr(settings, attribute)
    if credential is None or not credential.get_secret_value().strip():
        raise ConfigurationError(f"{env_var} not configured")

    if resolved == "gemini":
        os.environ[GOOGLE_KEY_ENV] = credential.get_secret_value()

    return factory(settings, http_client=http_client)


__all__ = ["CONNECTORS", "DEFAULT_PROVIDER", "resolve_provider_id", "select_provider"]
