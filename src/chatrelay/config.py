"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Provider credentials are optional at startup and validated lazily when a
    # provider is selected for a turn.
    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"),
    )
    anthropic_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("ANTHROPIC_API_KEY", "anthropic_api_key"),
    )
    gemini_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "gemini_api_key"),
    )

    openai_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.openai.com/v1"),
        validation_alias=AliasChoices("OPENAI_BASE_URL", "openai_base_url"),
    )
    anthropic_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.anthropic.com/v1"),
        validation_alias=AliasChoices("ANTHROPIC_BASE_URL", "anthropic_base_url"),
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        validation_alias=AliasChoices("ANTHROPIC_VERSION", "anthropic_version"),
    )
    anthropic_max_tokens: int = Field(
        default=4096,
        ge=1,
        validation_alias=AliasChoices(
            "ANTHROPIC_MAX_TOKENS", "anthropic_max_tokens"
        ),
    )
    gemini_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://generativelanguage.googleapis.com/v1beta"
        ),
        validation_alias=AliasChoices("GEMINI_BASE_URL", "gemini_base_url"),
    )

    default_provider: str = Field(
        default="openai",
        validation_alias=AliasChoices("DEFAULT_PROVIDER", "default_provider"),
    )
    default_model: str = Field(
        default="gpt-4o",
        validation_alias=AliasChoices("DEFAULT_MODEL", "default_model"),
    )
    openai_default_model: str = Field(
        default="gpt-4o",
        validation_alias=AliasChoices("OPENAI_DEFAULT_MODEL", "openai_default_model"),
    )
    anthropic_default_model: str = Field(
        default="claude-sonnet-4-20250514",
        validation_alias=AliasChoices(
            "ANTHROPIC_DEFAULT_MODEL", "anthropic_default_model"
        ),
    )
    gemini_default_model: str = Field(
        default="gemini-2.0-flash",
        validation_alias=AliasChoices("GEMINI_DEFAULT_MODEL", "gemini_default_model"),
    )
    system_prompt: Optional[str] = Field(
        default=(
            "You are a helpful assistant. Call tools when they improve your "
            "answer. Some tools run inside the user's application and can "
            "change what the user sees; only use them when asked."
        ),
        validation_alias=AliasChoices("SYSTEM_PROMPT", "system_prompt"),
    )

    request_timeout: float = Field(
        default=120.0,
        ge=1,
        validation_alias=AliasChoices("REQUEST_TIMEOUT_SECONDS", "request_timeout"),
    )
    stream_idle_timeout: float = Field(
        default=60.0,
        gt=0,
        validation_alias=AliasChoices(
            "STREAM_IDLE_TIMEOUT_SECONDS", "stream_idle_timeout"
        ),
    )
    tool_timeout: float = Field(
        default=5.0,
        gt=0,
        validation_alias=AliasChoices("TOOL_TIMEOUT_SECONDS", "tool_timeout"),
    )
    tool_hop_limit: int = Field(
        default=8,
        ge=1,
        validation_alias=AliasChoices("TOOL_HOP_LIMIT", "tool_hop_limit"),
    )

    conversations_database_path: Path = Field(
        default_factory=lambda: Path("data/conversations.db"),
        validation_alias=AliasChoices(
            "CONVERSATIONS_DATABASE_PATH", "conversations_database_path"
        ),
    )

    def default_model_for(self, provider_id: str) -> str:
        """Return the model used when a request names a provider but no model."""

        if provider_id == self.default_provider:
            return self.default_model
        return {
            "openai": self.openai_default_model,
            "anthropic": self.anthropic_default_model,
            "gemini": self.gemini_default_model,
        }.get(provider_id, self.default_model)

    def resolve_database_path(self) -> Path:
        path = self.conversations_database_path
        if path.is_absolute():
            return path
        return PROJECT_ROOT / path


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
