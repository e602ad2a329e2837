"""
Constants and configuration for Agent Relay.
Centralizes all magic numbers and configuration values.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import os
import threading

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
)

# ============================================================================
# Project Paths
# ============================================================================

#: Project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

# ============================================================================
# Bot Identity
# ============================================================================

#: Namespace prefix for bot user ids derived from channel ids
BOT_USER_ID_PREFIX = "ai-bot-"

#: Characters stripped from channel ids before building a bot user id
BOT_USER_ID_DISALLOWED_CHARS = "!"

#: Default channel type when a start request omits it
DEFAULT_CHANNEL_TYPE = "messaging"

# ============================================================================
# Chat Transport Events
# ============================================================================

EVENT_MESSAGE_NEW = "message.new"
EVENT_AI_INDICATOR_UPDATE = "ai_indicator.update"
EVENT_AI_INDICATOR_CLEAR = "ai_indicator.clear"
EVENT_AI_INDICATOR_STOP = "ai_indicator.stop"

#: Indicator states shown in-channel while a response is produced
AI_STATE_THINKING = "AI_STATE_THINKING"
AI_STATE_GENERATING = "AI_STATE_GENERATING"
AI_STATE_EXTERNAL_SOURCES = "AI_STATE_EXTERNAL_SOURCES"
AI_STATE_ERROR = "AI_STATE_ERROR"

# ============================================================================
# AI Provider
# ============================================================================

#: Provider stream event names consumed by the response handler
RUN_CREATED = "thread.run.created"
RUN_STEP_CREATED = "thread.run.step.created"
RUN_REQUIRES_ACTION = "thread.run.requires_action"
RUN_COMPLETED = "thread.run.completed"
RUN_FAILED = "thread.run.failed"
RUN_CANCELLED = "thread.run.cancelled"
RUN_EXPIRED = "thread.run.expired"
RUN_INCOMPLETE = "thread.run.incomplete"
MESSAGE_DELTA = "thread.message.delta"
MESSAGE_COMPLETED = "thread.message.completed"
STREAM_ERROR = "error"

#: Name of the function tool exposed to the model
WEB_SEARCH_TOOL_NAME = "web_search"

#: Fallback text when a provider error carries no message
DEFAULT_GENERATION_ERROR = "Error generating the message"

#: Run statuses after which the thread accepts new messages
RUN_TERMINAL_STATUSES = frozenset({"cancelled", "completed", "failed", "expired", "incomplete"})

#: Polling used while waiting for a superseded run to settle
RUN_SETTLE_POLL_INTERVAL = 0.5
RUN_SETTLE_MAX_ATTEMPTS = 20

# ============================================================================
# Web Search
# ============================================================================

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
WEB_SEARCH_MAX_RESULTS = 5
WEB_SEARCH_DEPTH = "advanced"

# ============================================================================
# Logging
# ============================================================================

LOG_MAX_SIZE = 10 * 1024 * 1024  # 10MB
LOG_BACKUP_COUNT_AGENTS = 5
LOG_BACKUP_COUNT_ERRORS = 3
LOG_PREVIEW_LENGTH = 80

# ============================================================================
# Environment Configuration with Pydantic Validation
# ============================================================================

#: Valid environment names for configuration loading
Environment = Literal["development", "production", "test"]

#: Backend source directory for .env file resolution
_BACKEND_DIR = Path(__file__).parent.parent


def _get_env_files() -> list[Path]:
    """Determine which .env files to load based on APP_ENV.

    Load order (later files override earlier - pydantic-settings last-wins):
    1. .env (base defaults) - lowest priority
    2. .env.{environment} (environment-specific overrides)
    3. .env.local (local developer overrides, gitignored) - highest priority

    Returns:
        List of Path objects for env files that exist.
    """
    env_name = os.getenv("APP_ENV", "development").lower()
    if env_name not in ("development", "production", "test"):
        env_name = "development"

    candidates = [
        _BACKEND_DIR / ".env",
        _BACKEND_DIR / f".env.{env_name}",
        _BACKEND_DIR / ".env.local",
    ]
    return [p for p in candidates if p.exists()]


def _reload_dotenv_into_environ() -> None:
    """Load the dotenv chain into os.environ so environment-specific files win.

    Must be called BEFORE Settings() instantiation.
    """
    from dotenv import load_dotenv

    for env_file in _get_env_files():
        load_dotenv(env_file, override=True)


class Settings(BaseSettings):
    """Environment settings with validation and environment-specific file support.

    Configuration priority (highest to lowest):
    1. Values passed to Settings() constructor
    2. Environment variables (standard Docker/K8s behavior)
    3. .env.local > .env.{APP_ENV} > .env (dotenv files, last wins)

    Validates at startup to fail fast on configuration errors. The chat
    transport key/secret and the OpenAI key are required; the Tavily key is
    optional and only degrades the web search tool when absent.
    """

    # Environment identification
    app_env: Environment = Field(default="development", description="Application environment")

    # Debug and logging
    debug: bool = Field(default=False, description="Enable debug logging")
    enable_content_logging: bool = Field(
        default=False, description="Include redacted message previews in turn logs"
    )

    # Chat transport (required)
    stream_api_key: str | None = Field(default=None, description="Chat transport API key")
    stream_api_secret: str | None = Field(default=None, description="Chat transport API secret")
    verify_webhook_signatures: bool = Field(
        default=True, description="Reject inbound webhooks whose X-Signature does not match"
    )

    # AI provider
    openai_api_key: str | None = Field(default=None, description="OpenAI API key for authentication")
    openai_model: str = Field(default="gpt-4o", description="Model used by agent assistants")
    openai_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")

    # Web search (optional)
    tavily_api_key: str | None = Field(default=None, description="Tavily API key for the web search tool")
    tavily_search_url: str = Field(default=TAVILY_SEARCH_URL, description="Tavily search endpoint")
    web_search_timeout: float = Field(default=30.0, description="Web search request timeout (seconds)")

    # API server
    host: str = Field(default="0.0.0.0", description="Listen host")
    port: int = Field(default=3000, description="Listen port")
    app_version: str = Field(default="1.0.0", description="Application version")
    cors_allow_origins: str = Field(default="*", description="Comma separated CORS origins")

    # Agents
    agent_platform: str = Field(default="openai", description="Agent backend: 'openai' or 'writing_assistant'")
    bot_display_name: str = Field(default="AI Writing Assistant", description="Display name of bot users")
    agent_inactivity_threshold: float = Field(
        default=480 * 60.0,
        description="Dispose agents idle longer than this (seconds, default 8 hours)",
    )
    reaper_interval: float = Field(default=5.0, gt=0, description="Inactivity sweep period (seconds)")
    stream_flush_interval: float = Field(
        default=1.0, ge=0, description="Minimum time between partial message updates (seconds)"
    )

    # Token issuance
    token_ttl_seconds: int = Field(default=3600, gt=0, description="Lifetime of issued user tokens (seconds)")

    # HTTP client timeouts (provider streaming)
    http_read_timeout: float = Field(default=600.0, description="HTTP read timeout for streaming (seconds)")

    # Graceful shutdown configuration
    shutdown_timeout: float = Field(
        default=30.0,
        description="Maximum time to wait for agents to dispose during shutdown (seconds)",
    )

    # Hot-reload support (development only)
    config_hot_reload: bool = Field(
        default=False,
        description="Enable configuration hot-reloading (development only, has performance cost)",
    )

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings source priority for environment-specific config.

        Priority (highest to lowest):
        1. init_settings - Values passed to Settings() constructor
        2. env_settings - Environment variables
        3. dotenv files - .env.local > .env.{APP_ENV} > .env (last-wins in list)
        """
        dotenv_source = DotEnvSettingsSource(
            settings_cls,
            env_file=_get_env_files(),
            env_file_encoding="utf-8",
        )
        return (init_settings, env_settings, dotenv_source)

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | None) -> str:
        """Validate and normalize APP_ENV value."""
        if v is None:
            return "development"
        normalized = str(v).lower()
        if normalized not in ("development", "production", "test"):
            raise ValueError(f"app_env must be 'development', 'production', or 'test', got '{v}'")
        return normalized

    @field_validator("agent_platform")
    @classmethod
    def validate_agent_platform(cls, v: str) -> str:
        """Validate agent platform selection."""
        value = v.lower()
        if value not in ("openai", "writing_assistant"):
            raise ValueError("agent_platform must be 'openai' or 'writing_assistant'")
        return value

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_api_key(cls, v: str | None) -> str | None:
        """Basic validation of OpenAI API key format."""
        if v is not None and (not v or len(v) < 10):
            raise ValueError("Invalid OpenAI API key format")
        return v

    @model_validator(mode="after")
    def validate_required_credentials(self) -> Settings:
        """Fail fast when the chat transport or provider credentials are missing."""
        missing = [
            env_name
            for env_name, value in (
                ("STREAM_API_KEY", self.stream_api_key),
                ("STREAM_API_SECRET", self.stream_api_secret),
            )
            if not value
        ]
        if missing:
            raise ValueError(
                f"Configuration Error: missing required environment variables {', '.join(missing)}.\n"
                "Set them in your .env file or environment."
            )
        if not self.openai_api_key:
            raise ValueError(
                "Configuration Error: openai_api_key is required.\n"
                "Set OPENAI_API_KEY in your .env file or environment."
            )
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """CORS origins as a list."""
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


# ============================================================================
# Settings Management (Thread-safe with Hot-Reload Support)
# ============================================================================


class _SettingsManager:
    """Thread-safe settings manager with optional hot-reload support.

    Uses a class to avoid global statement warnings from linters.
    """

    __slots__ = ("_instance", "_lock")

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.Lock()

    def get(self) -> Settings:
        """Get settings instance with optional hot-reload support.

        Returns:
            Validated Settings instance.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        if self._instance is not None and not self._instance.config_hot_reload:
            return self._instance

        with self._lock:
            # Double-check after acquiring lock
            if self._instance is not None and not self._instance.config_hot_reload:
                return self._instance

            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance

    def reload(self) -> Settings:
        """Force reload settings from environment files."""
        with self._lock:
            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance


_settings_manager = _SettingsManager()


def get_settings() -> Settings:
    """Get validated settings instance (cached unless hot-reload is enabled)."""
    return _settings_manager.get()


def reload_settings() -> Settings:
    """Force a reload of settings from the environment."""
    return _settings_manager.reload()
