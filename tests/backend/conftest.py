"""Shared test fixtures for the Agent Relay test suite.

This module provides common fixtures used across all test modules,
including mocks for the chat transport and the AI provider.
"""

from __future__ import annotations

from collections.abc import Generator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# ============================================================================
# EARLY INITIALIZATION: Runs before test collection
# ============================================================================


def _build_mock_settings() -> MagicMock:
    mock_settings = MagicMock()
    mock_settings.app_env = "test"
    mock_settings.debug = False
    mock_settings.enable_content_logging = False
    mock_settings.stream_api_key = "test-stream-key"
    mock_settings.stream_api_secret = "test-stream-secret"
    mock_settings.verify_webhook_signatures = True
    mock_settings.openai_api_key = "sk-test-openai-key"
    mock_settings.openai_model = "gpt-4o"
    mock_settings.openai_temperature = 0.7
    mock_settings.tavily_api_key = None
    mock_settings.tavily_search_url = "https://api.tavily.com/search"
    mock_settings.web_search_timeout = 30.0
    mock_settings.host = "127.0.0.1"
    mock_settings.port = 3000
    mock_settings.app_version = "1.0.0-test"
    mock_settings.cors_origins_list = ["*"]
    mock_settings.is_development = False
    mock_settings.agent_platform = "openai"
    mock_settings.bot_display_name = "AI Writing Assistant"
    mock_settings.agent_inactivity_threshold = 28800.0
    mock_settings.reaper_interval = 5.0
    mock_settings.stream_flush_interval = 1.0
    mock_settings.token_ttl_seconds = 3600
    mock_settings.http_read_timeout = 600.0
    mock_settings.shutdown_timeout = 1.0
    mock_settings.config_hot_reload = False
    return mock_settings


def pytest_configure(config: pytest.Config) -> None:
    """Configure settings mock before any test modules are imported.

    This hook runs before test collection, which is when module-level
    imports happen. We patch get_settings here to prevent ValidationError
    on CI where .env is not available.
    """
    mock_settings = _build_mock_settings()

    cfg: Any = config
    cfg._mock_settings = mock_settings

    # Patch get_settings at the module level BEFORE any imports
    patcher = patch("core.constants.get_settings", return_value=mock_settings)
    patcher.start()
    cfg._settings_patcher = patcher


def pytest_unconfigure(config: pytest.Config) -> None:
    """Clean up settings mock after all tests complete."""
    patcher = getattr(config, "_settings_patcher", None)
    if patcher:
        patcher.stop()


# ============================================================================
# Test Isolation: Settings Management
# ============================================================================


@pytest.fixture(autouse=True)
def reset_settings_singleton() -> Generator[None, None, None]:
    """Reset the settings singleton before and after each test."""
    from core import constants

    constants._settings_manager._instance = None
    yield
    constants._settings_manager._instance = None


@pytest.fixture(autouse=True)
def mock_settings_for_ci(monkeypatch: pytest.MonkeyPatch) -> Generator[MagicMock, None, None]:
    """Provide mock settings that work without .env file (for CI)."""
    mock_settings = _build_mock_settings()
    monkeypatch.setattr("core.constants.get_settings", lambda: mock_settings)
    yield mock_settings


@pytest.fixture
def settings() -> Any:
    """A real, validated Settings instance with test credentials."""
    from core.constants import Settings

    return Settings(
        app_env="test",
        stream_api_key="test-stream-key",
        stream_api_secret="test-stream-secret",
        openai_api_key="sk-test-openai-key",
        tavily_api_key=None,
        stream_flush_interval=1.0,
        shutdown_timeout=1.0,
    )


# ============================================================================
# Mock External Dependencies
# ============================================================================


@pytest.fixture
def mock_channel() -> MagicMock:
    """Mock chat channel (stream_chat async Channel)."""
    channel = MagicMock()
    channel.channel_type = "messaging"
    channel.id = "general"
    channel.cid = "messaging:general"
    channel.add_members = AsyncMock()
    channel.remove_members = AsyncMock()
    channel.send_event = AsyncMock()
    channel.send_message = AsyncMock(return_value={"message": {"id": "ai-msg-1", "cid": "messaging:general"}})
    return channel


@pytest.fixture
def mock_chat_client(mock_channel: MagicMock) -> MagicMock:
    """Mock StreamChatAsync server client."""
    client = MagicMock()
    client.channel.return_value = mock_channel
    client.upsert_user = AsyncMock()
    client.partial_update_message = AsyncMock()
    client.delete_message = AsyncMock()
    client.verify_webhook.return_value = True
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_openai_client() -> MagicMock:
    """Mock AsyncOpenAI client exposing the Assistants API surface."""
    client = MagicMock()
    client.beta.assistants.create = AsyncMock(return_value=SimpleNamespace(id="asst_123"))
    client.beta.assistants.delete = AsyncMock()
    client.beta.threads.create = AsyncMock(return_value=SimpleNamespace(id="thread_123"))
    client.beta.threads.messages.create = AsyncMock()
    client.beta.threads.runs.create = AsyncMock()
    client.beta.threads.runs.submit_tool_outputs = AsyncMock()
    client.beta.threads.runs.cancel = AsyncMock()
    client.beta.threads.runs.retrieve = AsyncMock(return_value=SimpleNamespace(id="run_1", status="cancelled"))
    return client


@pytest.fixture
def mock_http_client() -> MagicMock:
    """Mock httpx.AsyncClient (tests needing real transport use httpx.MockTransport)."""
    client = MagicMock()
    client.post = AsyncMock()
    return client


@pytest.fixture
def event_bus() -> Any:
    from core.events import ChatEventBus

    return ChatEventBus()

