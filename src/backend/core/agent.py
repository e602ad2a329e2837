"""
Agent contract and construction.

An agent is one bot user's participation in one chat channel. The registry
only relies on the small protocol below; provider specifics live in
:mod:`integrations`.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from core.constants import BOT_USER_ID_DISALLOWED_CHARS, BOT_USER_ID_PREFIX

if TYPE_CHECKING:
    import httpx

    from openai import AsyncOpenAI
    from stream_chat import StreamChatAsync

    from core.constants import Settings
    from core.events import ChatEventBus


class AgentPlatform(str, Enum):
    """Backends an agent can be built on."""

    OPENAI = "openai"
    WRITING_ASSISTANT = "writing_assistant"


@runtime_checkable
class AIAgent(Protocol):
    """Capabilities every agent variant provides."""

    user_id: str
    channel: Any

    def get_last_interaction(self) -> float:
        """Monotonic timestamp of the last inbound chat event handled."""
        ...

    async def init(self) -> None:
        """Create provider resources and start listening to the channel."""
        ...

    async def dispose(self) -> None:
        """Release everything init() created. Safe to call more than once."""
        ...


def derive_bot_user_id(channel_id: str) -> str:
    """Bot user id for a channel: fixed prefix plus the id without disallowed characters.

    >>> derive_bot_user_id("!members-general")
    'ai-bot-members-general'
    """
    cleaned = channel_id.translate({ord(ch): None for ch in BOT_USER_ID_DISALLOWED_CHARS})
    return f"{BOT_USER_ID_PREFIX}{cleaned}"


def create_agent(
    platform: AgentPlatform | str,
    *,
    user_id: str,
    channel_type: str,
    channel_id: str,
    chat_client: StreamChatAsync,
    openai_client: AsyncOpenAI,
    event_bus: ChatEventBus,
    http_client: httpx.AsyncClient,
    settings: Settings,
) -> AIAgent:
    """Build an (uninitialized) agent for the requested platform.

    Raises:
        ValueError: If the platform is not supported.
    """
    try:
        platform = AgentPlatform(platform)
    except ValueError:
        raise ValueError(f"Unsupported agent platform: {platform}") from None

    # Both platforms currently share the OpenAI implementation
    from integrations.openai_agent import OpenAIAgent

    return OpenAIAgent(
        user_id=user_id,
        channel=chat_client.channel(channel_type, channel_id),
        chat_client=chat_client,
        openai_client=openai_client,
        event_bus=event_bus,
        http_client=http_client,
        settings=settings,
    )


__all__ = ["AIAgent", "AgentPlatform", "create_agent", "derive_bot_user_id"]
