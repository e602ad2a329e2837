"""
Session registry for channel agents.

Maps a bot user id (derived from the channel id) to its running agent and
tracks in-flight creations so concurrent start requests for the same channel
share one agent instead of building two.
"""

from __future__ import annotations

import asyncio

from collections.abc import Callable
from typing import TYPE_CHECKING

from core.agent import AIAgent, derive_bot_user_id
from core.constants import DEFAULT_CHANNEL_TYPE
from models.schemas.agents import AgentStatus
from utils.logger import logger

if TYPE_CHECKING:
    from stream_chat import StreamChatAsync

# Called with (user_id, channel_type, channel_id); returns an uninitialized agent
AgentFactory = Callable[[str, str, str], AIAgent]


class AgentRegistry:
    """Process-wide registry of active agents.

    Start is check, act, re-check: the pending map collapses concurrent starts
    onto one creation, and the final lookup after ``init()`` guarantees an
    existing entry is never overwritten.
    """

    def __init__(
        self,
        *,
        chat_client: StreamChatAsync,
        agent_factory: AgentFactory,
        bot_display_name: str = "AI Writing Assistant",
    ) -> None:
        self._chat_client = chat_client
        self._agent_factory = agent_factory
        self._bot_display_name = bot_display_name
        self._agents: dict[str, AIAgent] = {}
        self._pending: dict[str, asyncio.Future[AIAgent]] = {}

    @property
    def active_count(self) -> int:
        return len(self._agents)

    def get(self, channel_id: str) -> AIAgent | None:
        return self._agents.get(derive_bot_user_id(channel_id))

    def snapshot(self) -> list[tuple[str, AIAgent]]:
        """Copy of the registered (user_id, agent) pairs, safe to iterate across awaits."""
        return list(self._agents.items())

    def status(self, channel_id: str) -> AgentStatus:
        user_id = derive_bot_user_id(channel_id)
        if user_id in self._agents:
            return AgentStatus.CONNECTED
        if user_id in self._pending:
            return AgentStatus.CONNECTING
        return AgentStatus.DISCONNECTED

    async def start(self, channel_id: str, channel_type: str = DEFAULT_CHANNEL_TYPE) -> AIAgent:
        """Return the channel's agent, creating it if needed.

        Concurrent callers for the same channel await the same creation and
        receive the same agent, or the same exception.
        """
        user_id = derive_bot_user_id(channel_id)

        existing = self._agents.get(user_id)
        if existing is not None:
            return existing

        pending = self._pending.get(user_id)
        if pending is not None:
            logger.info(f"Agent {user_id} is already starting, waiting", channel_id=channel_id)
            return await asyncio.shield(pending)

        future: asyncio.Future[AIAgent] = asyncio.get_running_loop().create_future()
        self._pending[user_id] = future
        try:
            agent = await self._create(user_id, channel_type, channel_id)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited future does not warn
            future.exception()
            raise
        else:
            future.set_result(agent)
            return agent
        finally:
            self._pending.pop(user_id, None)

    async def stop(self, channel_id: str) -> bool:
        """Dispose and remove the channel's agent.

        Returns:
            False when no agent was registered (not an error)
        """
        user_id = derive_bot_user_id(channel_id)
        agent = self._agents.pop(user_id, None)
        if agent is None:
            logger.info(f"No active agent for {user_id}", channel_id=channel_id)
            return False

        try:
            await agent.dispose()
        finally:
            await self._remove_membership(user_id, agent)
        logger.info(f"Agent {user_id} stopped", channel_id=channel_id)
        return True

    async def evict(self, user_id: str, agent: AIAgent) -> bool:
        """Remove a specific agent instance; failures are logged, not raised.

        Used by the inactivity reaper, which holds a snapshot: the entry is only
        removed if it still refers to the same instance.
        """
        if self._agents.get(user_id) is not agent:
            return False
        del self._agents[user_id]

        try:
            await agent.dispose()
        except Exception as e:
            logger.error(f"Failed to dispose agent {user_id}: {e}", exc_info=True)
        await self._remove_membership(user_id, agent)
        return True

    async def dispose_all(self) -> None:
        """Dispose every registered agent (shutdown)."""
        agents = list(self._agents.items())
        self._agents.clear()
        for user_id, agent in agents:
            try:
                await agent.dispose()
            except Exception as e:
                logger.error(f"Failed to dispose agent {user_id} during shutdown: {e}")
            await self._remove_membership(user_id, agent)
        if agents:
            logger.info(f"Disposed {len(agents)} agent(s)")

    async def _create(self, user_id: str, channel_type: str, channel_id: str) -> AIAgent:
        await self._chat_client.upsert_user({"id": user_id, "name": self._bot_display_name, "role": "admin"})
        channel = self._chat_client.channel(channel_type, channel_id)
        await channel.add_members([user_id])

        agent = self._agent_factory(user_id, channel_type, channel_id)
        try:
            await agent.init()
        except Exception:
            logger.error(f"Agent {user_id} failed to initialize", channel_id=channel_id, exc_info=True)
            await self._discard(user_id, agent)
            await self._remove_membership(user_id, agent)
            raise

        existing = self._agents.get(user_id)
        if existing is not None:
            logger.warning(f"Agent {user_id} registered concurrently, discarding duplicate", channel_id=channel_id)
            await self._discard(user_id, agent)
            return existing

        self._agents[user_id] = agent
        logger.info(f"Agent {user_id} started", channel_id=channel_id)
        return agent

    async def _discard(self, user_id: str, agent: AIAgent) -> None:
        try:
            await agent.dispose()
        except Exception as e:
            logger.error(f"Failed to dispose discarded agent {user_id}: {e}")

    async def _remove_membership(self, user_id: str, agent: AIAgent) -> None:
        try:
            await agent.channel.remove_members([user_id])
        except Exception as e:
            logger.warning(f"Failed to remove {user_id} from channel: {e}")


__all__ = ["AgentFactory", "AgentRegistry"]
