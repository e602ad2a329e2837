import asyncio

from typing import Any
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from api.services.agent_registry import AgentRegistry
from models.schemas.agents import AgentStatus

BOT_ID = "ai-bot-general"


class AgentFactory:
    """Records built agents; ``init_effect`` becomes each agent's init side effect."""

    def __init__(self, chat_client: MagicMock) -> None:
        self.chat_client = chat_client
        self.built: list[MagicMock] = []
        self.init_effect: Any = None

    def __call__(self, user_id: str, channel_type: str, channel_id: str) -> MagicMock:
        agent = MagicMock()
        agent.user_id = user_id
        agent.channel = self.chat_client.channel(channel_type, channel_id)
        agent.init = AsyncMock(side_effect=self.init_effect)
        agent.dispose = AsyncMock()
        agent.get_last_interaction = Mock(return_value=0.0)
        self.built.append(agent)
        return agent


@pytest.fixture
def factory(mock_chat_client: MagicMock) -> AgentFactory:
    return AgentFactory(mock_chat_client)


@pytest.fixture
def registry(mock_chat_client: MagicMock, factory: AgentFactory) -> AgentRegistry:
    return AgentRegistry(chat_client=mock_chat_client, agent_factory=factory)


@pytest.mark.asyncio
async def test_start_provisions_bot_and_registers_agent(
    registry: AgentRegistry, factory: AgentFactory, mock_chat_client: MagicMock, mock_channel: MagicMock
) -> None:
    agent = await registry.start("general", "messaging")

    mock_chat_client.upsert_user.assert_awaited_once_with(
        {"id": BOT_ID, "name": "AI Writing Assistant", "role": "admin"}
    )
    mock_chat_client.channel.assert_any_call("messaging", "general")
    mock_channel.add_members.assert_awaited_once_with([BOT_ID])
    agent.init.assert_awaited_once()
    assert registry.get("general") is agent
    assert registry.status("general") == AgentStatus.CONNECTED
    assert registry.active_count == 1


@pytest.mark.asyncio
async def test_start_returns_existing_agent(registry: AgentRegistry, factory: AgentFactory) -> None:
    first = await registry.start("general")
    second = await registry.start("general")

    assert first is second
    assert len(factory.built) == 1


@pytest.mark.asyncio
async def test_channel_id_is_normalized_into_bot_id(registry: AgentRegistry, factory: AgentFactory) -> None:
    await registry.start("!members-general")

    assert factory.built[0].user_id == "ai-bot-members-general"
    assert registry.status("!members-general") == AgentStatus.CONNECTED


@pytest.mark.asyncio
async def test_concurrent_starts_share_one_agent(
    registry: AgentRegistry, factory: AgentFactory, mock_chat_client: MagicMock
) -> None:
    gate = asyncio.Event()

    async def slow_init() -> None:
        await gate.wait()

    factory.init_effect = slow_init

    first = asyncio.create_task(registry.start("general"))
    second = asyncio.create_task(registry.start("general"))
    for _ in range(5):
        await asyncio.sleep(0)

    assert registry.status("general") == AgentStatus.CONNECTING

    gate.set()
    agents = await asyncio.gather(first, second)

    assert agents[0] is agents[1]
    assert len(factory.built) == 1
    mock_chat_client.upsert_user.assert_awaited_once()
    assert registry.status("general") == AgentStatus.CONNECTED
    assert registry.active_count == 1


@pytest.mark.asyncio
async def test_agent_registered_during_init_wins(registry: AgentRegistry, factory: AgentFactory) -> None:
    existing = MagicMock()

    async def interleaved_init() -> None:
        # Another start completed while this agent was initializing
        registry._agents[BOT_ID] = existing

    factory.init_effect = interleaved_init

    result = await registry.start("general")

    assert result is existing
    assert registry.get("general") is existing
    factory.built[0].dispose.assert_awaited_once()


@pytest.mark.asyncio
async def test_start_failure_disposes_agent_and_clears_pending(
    registry: AgentRegistry, factory: AgentFactory, mock_channel: MagicMock
) -> None:
    factory.init_effect = RuntimeError("assistant quota exceeded")

    with pytest.raises(RuntimeError, match="assistant quota exceeded"):
        await registry.start("general")

    factory.built[0].dispose.assert_awaited_once()
    mock_channel.remove_members.assert_awaited_once_with([BOT_ID])
    assert registry.status("general") == AgentStatus.DISCONNECTED
    assert registry.active_count == 0


@pytest.mark.asyncio
async def test_concurrent_waiter_receives_same_error(registry: AgentRegistry, factory: AgentFactory) -> None:
    gate = asyncio.Event()

    async def failing_init() -> None:
        await gate.wait()
        raise RuntimeError("provider down")

    factory.init_effect = failing_init

    first = asyncio.create_task(registry.start("general"))
    second = asyncio.create_task(registry.start("general"))
    for _ in range(5):
        await asyncio.sleep(0)
    gate.set()

    results = await asyncio.gather(first, second, return_exceptions=True)

    assert all(isinstance(r, RuntimeError) and str(r) == "provider down" for r in results)
    assert len(factory.built) == 1
    assert registry.status("general") == AgentStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_transport_failure_before_init_is_raised(
    registry: AgentRegistry, factory: AgentFactory, mock_chat_client: MagicMock
) -> None:
    mock_chat_client.upsert_user.side_effect = RuntimeError("invalid api key")

    with pytest.raises(RuntimeError, match="invalid api key"):
        await registry.start("general")

    assert factory.built == []
    assert registry.status("general") == AgentStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_start_then_stop_lifecycle(registry: AgentRegistry, mock_channel: MagicMock) -> None:
    assert registry.status("general") == AgentStatus.DISCONNECTED
    agent = await registry.start("general")

    stopped = await registry.stop("general")

    assert stopped is True
    agent.dispose.assert_awaited_once()
    mock_channel.remove_members.assert_awaited_once_with([BOT_ID])
    assert registry.status("general") == AgentStatus.DISCONNECTED
    assert registry.get("general") is None


@pytest.mark.asyncio
async def test_stop_without_agent_is_noop(registry: AgentRegistry, mock_channel: MagicMock) -> None:
    assert await registry.stop("general") is False
    mock_channel.remove_members.assert_not_awaited()


@pytest.mark.asyncio
async def test_stop_logs_membership_removal_failure(registry: AgentRegistry, mock_channel: MagicMock) -> None:
    await registry.start("general")
    mock_channel.remove_members.side_effect = RuntimeError("channel deleted")

    assert await registry.stop("general") is True
    assert registry.active_count == 0


@pytest.mark.asyncio
async def test_stop_propagates_dispose_failure_after_removing_entry(
    registry: AgentRegistry, mock_channel: MagicMock
) -> None:
    agent = await registry.start("general")
    agent.dispose.side_effect = RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await registry.stop("general")

    assert registry.status("general") == AgentStatus.DISCONNECTED
    mock_channel.remove_members.assert_awaited_once_with([BOT_ID])


@pytest.mark.asyncio
async def test_evict_only_removes_same_instance(registry: AgentRegistry) -> None:
    agent = await registry.start("general")
    stale = MagicMock()

    assert await registry.evict(BOT_ID, stale) is False
    assert registry.get("general") is agent

    assert await registry.evict(BOT_ID, agent) is True
    agent.dispose.assert_awaited_once()
    assert registry.active_count == 0


@pytest.mark.asyncio
async def test_dispose_all(registry: AgentRegistry, factory: AgentFactory) -> None:
    await registry.start("general")
    await registry.start("random")
    factory.built[0].dispose.side_effect = RuntimeError("already gone")

    await registry.dispose_all()

    assert registry.active_count == 0
    for agent in factory.built:
        agent.dispose.assert_awaited_once()
