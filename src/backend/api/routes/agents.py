"""
Agent lifecycle endpoints.

Start, stop and inspect the AI agent attached to a chat channel.
"""

from __future__ import annotations

from fastapi import APIRouter

from api.dependencies import AppSettings, Registry
from api.middleware.exception_handlers import AgentStartError, AgentStopError, MissingFieldError
from api.middleware.request_context import bind_channel
from core.agent import derive_bot_user_id
from models.schemas.agents import (
    AgentActionResponse,
    AgentStatusResponse,
    ServerInfoResponse,
    StartAgentRequest,
    StopAgentRequest,
)
from utils.logger import logger

router = APIRouter()


@router.get(
    "/",
    response_model=ServerInfoResponse,
    summary="Server info",
    description="Service banner with the chat API key and the number of active agents.",
)
async def server_info(registry: Registry, settings: AppSettings) -> ServerInfoResponse:
    return ServerInfoResponse(
        message="GetStream AI Server is running",
        apikey=settings.stream_api_key or "",
        activeAgents=registry.active_count,
    )


@router.post(
    "/start-ai-agent",
    response_model=AgentActionResponse,
    summary="Start agent",
    description="Add the AI bot to a channel and start answering its messages.",
    responses={
        200: {
            "description": "Agent started (or already running)",
            "content": {"application/json": {"example": {"message": "AI Agent Started", "data": []}}},
        },
        400: {"description": "Missing channel_id"},
        500: {"description": "Chat transport or AI provider failure"},
    },
)
async def start_agent(registry: Registry, body: StartAgentRequest | None = None) -> AgentActionResponse:
    """Start (or join) the channel's agent."""
    if body is None or not body.channel_id:
        raise MissingFieldError("Missing required fields", field="channel_id")
    bind_channel(body.channel_id, derive_bot_user_id(body.channel_id))

    try:
        await registry.start(body.channel_id, body.channel_type)
    except Exception as e:
        logger.error(f"Failed to start AI Agent for {body.channel_id}: {e}", channel_id=body.channel_id)
        raise AgentStartError(e) from e

    return AgentActionResponse(message="AI Agent Started")


@router.post(
    "/stop-ai-agent",
    response_model=AgentActionResponse,
    summary="Stop agent",
    description="Dispose the channel's agent and remove the bot from the channel. No-op if none is running.",
    responses={
        200: {
            "description": "Agent stopped",
            "content": {"application/json": {"example": {"message": "AI Agent Stopped", "data": []}}},
        },
        400: {"description": "Missing channel_id"},
        500: {"description": "Disposal failed"},
    },
)
async def stop_agent(registry: Registry, body: StopAgentRequest | None = None) -> AgentActionResponse:
    """Stop the channel's agent."""
    if body is None or not body.channel_id:
        raise MissingFieldError("Missing required fields", field="channel_id")
    bind_channel(body.channel_id, derive_bot_user_id(body.channel_id))

    try:
        await registry.stop(body.channel_id)
    except Exception as e:
        logger.error(f"Failed to stop AI Agent for {body.channel_id}: {e}", channel_id=body.channel_id)
        raise AgentStopError(e) from e

    return AgentActionResponse(message="AI Agent Stopped")


@router.get(
    "/agent-status",
    response_model=AgentStatusResponse,
    summary="Agent status",
    description="Whether the channel's agent is connected, still connecting, or not running.",
    responses={400: {"description": "Missing channel_id"}},
)
async def agent_status(registry: Registry, channel_id: str | None = None) -> AgentStatusResponse:
    if not channel_id:
        raise MissingFieldError("Missing channel_id", field="channel_id")
    bind_channel(channel_id, derive_bot_user_id(channel_id))
    return AgentStatusResponse(status=registry.status(channel_id))
