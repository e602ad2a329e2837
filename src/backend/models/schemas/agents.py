"""
Agent lifecycle API schemas.

Provides request/response models for starting, stopping and inspecting
channel agents, plus token issuance, with OpenAPI examples.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from core.constants import DEFAULT_CHANNEL_TYPE


class AgentStatus(str, Enum):
    """Registry view of a channel's agent."""

    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"


class StartAgentRequest(BaseModel):
    """Start an agent in a channel.

    ``channel_id`` is optional at the schema level so that a missing value is
    reported as a 400 by the route instead of a 422.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"channel_id": "general", "channel_type": "messaging"}}
    )

    channel_id: str | None = Field(default=None, description="Chat channel id")
    channel_type: str = Field(default=DEFAULT_CHANNEL_TYPE, description="Chat channel type")


class StopAgentRequest(BaseModel):
    """Stop the agent in a channel."""

    model_config = ConfigDict(json_schema_extra={"example": {"channel_id": "general"}})

    channel_id: str | None = Field(default=None, description="Chat channel id")


class AgentActionResponse(BaseModel):
    """Result of a start/stop call."""

    message: str
    data: list[Any] = Field(default_factory=list)


class AgentStatusResponse(BaseModel):
    """Current status of a channel's agent."""

    model_config = ConfigDict(json_schema_extra={"example": {"status": "connected"}})

    status: AgentStatus


class ServerInfoResponse(BaseModel):
    """Root endpoint payload."""

    message: str
    apikey: str
    activeAgents: int = Field(..., ge=0, description="Number of registered agents")  # noqa: N815


class TokenRequest(BaseModel):
    """Request a chat token for a user."""

    model_config = ConfigDict(json_schema_extra={"example": {"userId": "jane"}})

    userId: str | None = Field(default=None, description="Chat user id")  # noqa: N815


class TokenResponse(BaseModel):
    """Signed chat token."""

    token: str


class WebhookAck(BaseModel):
    """Acknowledgement returned to the chat provider."""

    status: str = "accepted"
