"""
Chat transport event models for Agent Relay.
Provides validation for events delivered by the chat provider's webhook.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ChatUser(BaseModel):
    """User reference attached to chat events and messages."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None


class ChatMessage(BaseModel):
    """Message payload carried by ``message.new`` and similar events."""

    model_config = ConfigDict(extra="allow")

    id: str
    text: str | None = None
    cid: str | None = None
    user: ChatUser | None = None
    ai_generated: bool = False
    custom: dict[str, Any] | None = None

    @property
    def writing_task(self) -> str | None:
        """Optional writing task attached by the client in ``custom``."""
        if not self.custom:
            return None
        task = self.custom.get("writingTask")
        return str(task) if task else None


class ChatEvent(BaseModel):
    """Any event emitted by the chat transport.

    Only the fields the service reads are modelled; the rest of the payload is
    preserved as extra attributes.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    cid: str | None = None
    channel_id: str | None = None
    channel_type: str | None = None
    message_id: str | None = None
    message: ChatMessage | None = None
    user: ChatUser | None = None
    created_at: str | None = None

    @property
    def channel_cid(self) -> str | None:
        """Channel cid, derived from type and id when the payload omits it."""
        if self.cid:
            return self.cid
        if self.message and self.message.cid:
            return self.message.cid
        if self.channel_type and self.channel_id:
            return f"{self.channel_type}:{self.channel_id}"
        return None

    @property
    def target_message_id(self) -> str | None:
        """Message the event refers to (explicit id first, then embedded message)."""
        if self.message_id:
            return self.message_id
        return self.message.id if self.message else None


class IndicatorEvent(BaseModel):
    """Outbound ``ai_indicator.*`` event sent into a channel."""

    type: str
    cid: str
    message_id: str
    ai_state: str | None = Field(default=None, description="Indicator state for update events")

    def to_payload(self) -> dict[str, Any]:
        """Convert to the dict accepted by the chat SDK."""
        return self.model_dump(exclude_none=True)


__all__ = ["ChatEvent", "ChatMessage", "ChatUser", "IndicatorEvent"]
