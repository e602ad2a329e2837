from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from stream_chat import StreamChatAsync

from api.services.agent_registry import AgentRegistry
from api.services.auth_service import AuthService
from core.constants import Settings, get_settings
from core.events import ChatEventBus


def get_app_settings() -> Settings:
    """Provide application settings via dependency injection.

    Settings are validated at startup and cached; with CONFIG_HOT_RELOAD=true
    in development they are reloaded on each request.

    Usage in routes:
        @router.get("/example")
        async def example(settings: AppSettings):
            return {"debug": settings.debug}
    """
    return get_settings()


def get_registry(request: Request) -> AgentRegistry:
    """Get the agent registry from application state."""
    return request.app.state.registry


def get_chat_client(request: Request) -> StreamChatAsync:
    """Get the chat transport client from application state."""
    return request.app.state.chat_client


def get_event_bus(request: Request) -> ChatEventBus:
    """Get the chat event bus from application state."""
    return request.app.state.event_bus


def get_auth_service(settings: Annotated[Settings, Depends(get_app_settings)]) -> AuthService:
    """Provide the token issuer bound to the current settings."""
    return AuthService(settings)


# Type aliases for cleaner route signatures
Registry = Annotated[AgentRegistry, Depends(get_registry)]
ChatClient = Annotated[StreamChatAsync, Depends(get_chat_client)]
EventBus = Annotated[ChatEventBus, Depends(get_event_bus)]
Auth = Annotated[AuthService, Depends(get_auth_service)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
