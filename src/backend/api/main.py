from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware.exception_handlers import register_exception_handlers
from api.middleware.request_context import RequestContextMiddleware
from api.routes import router
from api.services.agent_registry import AgentRegistry
from api.services.inactivity_reaper import InactivityReaper
from core.agent import AIAgent, create_agent
from core.constants import get_settings
from core.events import ChatEventBus
from utils.client_factory import create_chat_client, create_http_client, create_openai_client
from utils.logger import configure_uvicorn_logging, logger

# Settings are loaded via Pydantic Settings with environment-specific file support
# (.env, .env.{APP_ENV}, .env.local). Missing chat credentials fail here.
settings = get_settings()

if settings.debug:
    from core.constants import _get_env_files

    logger.info(f"Env files: {[f.name for f in _get_env_files()]}")
    logger.info(
        f"Settings: app_env={settings.app_env}, platform={settings.agent_platform}, model={settings.openai_model}"
    )

# Configure uvicorn logging at module level to ensure workers use it
configure_uvicorn_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: create clients and registry, dispose agents on shutdown."""
    if not (settings.stream_api_key and settings.stream_api_secret and settings.openai_api_key):
        raise RuntimeError("STREAM_API_KEY, STREAM_API_SECRET and OPENAI_API_KEY must be configured")

    http_client = create_http_client(read_timeout=settings.http_read_timeout)
    openai_client = create_openai_client(settings.openai_api_key, http_client=http_client)
    chat_client = create_chat_client(settings.stream_api_key, settings.stream_api_secret)
    event_bus = ChatEventBus()

    def build_agent(user_id: str, channel_type: str, channel_id: str) -> AIAgent:
        return create_agent(
            settings.agent_platform,
            user_id=user_id,
            channel_type=channel_type,
            channel_id=channel_id,
            chat_client=chat_client,
            openai_client=openai_client,
            event_bus=event_bus,
            http_client=http_client,
            settings=settings,
        )

    registry = AgentRegistry(
        chat_client=chat_client,
        agent_factory=build_agent,
        bot_display_name=settings.bot_display_name,
    )
    reaper = InactivityReaper(
        registry,
        threshold=settings.agent_inactivity_threshold,
        interval=settings.reaper_interval,
    )

    app.state.http_client = http_client
    app.state.openai_client = openai_client
    app.state.chat_client = chat_client
    app.state.event_bus = event_bus
    app.state.registry = registry
    app.state.reaper = reaper

    await reaper.start()
    logger.info(f"Agent Relay started (platform: {settings.agent_platform})")

    try:
        yield
    finally:
        logger.info("Initiating graceful shutdown sequence")

        # Phase 1: Stop sweeping, then dispose every agent
        await reaper.stop()
        await registry.dispose_all()

        # Phase 2: Close clients
        try:
            await chat_client.close()
        except Exception as e:
            logger.warning(f"Error closing chat client: {e}")
        await openai_client.close()
        await http_client.aclose()
        logger.info("Shutdown complete")


app = FastAPI(
    title="Agent Relay",
    description="""
## Agent Relay

Brokers AI-assisted chat: starts a per-channel AI agent that joins a chat
channel and streams OpenAI Assistants responses into it as they are generated.

### Features
- **Agent lifecycle**: Start, stop and inspect channel agents
- **Streaming**: Debounced partial message updates while the model writes
- **Stop generating**: `ai_indicator.stop` events cancel the active run
- **Web search**: Tavily-backed tool available to the model
- **Tokens**: One-hour chat tokens for client users
""",
    version=settings.app_version,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Agents", "description": "Agent start/stop/status"},
        {"name": "Authentication", "description": "Chat token issuance"},
        {"name": "Webhooks", "description": "Inbound chat transport events"},
    ],
)

# Register global exception handlers for consistent error responses
register_exception_handlers(app)

# Request context middleware (adds request ID tracking)
# Note: Middleware is executed in reverse order of registration
app.add_middleware(RequestContextMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        reload_dirs=["src"],
        log_config=None,
    )
