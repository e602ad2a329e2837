"""
Agent Relay - AI agents streaming into chat channels
====================================================

FastAPI backend that starts a per-channel AI agent, joins it to a chat
channel and streams OpenAI Assistants responses into the channel as they are
generated.

Key Features:
    - **Agent Lifecycle**: Start/stop/status per channel with a process-wide registry
    - **Streaming Responses**: Debounced partial message updates with stop-generating support
    - **Web Search**: Tavily-backed function tool available to the model
    - **Inactivity Reaper**: Idle agents are disposed automatically
    - **Enterprise Logging**: Structured JSON logs with rotation and request correlation

Modules:
    api: FastAPI routes, services and middleware
    core: Agent contract, event bus, prompts, configuration constants
    integrations: OpenAI agent, streaming response handler, web search
    models: Pydantic models for API payloads and chat events
    utils: Logging and client factories

Architecture:
    HTTP requests start and stop agents through the registry. The chat
    provider posts channel events to the webhook route, which dispatches them
    on the event bus; agents answer ``message.new`` and response handlers
    listen for ``ai_indicator.stop``.
"""
