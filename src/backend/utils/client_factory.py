"""
Client factory utilities.
Centralizes creation of the OpenAI, chat transport and outbound HTTP clients
with consistent configuration.
"""

from __future__ import annotations

from typing import Any

import httpx

from openai import AsyncOpenAI
from stream_chat import StreamChatAsync

# Streaming runs can pause while the model is working (tool calls, long
# completions), so reads get a generous timeout
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_READ_TIMEOUT = 600.0
DEFAULT_WRITE_TIMEOUT = 30.0
DEFAULT_POOL_TIMEOUT = 30.0

#: Timeout for chat transport REST calls (seconds)
CHAT_CLIENT_TIMEOUT = 6.0


def create_http_client(read_timeout: float | None = None) -> httpx.AsyncClient:
    """Create HTTP client with proper timeouts for streaming.

    Args:
        read_timeout: Read timeout in seconds (default: 600s)

    Returns:
        Configured httpx.AsyncClient
    """
    effective_read_timeout = read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT
    timeout = httpx.Timeout(
        connect=DEFAULT_CONNECT_TIMEOUT,
        read=effective_read_timeout,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )
    return httpx.AsyncClient(timeout=timeout)


def create_openai_client(
    api_key: str,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """Create AsyncOpenAI client with consistent configuration.

    Args:
        api_key: OpenAI API key
        base_url: Optional base URL for custom endpoints
        http_client: Optional shared httpx client

    Returns:
        Configured AsyncOpenAI client
    """
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)


def create_chat_client(api_key: str, api_secret: str, timeout: float = CHAT_CLIENT_TIMEOUT) -> StreamChatAsync:
    """Create the server-side chat transport client.

    Args:
        api_key: Chat transport API key
        api_secret: Chat transport API secret (signs tokens and verifies webhooks)
        timeout: Per-request timeout in seconds

    Returns:
        Configured StreamChatAsync client (close with ``await client.close()``)
    """
    return StreamChatAsync(api_key=api_key, api_secret=api_secret, timeout=timeout)
