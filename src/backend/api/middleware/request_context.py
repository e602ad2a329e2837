"""
Request-scoped identifiers for Agent Relay.

Every HTTP request gets a request id, reused from ``X-Request-ID`` when an
upstream proxy already assigned one. Agent routes and the webhook bind the
channel they act on, so log lines written by the registry, the agents and
the exception handlers during that request carry the same identifiers.
"""

from __future__ import annotations

import secrets
import time

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_current_request: ContextVar[RequestContext | None] = ContextVar("agent_relay_request", default=None)

REQUEST_ID_PREFIX = "req_"
REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time"

# Optional identifiers, logged only when set
_OPTIONAL_LOG_FIELDS = ("client_ip", "channel_id", "bot_user_id", "event_type")


@dataclass
class RequestContext:
    """Identifiers of the request being served."""

    request_id: str
    path: str = ""
    method: str = ""
    client_ip: str | None = None
    channel_id: str | None = None
    bot_user_id: str | None = None
    event_type: str | None = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000

    def to_log_context(self) -> dict[str, Any]:
        """Fields merged into every log record written during the request."""
        ctx: dict[str, Any] = {
            "request_id": self.request_id,
            "path": self.path,
            "method": self.method,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }
        for name in _OPTIONAL_LOG_FIELDS:
            value = getattr(self, name)
            if value:
                ctx[name] = value
        return ctx


def generate_request_id() -> str:
    """Request id with 64 bits of entropy, e.g. ``req_a1b2c3d4e5f6a7b8``."""
    return f"{REQUEST_ID_PREFIX}{secrets.token_hex(8)}"


def get_request_context() -> RequestContext | None:
    """Context of the request being served, or None outside a request."""
    return _current_request.get()


def get_request_id() -> str | None:
    ctx = _current_request.get()
    return ctx.request_id if ctx else None


@contextmanager
def request_scope(context: RequestContext) -> Iterator[RequestContext]:
    """Make ``context`` current for the enclosed block, restoring the previous one after."""
    token = _current_request.set(context)
    try:
        yield context
    finally:
        _current_request.reset(token)


def bind_channel(channel_id: str, bot_user_id: str | None = None) -> None:
    """Record the channel (and its bot user) an agent route is acting on."""
    ctx = _current_request.get()
    if ctx is None:
        return
    ctx.channel_id = channel_id
    if bot_user_id:
        ctx.bot_user_id = bot_user_id


def bind_webhook_event(event_type: str, cid: str | None) -> None:
    """Record which chat event a webhook delivery carries."""
    ctx = _current_request.get()
    if ctx is None:
        return
    ctx.event_type = event_type
    if cid:
        ctx.channel_id = cid


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # First hop is the original client
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Open a request scope per request and echo the request id and timing in headers."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = RequestContext(
            request_id=request.headers.get(REQUEST_ID_HEADER) or generate_request_id(),
            path=request.url.path,
            method=request.method,
            client_ip=_client_ip(request),
            channel_id=request.query_params.get("channel_id"),
        )

        with request_scope(context):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = context.request_id
        response.headers[RESPONSE_TIME_HEADER] = f"{context.elapsed_ms:.2f}ms"
        return response


__all__ = [
    "REQUEST_ID_HEADER",
    "REQUEST_ID_PREFIX",
    "RESPONSE_TIME_HEADER",
    "RequestContext",
    "RequestContextMiddleware",
    "bind_channel",
    "bind_webhook_event",
    "generate_request_id",
    "get_request_context",
    "get_request_id",
    "request_scope",
]
