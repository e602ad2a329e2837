"""
In-process event bus for chat transport events.

The chat provider delivers events to the webhook route; agents and response
handlers register async callbacks per event type here instead of holding
their own transport subscriptions. Registration is explicit and every
``on`` is paired with an ``off`` in the subscriber's dispose path.
"""

from __future__ import annotations

import asyncio

from collections.abc import Awaitable, Callable

from models.event_models import ChatEvent
from utils.logger import logger

EventCallback = Callable[[ChatEvent], Awaitable[None]]


class ChatEventBus:
    """Fan out chat events to callbacks registered by event type.

    Usage:
        bus = ChatEventBus()
        bus.on("ai_indicator.stop", handler.handle_stop)
        await bus.emit(event)
        bus.off("ai_indicator.stop", handler.handle_stop)
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventCallback]] = {}

    def on(self, event_type: str, callback: EventCallback) -> None:
        """Register a callback for an event type."""
        callbacks = self._subscribers.setdefault(event_type, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def off(self, event_type: str, callback: EventCallback) -> None:
        """Remove a callback. Unknown callbacks are ignored."""
        callbacks = self._subscribers.get(event_type)
        if not callbacks:
            return
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            del self._subscribers[event_type]

    def subscriber_count(self, event_type: str) -> int:
        """Number of callbacks currently registered for an event type."""
        return len(self._subscribers.get(event_type, ()))

    async def emit(self, event: ChatEvent) -> None:
        """Deliver an event to every callback registered for its type.

        Callbacks run concurrently; a failing callback is logged and does not
        affect the others.
        """
        # Snapshot: callbacks may unsubscribe while being notified
        callbacks = list(self._subscribers.get(event.type, ()))
        if not callbacks:
            logger.debug(f"No subscribers for event {event.type}")
            return

        results = await asyncio.gather(*(callback(event) for callback in callbacks), return_exceptions=True)
        for callback, result in zip(callbacks, results, strict=True):
            if isinstance(result, Exception):
                logger.error(
                    f"Event callback {getattr(callback, '__qualname__', callback)} failed for {event.type}: {result!r}",
                    event_type=event.type,
                )


__all__ = ["ChatEventBus", "EventCallback"]
