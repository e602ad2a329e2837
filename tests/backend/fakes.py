"""Fakes for provider stream events and clocks used across unit tests."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any


class FakeStream:
    """Async iterator over canned provider stream events.

    ``gate`` (an asyncio.Event) pauses iteration before the event at index
    ``pause_at`` until it is set, which lets tests interleave a stop event.
    """

    def __init__(self, events: list[Any], pause_at: int | None = None, gate: Any = None) -> None:
        self.events = events
        self.pause_at = pause_at
        self.gate = gate
        self.closed = False

    def __aiter__(self) -> FakeStream:
        self._index = 0
        return self

    async def __anext__(self) -> Any:
        if self._index >= len(self.events):
            raise StopAsyncIteration
        if self.pause_at is not None and self._index == self.pause_at and self.gate is not None:
            await self.gate.wait()
        event = self.events[self._index]
        self._index += 1
        return event

    async def close(self) -> None:
        self.closed = True


def stream_event(event: str, data: Any = None) -> SimpleNamespace:
    return SimpleNamespace(event=event, data=data)


def run_created(run_id: str = "run_1") -> SimpleNamespace:
    return stream_event("thread.run.created", SimpleNamespace(id=run_id))


def text_delta(text: str) -> SimpleNamespace:
    part = SimpleNamespace(type="text", text=SimpleNamespace(value=text))
    return stream_event("thread.message.delta", SimpleNamespace(delta=SimpleNamespace(content=[part])))


def message_completed() -> SimpleNamespace:
    return stream_event("thread.message.completed", SimpleNamespace(id="msg_provider"))


def run_completed(run_id: str = "run_1") -> SimpleNamespace:
    return stream_event("thread.run.completed", SimpleNamespace(id=run_id))


def run_failed(message: str, run_id: str = "run_1") -> SimpleNamespace:
    return stream_event("thread.run.failed", SimpleNamespace(id=run_id, last_error=SimpleNamespace(message=message)))


def requires_action(tool_calls: list[tuple[str, str, str]], run_id: str = "run_1") -> SimpleNamespace:
    """Build a ``thread.run.requires_action`` event from (call_id, name, arguments) triples."""
    calls = [
        SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))
        for call_id, name, arguments in tool_calls
    ]
    required_action = SimpleNamespace(
        type="submit_tool_outputs",
        submit_tool_outputs=SimpleNamespace(tool_calls=calls),
    )
    return stream_event("thread.run.requires_action", SimpleNamespace(id=run_id, required_action=required_action))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
