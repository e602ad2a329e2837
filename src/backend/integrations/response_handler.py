"""
Streaming response handler.

Owns one provider run bound to one outgoing chat message. Tokens from the run
are accumulated and pushed into the message as debounced partial updates.
Three triggers compete to end the turn:

- the provider stream finishing (Completed)
- a user ``ai_indicator.stop`` event for this message (Cancelled)
- a provider or chat transport failure (Errored)

Whichever trigger claims the turn first performs its side effects; all of
them converge on :meth:`ResponseHandler.dispose`, which runs its
unsubscribe/notify side effects exactly once.
"""

from __future__ import annotations

import contextlib
import json
import time

from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any

from core.constants import (
    AI_STATE_ERROR,
    AI_STATE_EXTERNAL_SOURCES,
    AI_STATE_GENERATING,
    DEFAULT_GENERATION_ERROR,
    EVENT_AI_INDICATOR_CLEAR,
    EVENT_AI_INDICATOR_STOP,
    EVENT_AI_INDICATOR_UPDATE,
    MESSAGE_COMPLETED,
    MESSAGE_DELTA,
    RUN_CANCELLED,
    RUN_COMPLETED,
    RUN_CREATED,
    RUN_EXPIRED,
    RUN_FAILED,
    RUN_INCOMPLETE,
    RUN_REQUIRES_ACTION,
    RUN_STEP_CREATED,
    STREAM_ERROR,
    TAVILY_SEARCH_URL,
    WEB_SEARCH_TOOL_NAME,
)
from integrations.web_search import perform_web_search
from models.event_models import ChatEvent, IndicatorEvent
from utils.logger import logger

if TYPE_CHECKING:
    import httpx

    from openai import AsyncOpenAI
    from stream_chat import StreamChatAsync

    from core.events import ChatEventBus


class HandlerState(str, Enum):
    """Lifecycle of a response handler."""

    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"
    DISPOSED = "disposed"


class RunFailedError(Exception):
    """The provider reported a failed run or a stream-level error."""


class ResponseHandler:
    """Pump one provider run's streamed output into one chat message."""

    def __init__(
        self,
        *,
        openai_client: AsyncOpenAI,
        thread_id: str,
        stream: AsyncIterator[Any],
        chat_client: StreamChatAsync,
        channel: Any,
        message_id: str,
        cid: str,
        user_id: str,
        event_bus: ChatEventBus,
        http_client: httpx.AsyncClient,
        on_dispose: Callable[[], None],
        flush_interval: float = 1.0,
        tavily_api_key: str | None = None,
        search_url: str = TAVILY_SEARCH_URL,
        search_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._openai = openai_client
        self._thread_id = thread_id
        self._stream: AsyncIterator[Any] | None = stream
        self._chat_client = chat_client
        self._channel = channel
        self._user_id = user_id
        self._event_bus = event_bus
        self._http_client = http_client
        self._on_dispose = on_dispose
        self._flush_interval = flush_interval
        self._tavily_api_key = tavily_api_key
        self._search_url = search_url
        self._search_timeout = search_timeout
        self._clock = clock

        self.message_id = message_id
        self.cid = cid

        self._message_text = ""
        self._flushed_text = ""
        self._chunk_counter = 0
        self._run_id = ""
        self._last_flush = 0.0
        self._started_at: float | None = None
        self._state = HandlerState.CREATED
        self._outcome: HandlerState | None = None
        self._disposed = False
        self._indicator_cleared = False
        self._remote_cancel_pending = False

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> HandlerState:
        return self._state

    @property
    def outcome(self) -> HandlerState | None:
        """Terminal trigger that ended the turn (None while running)."""
        return self._outcome

    @property
    def text(self) -> str:
        return self._message_text

    @property
    def chunk_count(self) -> int:
        return self._chunk_counter

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Consume the provider stream until a termination trigger fires."""
        if self._state is not HandlerState.CREATED:
            await self._release_stream()
            return

        self._state = HandlerState.RUNNING
        self._started_at = self._clock()
        self._event_bus.on(EVENT_AI_INDICATOR_STOP, self.handle_stop)

        try:
            while self._stream is not None and not self._is_terminating:
                stream, self._stream = self._stream, None
                tool_outputs = await self._consume(stream)
                if tool_outputs and not self._is_terminating:
                    self._stream = await self._openai.beta.threads.runs.submit_tool_outputs(
                        self._run_id,
                        thread_id=self._thread_id,
                        tool_outputs=tool_outputs,
                        stream=True,
                    )
            await self._complete()
        except Exception as e:
            await self._handle_error(e)
        finally:
            await self.dispose()
            await self._close_stream(self._stream)
            self._stream = None

    async def cancel(self) -> None:
        """Stop generating: best-effort remote cancel, clear the indicator, dispose.

        When the run id has not arrived yet, the remote cancel is issued by
        the stream reader as soon as ``thread.run.created`` shows up.
        """
        if not self._claim(HandlerState.CANCELLED):
            return

        try:
            if self._run_id:
                await self._cancel_remote_run()
            else:
                self._remote_cancel_pending = True

            await self._send_indicator(EVENT_AI_INDICATOR_CLEAR)
        except Exception as e:
            logger.warning(f"Failed to clear indicator for {self.message_id}: {e}", message_id=self.message_id)
        finally:
            await self.dispose()

    async def handle_stop(self, event: ChatEvent) -> None:
        """Event bus callback for ``ai_indicator.stop``; ignores other messages."""
        if self._disposed or event.target_message_id != self.message_id:
            return

        logger.info(f"Stop generating for message {self.message_id}", message_id=self.message_id)
        await self.cancel()

    async def dispose(self) -> None:
        """Unsubscribe and notify the owner. Runs once no matter how often it is called."""
        if self._disposed:
            return

        self._disposed = True
        self._state = HandlerState.DISPOSED
        self._event_bus.off(EVENT_AI_INDICATOR_STOP, self.handle_stop)

        duration_ms = (self._clock() - self._started_at) * 1000 if self._started_at is not None else None
        logger.log_response_turn(
            message_id=self.message_id,
            response=self._message_text,
            outcome=(self._outcome or HandlerState.DISPOSED).value,
            chunk_count=self._chunk_counter,
            duration_ms=duration_ms,
            channel_id=self.cid,
            run_id=self._run_id or None,
        )

        self._on_dispose()

    # ------------------------------------------------------------------
    # Stream consumption
    # ------------------------------------------------------------------

    @property
    def _is_terminating(self) -> bool:
        return self._disposed or self._outcome is not None

    def _claim(self, outcome: HandlerState) -> bool:
        """Take ownership of the turn's ending. Only the first trigger wins."""
        if self._is_terminating:
            return False
        self._outcome = outcome
        self._state = outcome
        return True

    async def _consume(self, stream: AsyncIterator[Any]) -> list[dict[str, str]] | None:
        """Iterate one provider stream.

        Returns:
            Tool outputs to submit when the run paused for tool calls, else None.
        """
        try:
            async for event in stream:
                kind = getattr(event, "event", None)
                data = getattr(event, "data", None)

                if kind == RUN_CREATED:
                    self._run_id = data.id
                if self._is_terminating:
                    if self._remote_cancel_pending and self._run_id:
                        self._remote_cancel_pending = False
                        await self._cancel_remote_run()
                    return None

                if kind == RUN_REQUIRES_ACTION:
                    return await self._handle_requires_action(data)
                if kind == RUN_COMPLETED:
                    return None
                if kind == RUN_CANCELLED:
                    await self._finish_cancelled_remotely()
                    return None
                if kind == RUN_FAILED:
                    last_error = getattr(data, "last_error", None)
                    raise RunFailedError(getattr(last_error, "message", None) or "Run failed")
                if kind == RUN_EXPIRED:
                    raise RunFailedError("Run expired before it finished")
                if kind == RUN_INCOMPLETE:
                    details = getattr(data, "incomplete_details", None)
                    reason = getattr(details, "reason", None)
                    raise RunFailedError(f"Run incomplete: {reason}" if reason else "Run incomplete")
                if kind == STREAM_ERROR:
                    raise RunFailedError(getattr(data, "message", None) or DEFAULT_GENERATION_ERROR)

                await self._handle_stream_event(kind, data)
            return None
        finally:
            await self._close_stream(stream)

    async def _release_stream(self) -> None:
        """Read a stream cancelled before its run started, far enough to cancel the run remotely."""
        stream, self._stream = self._stream, None
        if stream is None:
            return
        if not self._remote_cancel_pending:
            await self._close_stream(stream)
            return
        try:
            await self._consume(stream)
        except Exception as e:
            logger.warning(f"Error releasing stream for {self.message_id}: {e}", message_id=self.message_id)

    @staticmethod
    async def _close_stream(stream: AsyncIterator[Any] | None) -> None:
        close = getattr(stream, "close", None)
        if close is not None:
            with contextlib.suppress(Exception):
                await close()

    async def _handle_stream_event(self, kind: str | None, data: Any) -> None:
        """Apply one content event. Every chat side effect is preceded by a termination check."""
        if kind == RUN_STEP_CREATED:
            step_details = getattr(data, "step_details", None)
            if getattr(step_details, "type", None) == "message_creation":
                await self._send_indicator(EVENT_AI_INDICATOR_UPDATE, AI_STATE_GENERATING)
        elif kind == MESSAGE_DELTA:
            text = self._extract_delta_text(data)
            if text:
                self._message_text += text
                self._chunk_counter += 1
                now = self._clock()
                if now - self._last_flush > self._flush_interval:
                    await self._flush()
                    self._last_flush = now
        elif kind == MESSAGE_COMPLETED:
            await self._flush()
            if self._is_terminating:
                return
            await self._send_indicator(EVENT_AI_INDICATOR_CLEAR)
            self._indicator_cleared = True

    @staticmethod
    def _extract_delta_text(data: Any) -> str:
        delta = getattr(data, "delta", None)
        parts = getattr(delta, "content", None) or []
        chunks: list[str] = []
        for part in parts:
            if getattr(part, "type", None) == "text" and part.text is not None:
                chunks.append(part.text.value or "")
        return "".join(chunks)

    async def _handle_requires_action(self, run: Any) -> list[dict[str, str]] | None:
        self._run_id = run.id
        required_action = getattr(run, "required_action", None)
        if getattr(required_action, "type", None) != "submit_tool_outputs":
            return None

        await self._send_indicator(EVENT_AI_INDICATOR_UPDATE, AI_STATE_EXTERNAL_SOURCES)

        tool_outputs = []
        for tool_call in required_action.submit_tool_outputs.tool_calls:
            if self._is_terminating:
                return None
            output = await self._execute_tool_call(tool_call.function.name, tool_call.function.arguments)
            tool_outputs.append({"tool_call_id": tool_call.id, "output": output})
        return tool_outputs

    async def _execute_tool_call(self, name: str, arguments: str) -> str:
        """Run a model-requested tool. Always returns a JSON string."""
        if name != WEB_SEARCH_TOOL_NAME:
            logger.warning(f"Model requested unknown tool {name!r}", message_id=self.message_id)
            return json.dumps({"error": f"Unknown tool: {name}"})

        try:
            args = json.loads(arguments or "{}")
            query = args.get("query") if isinstance(args, dict) else None
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid tool arguments for {name}: {e}", message_id=self.message_id)
            return json.dumps({"error": "Failed to call tool"})

        if not query:
            return json.dumps({"error": "Failed to call tool", "details": "Missing 'query' argument"})

        return await perform_web_search(
            str(query),
            api_key=self._tavily_api_key,
            http_client=self._http_client,
            url=self._search_url,
            timeout=self._search_timeout,
        )

    # ------------------------------------------------------------------
    # Chat transport side effects
    # ------------------------------------------------------------------

    async def _flush(self) -> None:
        """Push the accumulated text into the chat message if it changed."""
        if self._message_text == self._flushed_text:
            return
        text = self._message_text
        await self._chat_client.partial_update_message(self.message_id, {"set": {"text": text}}, self._user_id)
        self._flushed_text = text

    async def _send_indicator(self, event_type: str, ai_state: str | None = None) -> None:
        event = IndicatorEvent(type=event_type, cid=self.cid, message_id=self.message_id, ai_state=ai_state)
        await self._channel.send_event(event.to_payload(), self._user_id)

    async def _complete(self) -> None:
        if not self._claim(HandlerState.COMPLETED):
            return
        await self._flush()
        if not self._indicator_cleared:
            await self._send_indicator(EVENT_AI_INDICATOR_CLEAR)

    async def _finish_cancelled_remotely(self) -> None:
        """The provider cancelled the run on its own: keep the partial text, clear the indicator."""
        if not self._claim(HandlerState.CANCELLED):
            return
        logger.info(f"Run {self._run_id} was cancelled by the provider", message_id=self.message_id)
        try:
            await self._flush()
            await self._send_indicator(EVENT_AI_INDICATOR_CLEAR)
        except Exception as e:
            logger.warning(f"Failed to finalize cancelled message {self.message_id}: {e}", message_id=self.message_id)

    async def _cancel_remote_run(self) -> None:
        try:
            await self._openai.beta.threads.runs.cancel(self._run_id, thread_id=self._thread_id)
        except Exception as e:
            logger.warning(f"Error cancelling run {self._run_id}: {e}", message_id=self.message_id)

    async def _handle_error(self, error: Exception) -> None:
        """Surface a failure in the channel. No-op once another trigger ended the turn."""
        if self._state is HandlerState.COMPLETED and not self._disposed:
            # Failure during the final flush of an otherwise completed turn
            self._outcome = None
        if not self._claim(HandlerState.ERRORED):
            return

        logger.error(f"Response generation failed for message {self.message_id}: {error}", message_id=self.message_id)

        text = str(error) or DEFAULT_GENERATION_ERROR
        try:
            await self._send_indicator(EVENT_AI_INDICATOR_UPDATE, AI_STATE_ERROR)
            await self._chat_client.partial_update_message(
                self.message_id,
                {"set": {"text": text}},
                self._user_id,
            )
        except Exception as e:
            logger.error(f"Failed to report error for message {self.message_id}: {e}", message_id=self.message_id)


__all__ = ["HandlerState", "ResponseHandler", "RunFailedError"]
