"""
OpenAI Assistants backed channel agent.

One instance per bot user and channel. ``init()`` provisions a provider
assistant and thread; every human message in the channel becomes one
streamed run whose output is pumped into a fresh placeholder message by a
:class:`~integrations.response_handler.ResponseHandler`.
"""

from __future__ import annotations

import asyncio
import time

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from core.constants import (
    AI_STATE_ERROR,
    AI_STATE_THINKING,
    DEFAULT_GENERATION_ERROR,
    EVENT_AI_INDICATOR_UPDATE,
    EVENT_MESSAGE_NEW,
    RUN_SETTLE_MAX_ATTEMPTS,
    RUN_SETTLE_POLL_INTERVAL,
    RUN_TERMINAL_STATUSES,
)
from core.prompts import ASSISTANT_NAME, build_writing_instructions, web_search_tool_definition
from integrations.response_handler import HandlerState, ResponseHandler
from models.event_models import ChatEvent, ChatMessage, IndicatorEvent
from utils.logger import logger

if TYPE_CHECKING:
    import httpx

    from openai import AsyncOpenAI
    from stream_chat import StreamChatAsync

    from core.constants import Settings
    from core.events import ChatEventBus


class OpenAIAgent:
    """Bot participation in one channel, answering through an OpenAI assistant."""

    def __init__(
        self,
        *,
        user_id: str,
        channel: Any,
        chat_client: StreamChatAsync,
        openai_client: AsyncOpenAI,
        event_bus: ChatEventBus,
        http_client: httpx.AsyncClient,
        settings: Settings,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_id = user_id
        self.channel = channel
        self.cid = f"{channel.channel_type}:{channel.id}"

        self._chat_client = chat_client
        self._openai = openai_client
        self._event_bus = event_bus
        self._http_client = http_client
        self._settings = settings
        self._clock = clock

        self._assistant_id: str | None = None
        self._thread_id: str | None = None
        self._handler: ResponseHandler | None = None
        self._last_turn: ResponseHandler | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._turn_lock = asyncio.Lock()
        self._last_interaction = clock()
        self._initialized = False
        self._disposed = False

    @property
    def assistant_id(self) -> str | None:
        return self._assistant_id

    @property
    def thread_id(self) -> str | None:
        return self._thread_id

    @property
    def active_handler(self) -> ResponseHandler | None:
        return self._handler

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def get_last_interaction(self) -> float:
        return self._last_interaction

    async def init(self) -> None:
        """Create the provider assistant and thread, then listen for channel messages."""
        if self._initialized or self._disposed:
            return

        assistant = await self._openai.beta.assistants.create(
            name=ASSISTANT_NAME,
            instructions=build_writing_instructions(),
            model=self._settings.openai_model,
            temperature=self._settings.openai_temperature,
            tools=[web_search_tool_definition()],
        )
        self._assistant_id = assistant.id

        thread = await self._openai.beta.threads.create()
        self._thread_id = thread.id

        self._event_bus.on(EVENT_MESSAGE_NEW, self.handle_message)
        self._initialized = True
        logger.info(
            f"Agent {self.user_id} ready (assistant={self._assistant_id}, thread={self._thread_id})",
            channel_id=self.cid,
        )

    async def handle_message(self, event: ChatEvent) -> None:
        """Event bus callback for ``message.new``: answer human messages in this channel."""
        if self._disposed or not self._initialized or event.channel_cid != self.cid:
            return

        message = event.message
        if not self._is_human_message(message):
            return

        self._last_interaction = self._clock()

        async with self._turn_lock:
            if self._disposed:
                return
            previous = self._last_turn
            if previous is not None and not previous.is_disposed:
                logger.info(f"Superseding active response {previous.message_id}", channel_id=self.cid)
                await previous.cancel()
            if previous is not None and previous.outcome is not HandlerState.COMPLETED:
                await self._settle_previous_turn(previous)
            if self._disposed:
                return
            await self._start_turn(message)

    async def dispose(self) -> None:
        """Stop listening, cancel the active turn and delete the provider assistant."""
        if self._disposed:
            return
        self._disposed = True

        self._event_bus.off(EVENT_MESSAGE_NEW, self.handle_message)

        # A turn being set up finishes (or backs out) before teardown
        async with self._turn_lock:
            if self._handler is not None:
                await self._handler.cancel()

            await self._drain_tasks()

            if self._assistant_id:
                try:
                    await self._openai.beta.assistants.delete(self._assistant_id)
                except Exception as e:
                    logger.warning(f"Failed to delete assistant {self._assistant_id}: {e}", channel_id=self.cid)

        logger.info(f"Agent {self.user_id} disposed", channel_id=self.cid)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_human_message(self, message: ChatMessage | None) -> bool:
        if message is None or message.ai_generated or not message.text:
            return False
        return not (message.user is not None and message.user.id == self.user_id)

    async def _start_turn(self, message: ChatMessage) -> None:
        if self._thread_id is None or self._assistant_id is None:
            raise RuntimeError(f"Agent {self.user_id} is not initialized")

        await self._openai.beta.threads.messages.create(self._thread_id, role="user", content=message.text or "")
        if self._disposed:
            return

        response = await self.channel.send_message({"text": "", "ai_generated": True}, self.user_id)
        ai_message = response["message"]
        message_id = ai_message["id"]
        if self._disposed:
            await self._discard_placeholder(message_id)
            return

        try:
            await self._send_indicator(EVENT_AI_INDICATOR_UPDATE, message_id, AI_STATE_THINKING)
            stream = await self._openai.beta.threads.runs.create(
                self._thread_id,
                assistant_id=self._assistant_id,
                instructions=build_writing_instructions(message.writing_task),
                stream=True,
            )
        except Exception as e:
            await self._report_turn_failure(message_id, e)
            raise

        handler = ResponseHandler(
            openai_client=self._openai,
            thread_id=self._thread_id,
            stream=stream,
            chat_client=self._chat_client,
            channel=self.channel,
            message_id=message_id,
            cid=self.cid,
            user_id=self.user_id,
            event_bus=self._event_bus,
            http_client=self._http_client,
            on_dispose=lambda: self._on_handler_disposed(handler),
            flush_interval=self._settings.stream_flush_interval,
            tavily_api_key=self._settings.tavily_api_key,
            search_url=self._settings.tavily_search_url,
            search_timeout=self._settings.web_search_timeout,
            clock=self._clock,
        )
        self._handler = handler
        self._last_turn = handler
        if self._disposed:
            # The run exists remotely; the handler only reads far enough to cancel it
            await handler.cancel()

        task = asyncio.create_task(handler.run(), name=f"response-{message_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _settle_previous_turn(self, previous: ResponseHandler) -> None:
        """Wait until the thread accepts a new message after ``previous`` ended.

        The provider rejects messages on a thread whose run is still active, and
        a cancelled run passes through ``cancelling`` before it stops.
        """
        await self._drain_tasks()

        run_id = previous.run_id
        if not run_id or self._thread_id is None:
            return

        for _ in range(RUN_SETTLE_MAX_ATTEMPTS):
            try:
                run = await self._openai.beta.threads.runs.retrieve(run_id, thread_id=self._thread_id)
            except Exception as e:
                logger.warning(f"Could not check status of run {run_id}: {e}", channel_id=self.cid)
                return
            if run.status in RUN_TERMINAL_STATUSES:
                return
            await asyncio.sleep(RUN_SETTLE_POLL_INTERVAL)

        logger.warning(f"Run {run_id} still active after waiting, posting anyway", channel_id=self.cid)

    def _on_handler_disposed(self, handler: ResponseHandler) -> None:
        if self._handler is handler:
            self._handler = None

    async def _send_indicator(self, event_type: str, message_id: str, ai_state: str | None = None) -> None:
        event = IndicatorEvent(type=event_type, cid=self.cid, message_id=message_id, ai_state=ai_state)
        await self.channel.send_event(event.to_payload(), self.user_id)

    async def _discard_placeholder(self, message_id: str) -> None:
        try:
            await self._chat_client.delete_message(message_id)
        except Exception as e:
            logger.warning(f"Failed to delete placeholder {message_id}: {e}", channel_id=self.cid)

    async def _report_turn_failure(self, message_id: str, error: Exception) -> None:
        """Show a failure to start a run in the placeholder message."""
        try:
            await self._send_indicator(EVENT_AI_INDICATOR_UPDATE, message_id, AI_STATE_ERROR)
            await self._chat_client.partial_update_message(
                message_id,
                {"set": {"text": str(error) or DEFAULT_GENERATION_ERROR}},
                self.user_id,
            )
        except Exception as e:
            logger.error(f"Failed to report run failure for message {message_id}: {e}", channel_id=self.cid)

    async def _drain_tasks(self) -> None:
        """Wait for response tasks, cancelling those that outlive the shutdown timeout."""
        if not self._tasks:
            return

        tasks = list(self._tasks)
        _, pending = await asyncio.wait(tasks, timeout=self._settings.shutdown_timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(pending)} response task(s) that did not finish", channel_id=self.cid)


__all__ = ["OpenAIAgent"]
