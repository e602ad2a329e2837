"""
Periodic sweep that disposes agents idle beyond a threshold.
"""

from __future__ import annotations

import asyncio
import contextlib
import time

from collections.abc import Callable

from api.services.agent_registry import AgentRegistry
from utils.logger import logger


class InactivityReaper:
    """Dispose agents whose last interaction is older than ``threshold`` seconds.

    Drift of up to one ``interval`` is expected; this is a coarse sweep, not a
    per-agent timer.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        threshold: float,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.threshold = threshold
        self.interval = interval
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            logger.info(f"Inactivity reaper started (threshold: {self.threshold}s, interval: {self.interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("Inactivity reaper stopped")

    async def sweep(self) -> list[str]:
        """Reap idle agents once.

        Returns:
            Bot user ids that were disposed
        """
        now = self._clock()
        idle = [
            (user_id, agent)
            for user_id, agent in self.registry.snapshot()
            if now - agent.get_last_interaction() > self.threshold
        ]

        reaped = []
        for user_id, agent in idle:
            logger.info(f"Disposing idle agent {user_id}")
            if await self.registry.evict(user_id, agent):
                reaped.append(user_id)
        return reaped

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Inactivity sweep failed: {e}", exc_info=True)


__all__ = ["InactivityReaper"]
