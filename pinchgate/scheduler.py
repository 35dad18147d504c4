"""Periodic driver for governance tasks and approval expiry.

``Scheduler.tick`` is one pass: sweep expired approvals, then run every
enabled governance task whose interval has elapsed. ``run_forever`` repeats
ticks until ``stop`` is called. Tasks run in catalog order, one at a time.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, Dict, List

from .approvals.queue import ApprovalQueue
from .governance.base import TaskReport
from .governance.runner import GovernanceRunner

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(
        self,
        runner: GovernanceRunner,
        queue: ApprovalQueue,
        *,
        tick_seconds: float = 60.0,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._runner = runner
        self._queue = queue
        self._tick_seconds = tick_seconds
        self._monotonic = monotonic
        self._last_run: Dict[str, float] = {}
        self._stopped = asyncio.Event()

    async def due_tasks(self) -> List[str]:
        """Enabled task keys whose interval elapsed since their last scheduled run."""
        now = self._monotonic()
        intervals = {d.key: d.interval_seconds for d in self._runner.catalog()}
        return [
            key
            for key in await self._runner.enabled_keys()
            if now - self._last_run.get(key, -math.inf) >= intervals[key]
        ]

    async def tick(self) -> List[TaskReport]:
        try:
            await self._queue.sweep_expired()
        except Exception:
            logger.exception("Approval expiry sweep failed")

        due = await self.due_tasks()
        now = self._monotonic()
        for key in due:
            self._last_run[key] = now
        if due:
            logger.info(f"Running due governance tasks: {', '.join(due)}")
        return await self._runner.run_tasks(due)

    async def run_forever(self) -> None:
        logger.info(f"Scheduler started (tick every {self._tick_seconds:g}s)")
        while not self._stopped.is_set():
            try:
                await self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self._tick_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self._stopped.set()
