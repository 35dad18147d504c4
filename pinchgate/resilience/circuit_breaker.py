"""Circuit breaker for the AI gateway.

States
------

- ``closed``: calls proceed. Consecutive failures are counted; reaching the
  threshold opens the circuit. Any success resets the count.
- ``open``: calls are refused without a network attempt. Once
  ``open_duration`` has elapsed the next availability check moves the
  breaker to ``half_open``.
- ``half_open``: exactly one trial call is admitted. Its success closes the
  circuit; its failure re-opens it with a fresh timer. A trial that never
  reports back is abandoned after ``open_duration`` and another one is
  admitted.

State is persisted through a ``CircuitStateRepository`` so it survives
restarts. Every read-modify-write happens under an ``asyncio.Lock``; the lock
is never held while the guarded call is in flight, callers check
``is_available`` before the call and report the outcome after it.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Callable, Optional

from ..audit.log import AuditLog
from ..repos.interfaces import CircuitStateRepository
from ..schemas.domain import AuditEventType, AuditSource, CircuitSnapshot, CircuitState

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CircuitBreaker:
    """Availability gate for one named upstream dependency.

    Args:
        name: Dependency name; also the persistence key.
        repo: Durable storage for the circuit state.
        failure_threshold: Consecutive failures that open the circuit.
        open_duration: Seconds the circuit stays open before a trial call.
        audit: Optional audit log; opening and recovering are recorded there.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        name: str,
        repo: CircuitStateRepository,
        *,
        failure_threshold: int = 3,
        open_duration: float = 60.0,
        audit: Optional[AuditLog] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if open_duration <= 0:
            raise ValueError("open_duration must be > 0")
        self.name = name
        self._repo = repo
        self._failure_threshold = failure_threshold
        self._open_duration = open_duration
        self._audit = audit
        self._clock = clock
        self._lock = asyncio.Lock()

    async def _load(self) -> CircuitSnapshot:
        stored = await self._repo.load(self.name)
        if stored is None:
            stored = CircuitSnapshot(name=self.name)
        # Configured limits win over whatever an older process persisted.
        return stored.model_copy(
            update={"failure_threshold": self._failure_threshold, "open_duration": self._open_duration}
        )

    def _elapsed(self, since: Optional[datetime], now: datetime) -> float:
        if since is None:
            return math.inf
        return (now - since).total_seconds()

    async def is_available(self) -> bool:
        """
        Check whether a guarded call may proceed.

        Performs the time-based ``open`` -> ``half_open`` transition as a side
        effect; a ``True`` from ``open`` or ``half_open`` is the admission of
        the single trial call.
        """
        async with self._lock:
            snap = await self._load()
            now = self._clock()

            if snap.state is CircuitState.closed:
                return True

            if snap.state is CircuitState.open:
                if self._elapsed(snap.opened_at, now) < snap.open_duration:
                    return False
                await self._repo.save(
                    snap.model_copy(update={"state": CircuitState.half_open, "trial_started_at": now})
                )
                logger.info(f"Circuit '{self.name}' half-open: admitting one trial call")
                return True

            # half_open: one trial at a time
            if self._elapsed(snap.trial_started_at, now) < snap.open_duration:
                return False
            await self._repo.save(snap.model_copy(update={"trial_started_at": now}))
            logger.warning(f"Circuit '{self.name}' trial call never reported back; admitting another")
            return True

    async def record_success(self) -> None:
        """Report a successful guarded call; closes the circuit and resets the failure count."""
        async with self._lock:
            snap = await self._load()
            previous = snap.state
            if previous is CircuitState.closed and snap.consecutive_failures == 0:
                return
            await self._repo.save(
                snap.model_copy(
                    update={
                        "state": CircuitState.closed,
                        "consecutive_failures": 0,
                        "opened_at": None,
                        "trial_started_at": None,
                    }
                )
            )

        if previous is not CircuitState.closed:
            logger.info(f"Circuit '{self.name}' closed after a successful trial call")
            if self._audit is not None:
                await self._audit.record(
                    AuditEventType.circuit_closed,
                    AuditSource.system,
                    f"Circuit breaker for {self.name} closed after a successful trial call.",
                    {"circuit": self.name},
                )

    async def record_failure(self) -> None:
        """Report a failed guarded call; may open (or re-open) the circuit."""
        async with self._lock:
            snap = await self._load()
            now = self._clock()
            failures = snap.consecutive_failures + 1
            opened = False

            if snap.state is CircuitState.half_open:
                snap = snap.model_copy(
                    update={
                        "state": CircuitState.open,
                        "consecutive_failures": failures,
                        "opened_at": now,
                        "trial_started_at": None,
                    }
                )
                opened = True
            elif snap.state is CircuitState.closed and failures >= snap.failure_threshold:
                snap = snap.model_copy(
                    update={"state": CircuitState.open, "consecutive_failures": failures, "opened_at": now}
                )
                opened = True
            else:
                # closed below threshold, or a late report while already open
                snap = snap.model_copy(update={"consecutive_failures": failures})
            await self._repo.save(snap)

        if opened:
            logger.warning(
                f"Circuit '{self.name}' opened after {failures} consecutive failures; "
                f"calls refused for {int(snap.open_duration)}s"
            )
            if self._audit is not None:
                await self._audit.record(
                    AuditEventType.circuit_open,
                    AuditSource.system,
                    f"Circuit breaker opened after {failures} consecutive failures. "
                    f"Gateway calls will be refused for {int(snap.open_duration)} seconds.",
                    {"circuit": self.name, "failures": failures, "cooldown": snap.open_duration},
                )

    async def retry_after(self) -> int:
        """Seconds until a call will next be admitted (0 when available now)."""
        async with self._lock:
            snap = await self._load()
            now = self._clock()
        if snap.state is CircuitState.open:
            since = snap.opened_at
        elif snap.state is CircuitState.half_open:
            since = snap.trial_started_at
        else:
            return 0
        remaining = snap.open_duration - self._elapsed(since, now)
        return max(0, math.ceil(remaining))

    async def snapshot(self) -> CircuitSnapshot:
        """Return the current persisted state without changing it."""
        async with self._lock:
            return await self._load()

    async def reset(self) -> None:
        """Force the circuit back to ``closed`` with a zero failure count."""
        async with self._lock:
            await self._repo.save(
                CircuitSnapshot(
                    name=self.name,
                    failure_threshold=self._failure_threshold,
                    open_duration=self._open_duration,
                )
            )
        logger.info(f"Circuit '{self.name}' manually reset")
