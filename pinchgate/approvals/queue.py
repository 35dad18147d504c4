"""Approval queue.

State machine per item::

    pending --approve--> approved (handler executed once)
    pending --reject---> rejected
    pending --(expires_at passed)--> expired

Terminal items are kept as tombstones so a late call can tell "already
processed" from "not found". Every transition is a compare-and-swap in the
``QueueRepository``; of two concurrent decisions on one item exactly one
wins. Expiry is enforced lazily (an expired item is never listed, approved
or rejected) and eagerly by ``sweep_expired``.

The queue lists pending items oldest first.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Mapping, Optional

from ..abilities.base import AbilityContext, DispatchResult, DispatchStatus
from ..abilities.executor import AbilityExecutor
from ..abilities.registry import AbilityRegistry
from ..audit.log import AuditLog
from ..audit.redaction import summarize_input
from ..core.errors import AlreadyProcessedError, NotFoundError, PinchGateError
from ..repos.interfaces import QueueRepository
from ..schemas.domain import Actor, AuditEventType, AuditSource, QueueItem, QueueStatus

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_queue_id() -> str:
    """Return an opaque id such as ``aq_k3j9x0m2p1qa``."""
    return "aq_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(12))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ApprovalQueue:
    """Deferred ability invocations awaiting a human decision.

    Args:
        repo: Durable storage for queue items.
        registry: Ability catalog used to resolve approved items.
        executor: Runs the original handler once an item is approved.
        audit: Audit log for queue, approval, rejection and expiry events.
        ttl_seconds: How long an item stays pending.
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        repo: QueueRepository,
        *,
        registry: AbilityRegistry,
        executor: AbilityExecutor,
        audit: AuditLog,
        ttl_seconds: float = 900.0,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._repo = repo
        self._registry = registry
        self._executor = executor
        self._audit = audit
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    async def enqueue(self, ability_name: str, input: Mapping[str, Any], actor: Actor) -> str:
        """
        Store a new pending item.

        Args:
            ability_name: The ability to run once approved.
            input: Already-validated input.
            actor: The requesting actor.

        Returns:
            The new queue id.
        """
        now = self._clock()
        item = QueueItem(
            id=new_queue_id(),
            ability_name=ability_name,
            input=dict(input),
            requested_by=actor,
            queued_at=now,
            expires_at=now + self._ttl,
        )
        await self._repo.create(item)
        await self._audit.record(
            AuditEventType.ability_queued,
            AuditSource.ability,
            f"Ability '{ability_name}' queued for approval ({item.id}).",
            {
                "queue_id": item.id,
                "ability": ability_name,
                "actor": actor.id,
                "request": summarize_input(item.input),
                "expires_at": item.expires_at.isoformat(),
            },
        )
        return item.id

    async def get(self, queue_id: str) -> Optional[QueueItem]:
        """Return the item in any status, or None."""
        return await self._repo.get(queue_id)

    async def list_pending(self) -> List[QueueItem]:
        """Pending, unexpired items, oldest first."""
        return await self._repo.list_pending(now=self._clock())

    def _classify(self, item: Optional[QueueItem], queue_id: str, now: datetime) -> PinchGateError:
        if item is None:
            return NotFoundError(f"Queue item '{queue_id}' not found.")
        if item.status is not QueueStatus.pending:
            return AlreadyProcessedError(
                f"Queue item '{queue_id}' was already processed ({item.status.value}).", status=item.status.value
            )
        if item.is_expired(now):
            return NotFoundError(f"Queue item '{queue_id}' has expired.")
        return AlreadyProcessedError(f"Queue item '{queue_id}' was already processed.")

    async def approve(self, queue_id: str, *, decided_by: str = "admin") -> DispatchResult:
        """
        Approve a pending item and run the original ability once.

        The item is consumed before the handler runs; a handler failure is
        audited and returned, and the item is not retried.

        Raises:
            NotFoundError: Unknown or expired item.
            AlreadyProcessedError: The item already left the pending state.
        """
        now = self._clock()
        item = await self._repo.get(queue_id)
        if item is None or item.status is not QueueStatus.pending or item.is_expired(now):
            raise self._classify(item, queue_id, now)

        if not await self._repo.transition(queue_id, to_status=QueueStatus.approved, now=now, decided_by=decided_by):
            raise self._classify(await self._repo.get(queue_id), queue_id, now)

        extra = {"queue_id": queue_id, "approved_by": decided_by, "requested_by": item.requested_by.id}
        ctx = AbilityContext(actor=item.requested_by, approved_by=decided_by, queue_id=queue_id)

        if not self._registry.has(item.ability_name):
            return await self._approval_failed(item, f"Ability '{item.ability_name}' is no longer registered.", extra)

        try:
            result = await self._executor.run(
                self._registry.get(item.ability_name),
                item.input,
                ctx,
                success_event=AuditEventType.ability_approved,
                failure_event=AuditEventType.ability_approval_failed,
                extra_context=extra,
            )
        except PinchGateError as e:
            # Handler rejected at approval time, e.g. the referenced content is gone.
            return await self._approval_failed(item, str(e), {**extra, "code": e.code})

        logger.info(f"Queue item {queue_id} approved by {decided_by}: {result.status.value}")
        return result

    async def _approval_failed(self, item: QueueItem, error: str, context: Mapping[str, Any]) -> DispatchResult:
        logger.warning(f"Approved item {item.id} could not run: {error}")
        await self._audit.record(
            AuditEventType.ability_approval_failed,
            AuditSource.ability,
            f"Approved ability '{item.ability_name}' failed: {error}",
            {"ability": item.ability_name, **context},
        )
        return DispatchResult(
            ability=item.ability_name,
            status=DispatchStatus.failed,
            output={"error": error},
            queue_id=item.id,
        )

    async def reject(self, queue_id: str, *, decided_by: str = "admin") -> bool:
        """
        Reject a pending item.

        Returns:
            True when this call rejected it; False when the item is unknown,
            expired or no longer pending. Use ``get`` to tell those apart.
        """
        now = self._clock()
        if not await self._repo.transition(queue_id, to_status=QueueStatus.rejected, now=now, decided_by=decided_by):
            return False
        item = await self._repo.get(queue_id)
        ability = item.ability_name if item is not None else "unknown"
        await self._audit.record(
            AuditEventType.ability_rejected,
            AuditSource.ability,
            f"Ability '{ability}' rejected ({queue_id}).",
            {"queue_id": queue_id, "ability": ability, "rejected_by": decided_by},
        )
        logger.info(f"Queue item {queue_id} rejected by {decided_by}")
        return True

    async def sweep_expired(self) -> int:
        """Mark every overdue pending item as expired; returns how many were expired."""
        expired = await self._repo.expire_due(now=self._clock())
        for item in expired:
            await self._audit.record(
                AuditEventType.approval_expired,
                AuditSource.system,
                f"Approval for '{item.ability_name}' expired ({item.id}).",
                {"queue_id": item.id, "ability": item.ability_name, "requested_by": item.requested_by.id},
            )
        if expired:
            logger.info(f"Expired {len(expired)} approval queue item(s)")
        return len(expired)
