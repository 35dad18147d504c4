from __future__ import annotations

"""Repository interface contracts.

Components depend on these Protocols instead of concrete persistence
implementations, so tests can inject small in-memory fakes.

Contract guidelines
-------------------

- All methods are async.
- Implementations must not leak sessions or transactions to callers; every
  method is its own unit of work and is durable when it returns.
- The audit repository is append-only.
- Queue status changes go through ``transition``, a compare-and-swap that only
  succeeds for a pending, unexpired item. Concurrent callers racing on the
  same item observe exactly one ``True``.
"""

from datetime import datetime
from typing import Any, List, Optional, Protocol, Tuple

from ..schemas.domain import AuditRecord, CircuitSnapshot, QueueItem, QueueStatus


class AuditRepository(Protocol):
    """Append and query audit records."""

    async def append(self, record: AuditRecord) -> AuditRecord:
        """
        Persist a new record.

        Args:
            record: The record to insert; ``id`` is ignored.

        Returns:
            The stored record with its assigned monotonic ``id``.
        """
        ...

    async def query(
        self,
        *,
        event_type: Optional[str] = None,
        source: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
        newest_first: bool = True,
    ) -> Tuple[List[AuditRecord], int]:
        """
        Return one page of matching records and the total match count.

        Args:
            event_type: Exact event type filter.
            source: Exact source filter.
            search: Case-insensitive substring of the message.
            date_from: Inclusive lower bound on ``created_at``.
            date_to: Inclusive upper bound on ``created_at``.
            limit: Page size.
            offset: Records to skip.
            newest_first: Order by id descending when True.
        """
        ...

    async def list_since(self, event_type: str, since: datetime) -> List[AuditRecord]:
        """Return every record of ``event_type`` created at or after ``since``."""
        ...


class QueueRepository(Protocol):
    """Store deferred ability invocations."""

    async def create(self, item: QueueItem) -> None:
        """
        Insert a new pending item.

        Args:
            item: The queue item to persist.
        """
        ...

    async def get(self, item_id: str) -> Optional[QueueItem]:
        """Return the item with this id in any status, or None."""
        ...

    async def list_pending(self, *, now: datetime) -> List[QueueItem]:
        """Return pending items whose ``expires_at`` is after ``now``, oldest first."""
        ...

    async def transition(
        self,
        item_id: str,
        *,
        to_status: QueueStatus,
        now: datetime,
        decided_by: Optional[str] = None,
    ) -> bool:
        """
        Atomically move a pending, unexpired item to ``to_status``.

        Args:
            item_id: The queue item id.
            to_status: The terminal status to apply.
            now: Current time; items expiring at or before it are not eligible.
            decided_by: Who made the decision.

        Returns:
            True only for the single caller whose transition applied.
        """
        ...

    async def expire_due(self, *, now: datetime) -> List[QueueItem]:
        """Mark pending items that expired at or before ``now`` and return them."""
        ...


class CircuitStateRepository(Protocol):
    """Durable circuit breaker state, keyed by dependency name."""

    async def load(self, name: str) -> Optional[CircuitSnapshot]:
        """Return the stored snapshot or None if the breaker never saved one."""
        ...

    async def save(self, snapshot: CircuitSnapshot) -> None:
        """Insert or replace the snapshot for ``snapshot.name``."""
        ...


class OptionRepository(Protocol):
    """Key/value store for runtime options (feature flags, toggles, enabled tasks)."""

    async def get(self, key: str) -> Optional[Any]:
        """Return the JSON value stored under ``key`` or None."""
        ...

    async def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under ``key``."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove ``key``; returns False when it was not set."""
        ...
