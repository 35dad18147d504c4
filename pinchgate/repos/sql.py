from __future__ import annotations

"""SQLAlchemy async repository implementations.

This module provides the SQL persistence implementation for the repository
interfaces defined in ``pinchgate.repos.interfaces``. It runs on PostgreSQL
(asyncpg) in production and on SQLite (aiosqlite) for tests and single-node
installs.

Usage
-----

Typical wiring (tests or application setup):

- Create an async engine with ``create_engine``.
- Create tables with ``create_all``.
- Create a session factory with ``create_sessionmaker``.
- Build repository instances with ``build_sql_repos``.

Transaction model
-----------------

Each repository method opens an ``AsyncSession``, performs its operation, and
commits. Queue status changes are single conditional ``UPDATE`` statements;
the affected row count tells the caller whether it won the transition.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..schemas.domain import (
    Actor,
    AuditRecord,
    AuditSource,
    CircuitSnapshot,
    CircuitState,
    QueueItem,
    QueueStatus,
)
from .interfaces import (
    AuditRepository,
    CircuitStateRepository,
    OptionRepository,
    QueueRepository,
)
from .models import AuditRow, Base, CircuitStateRow, OptionRow, QueueItemRow


def create_engine(db_url: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    The helper normalizes Postgres URLs to ensure the async driver is used.
    For example, it rewrites ``postgresql://`` and other variants to
    ``postgresql+asyncpg://``.
    """
    url = re.sub(r"^postgres(?:ql)?(?:\+[a-z0-9_]+)?://", "postgresql+asyncpg://", db_url, count=1)
    return create_async_engine(url, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an ``async_sessionmaker`` with safe defaults for this project."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create all tables for the current ORM metadata."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; every stored value is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _audit_from_row(row: AuditRow) -> AuditRecord:
    return AuditRecord(
        id=row.id,
        event_type=row.event_type,
        source=AuditSource(row.source),
        message=row.message or "",
        context=dict(row.context or {}),
        created_at=_as_utc(row.created_at),
    )


def _queue_item_from_row(row: QueueItemRow) -> QueueItem:
    return QueueItem(
        id=row.id,
        ability_name=row.ability_name,
        input=dict(row.input or {}),
        requested_by=Actor.model_validate(row.requested_by),
        queued_at=_as_utc(row.queued_at),
        expires_at=_as_utc(row.expires_at),
        status=QueueStatus(row.status),
        decided_at=_as_utc(row.decided_at),
        decided_by=row.decided_by,
    )


@dataclass(frozen=True)
class SqlAuditRepository(AuditRepository):
    """SQL implementation of ``AuditRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def append(self, record: AuditRecord) -> AuditRecord:
        """
        Insert one audit record.

        Args:
            record: The record to insert.

        Returns:
            The record carrying the id assigned by the database.
        """
        async with self.session_factory() as s:
            row = AuditRow(
                event_type=record.event_type,
                source=record.source.value,
                message=record.message,
                context=record.context,
                created_at=record.created_at,
            )
            s.add(row)
            await s.commit()
            return record.model_copy(update={"id": row.id})

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
        Filter, count and page audit records.

        Returns:
            ``(records, total)`` where ``total`` ignores ``limit``/``offset``.
        """
        conditions = []
        if event_type:
            conditions.append(AuditRow.event_type == event_type)
        if source:
            conditions.append(AuditRow.source == source)
        if search:
            conditions.append(func.lower(AuditRow.message).contains(search.lower(), autoescape=True))
        if date_from is not None:
            conditions.append(AuditRow.created_at >= date_from)
        if date_to is not None:
            conditions.append(AuditRow.created_at <= date_to)

        count_stmt = select(func.count()).select_from(AuditRow)
        page_stmt = select(AuditRow)
        if conditions:
            count_stmt = count_stmt.where(*conditions)
            page_stmt = page_stmt.where(*conditions)
        order = AuditRow.id.desc() if newest_first else AuditRow.id.asc()
        async with self.session_factory() as s:
            total = (await s.execute(count_stmt)).scalar_one()
            res = await s.execute(page_stmt.order_by(order).limit(limit).offset(offset))
            return [_audit_from_row(r) for r in res.scalars().all()], int(total)

    async def list_since(self, event_type: str, since: datetime) -> List[AuditRecord]:
        """
        Return records of one event type created at or after ``since``.

        Args:
            event_type: The event type to match.
            since: Inclusive lower bound on ``created_at``.
        """
        async with self.session_factory() as s:
            res = await s.execute(
                select(AuditRow)
                .where(AuditRow.event_type == event_type, AuditRow.created_at >= since)
                .order_by(AuditRow.id.asc())
            )
            return [_audit_from_row(r) for r in res.scalars().all()]


@dataclass(frozen=True)
class SqlQueueRepository(QueueRepository):
    """SQL implementation of ``QueueRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def create(self, item: QueueItem) -> None:
        """
        Persist a new queue item.

        Args:
            item: The item to insert.
        """
        async with self.session_factory() as s:
            s.add(
                QueueItemRow(
                    id=item.id,
                    ability_name=item.ability_name,
                    input=item.input,
                    requested_by=item.requested_by.model_dump(mode="json"),
                    queued_at=item.queued_at,
                    expires_at=item.expires_at,
                    status=item.status.value,
                    decided_at=item.decided_at,
                    decided_by=item.decided_by,
                )
            )
            await s.commit()

    async def get(self, item_id: str) -> Optional[QueueItem]:
        """
        Retrieve an item by id regardless of status.

        Args:
            item_id: The queue item id.

        Returns:
            The QueueItem or None.
        """
        async with self.session_factory() as s:
            row = await s.get(QueueItemRow, item_id)
            return _queue_item_from_row(row) if row is not None else None

    async def list_pending(self, *, now: datetime) -> List[QueueItem]:
        async with self.session_factory() as s:
            res = await s.execute(
                select(QueueItemRow)
                .where(QueueItemRow.status == QueueStatus.pending.value, QueueItemRow.expires_at > now)
                .order_by(QueueItemRow.queued_at.asc(), QueueItemRow.id.asc())
            )
            return [_queue_item_from_row(r) for r in res.scalars().all()]

    async def transition(
        self,
        item_id: str,
        *,
        to_status: QueueStatus,
        now: datetime,
        decided_by: Optional[str] = None,
    ) -> bool:
        """
        Compare-and-swap a pending, unexpired item into ``to_status``.

        Args:
            item_id: The queue item id.
            to_status: Target status.
            now: Current time used for the expiry guard and ``decided_at``.
            decided_by: Identity recorded on the item.

        Returns:
            True when exactly this call applied the transition.
        """
        stmt = (
            update(QueueItemRow)
            .where(
                QueueItemRow.id == item_id,
                QueueItemRow.status == QueueStatus.pending.value,
                QueueItemRow.expires_at > now,
            )
            .values(status=to_status.value, decided_at=now, decided_by=decided_by)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as s:
            res = await s.execute(stmt)
            await s.commit()
            return res.rowcount == 1

    async def expire_due(self, *, now: datetime) -> List[QueueItem]:
        """
        Mark every pending item whose ``expires_at`` passed as expired.

        Each row is flipped with its own conditional update so an item that is
        concurrently approved or rejected is never reported as expired.

        Returns:
            The items this call expired.
        """
        expired: List[QueueItem] = []
        async with self.session_factory() as s:
            res = await s.execute(
                select(QueueItemRow)
                .where(QueueItemRow.status == QueueStatus.pending.value, QueueItemRow.expires_at <= now)
                .order_by(QueueItemRow.queued_at.asc())
            )
            due = [_queue_item_from_row(r) for r in res.scalars().all()]
            for item in due:
                upd = await s.execute(
                    update(QueueItemRow)
                    .where(QueueItemRow.id == item.id, QueueItemRow.status == QueueStatus.pending.value)
                    .values(status=QueueStatus.expired.value, decided_at=now, decided_by="system")
                    .execution_options(synchronize_session=False)
                )
                if upd.rowcount == 1:
                    expired.append(
                        item.model_copy(update={"status": QueueStatus.expired, "decided_at": now, "decided_by": "system"})
                    )
            await s.commit()
        return expired


@dataclass(frozen=True)
class SqlCircuitStateRepository(CircuitStateRepository):
    """SQL implementation of ``CircuitStateRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def load(self, name: str) -> Optional[CircuitSnapshot]:
        async with self.session_factory() as s:
            row = await s.get(CircuitStateRow, name)
            if row is None:
                return None
            return CircuitSnapshot(
                name=row.name,
                state=CircuitState(row.state),
                consecutive_failures=row.consecutive_failures,
                opened_at=_as_utc(row.opened_at),
                failure_threshold=row.failure_threshold,
                open_duration=row.open_duration,
                trial_started_at=_as_utc(row.trial_started_at),
            )

    async def save(self, snapshot: CircuitSnapshot) -> None:
        async with self.session_factory() as s:
            await s.merge(
                CircuitStateRow(
                    name=snapshot.name,
                    state=snapshot.state.value,
                    consecutive_failures=snapshot.consecutive_failures,
                    opened_at=snapshot.opened_at,
                    failure_threshold=snapshot.failure_threshold,
                    open_duration=snapshot.open_duration,
                    trial_started_at=snapshot.trial_started_at,
                    updated_at=_utc_now(),
                )
            )
            await s.commit()


@dataclass(frozen=True)
class SqlOptionRepository(OptionRepository):
    """SQL implementation of ``OptionRepository``."""

    session_factory: async_sessionmaker[AsyncSession]

    async def get(self, key: str) -> Optional[Any]:
        async with self.session_factory() as s:
            row = await s.get(OptionRow, key)
            return row.value if row is not None else None

    async def set(self, key: str, value: Any) -> None:
        async with self.session_factory() as s:
            await s.merge(OptionRow(key=key, value=value, updated_at=_utc_now()))
            await s.commit()

    async def delete(self, key: str) -> bool:
        async with self.session_factory() as s:
            res = await s.execute(delete(OptionRow).where(OptionRow.key == key))
            await s.commit()
            return res.rowcount == 1


@dataclass(frozen=True)
class SqlRepoBundle:
    """Convenience bundle of all SQL repositories for dependency injection."""

    audit: SqlAuditRepository
    queue: SqlQueueRepository
    circuits: SqlCircuitStateRepository
    options: SqlOptionRepository


def build_sql_repos(*, session_factory: async_sessionmaker[AsyncSession]) -> SqlRepoBundle:
    """Build a ``SqlRepoBundle`` from a session factory."""
    return SqlRepoBundle(
        audit=SqlAuditRepository(session_factory=session_factory),
        queue=SqlQueueRepository(session_factory=session_factory),
        circuits=SqlCircuitStateRepository(session_factory=session_factory),
        options=SqlOptionRepository(session_factory=session_factory),
    )
