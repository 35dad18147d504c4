from __future__ import annotations

"""SQLAlchemy ORM models for pinchgate persistence.

These ORM models define the SQL schema used by the SQL repository
implementation in ``pinchgate.repos.sql``.

Design
------

- Audit records form an append-only log with an autoincrement id, which is
  the monotonic ordering key.
- Queue items are tombstoned: terminal items keep their row and status so a
  late approve/reject can be told "already processed" rather than "not found".
- Circuit state is one row per guarded dependency.
- Options hold small JSON values (feature flags, disabled abilities, enabled
  governance tasks).

Structured columns use the portable ``JSON`` type so the same schema runs on
PostgreSQL and SQLite. Table names are prefixed with ``pg_``.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class AuditRow(Base):
    """Row model for ``pg_audit_log``.

    ``context`` holds sanitized, structured details; secret values never land here.
    """

    __tablename__ = "pg_audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(64), index=True)
    source: Mapped[str] = mapped_column(String(16), index=True)
    message: Mapped[str] = mapped_column(Text, default="")
    context: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class QueueItemRow(Base):
    """Row model for ``pg_approval_queue``.

    Key fields:

    - ``status``: pending/approved/rejected/expired.
    - ``requested_by``: the serialized actor that made the original request.
    """

    __tablename__ = "pg_approval_queue"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    ability_name: Mapped[str] = mapped_column(String(128))
    input: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    requested_by: Mapped[Dict[str, Any]] = mapped_column(JSON)

    queued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    status: Mapped[str] = mapped_column(String(16), index=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)


class CircuitStateRow(Base):
    """Row model for ``pg_circuit_state``."""

    __tablename__ = "pg_circuit_state"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    state: Mapped[str] = mapped_column(String(16))
    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0)
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_threshold: Mapped[int] = mapped_column(Integer)
    open_duration: Mapped[float] = mapped_column(Float)
    trial_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class OptionRow(Base):
    """Row model for ``pg_options``."""

    __tablename__ = "pg_options"

    key: Mapped[str] = mapped_column(String(191), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
