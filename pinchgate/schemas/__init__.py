"""Pydantic schemas shared across pinchgate components."""

from .base import BaseSchema
from .domain import (
    Actor,
    AuditEventType,
    AuditRecord,
    AuditSource,
    CircuitSnapshot,
    CircuitState,
    Finding,
    Invocation,
    QueueItem,
    QueueStatus,
)

__all__ = [
    "Actor",
    "AuditEventType",
    "AuditRecord",
    "AuditSource",
    "BaseSchema",
    "CircuitSnapshot",
    "CircuitState",
    "Finding",
    "Invocation",
    "QueueItem",
    "QueueStatus",
]
