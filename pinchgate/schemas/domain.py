from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import BaseSchema


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QueueStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    expired = "expired"


class CircuitState(str, Enum):
    closed = "closed"
    open = "open"
    half_open = "half_open"


class AuditSource(str, Enum):
    ability = "ability"
    governance = "governance"
    system = "system"


class AuditEventType(str, Enum):
    ability_executed = "ability_executed"
    ability_failed = "ability_failed"
    ability_queued = "ability_queued"
    ability_approved = "ability_approved"
    ability_approval_failed = "ability_approval_failed"
    ability_rejected = "ability_rejected"
    approval_expired = "approval_expired"
    circuit_open = "circuit_open"
    circuit_closed = "circuit_closed"
    governance_finding = "governance_finding"
    governance_delivery_failed = "governance_delivery_failed"
    governance_task_failed = "governance_task_failed"
    webhook_rate_limited = "webhook_rate_limited"


class Actor(BaseSchema):
    """Identity invoking an ability, with the coarse capabilities it holds."""

    id: str
    capabilities: List[str] = Field(default_factory=list)

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


class Invocation(BaseSchema):
    ability_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    actor: Actor
    created_at: datetime = Field(default_factory=_utc_now)


class QueueItem(BaseSchema):
    id: str
    ability_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    requested_by: Actor

    queued_at: datetime = Field(default_factory=_utc_now)
    expires_at: datetime

    status: QueueStatus = QueueStatus.pending
    decided_at: Optional[datetime] = None
    decided_by: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class CircuitSnapshot(BaseSchema):
    name: str
    state: CircuitState = CircuitState.closed
    consecutive_failures: int = Field(default=0, ge=0)
    opened_at: Optional[datetime] = None
    failure_threshold: int = Field(default=3, ge=1)
    open_duration: float = Field(default=60.0, gt=0.0)
    trial_started_at: Optional[datetime] = None


class AuditRecord(BaseSchema):
    id: Optional[int] = None
    event_type: str
    source: AuditSource
    message: str = ""
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)


class Finding(BaseSchema):
    """One observation produced by a governance task; ``payload`` is task-specific."""

    task_key: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=_utc_now)
