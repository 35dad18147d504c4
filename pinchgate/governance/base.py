from __future__ import annotations

"""Governance task contracts.

A governance task is a scheduled analysis routine. It reads from the content
store (and, for AI-assisted tasks, from the gated AI gateway) and returns
zero or more ``Finding`` objects plus a human-readable summary.

Tasks must honor the caps on ``TaskContext``: stop gathering once
``ctx.exhausted()`` is true and return what they have. A failing unit of
work (one link, one AI call) is recorded with ``ctx.record_failure`` and the
task moves on.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx

from ..gateway.client import GatewayClient
from ..schemas.domain import Finding
from .content import ContentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskDescriptor:
    """Static description of one governance task.

    Attributes:
        key: Catalog key, e.g. ``broken_links``.
        label: Human-readable name.
        interval_seconds: How often the scheduler runs it.
        ai_assisted: The task calls the AI gateway.
        enabled_by_default: Whether the task runs when no override disables it.
    """

    key: str
    label: str
    interval_seconds: int
    ai_assisted: bool = False
    enabled_by_default: bool = True


@dataclass
class TaskContext:
    """Collaborators and limits for one task run."""

    task_key: str
    content: ContentStore
    http: httpx.AsyncClient
    gateway: Optional[GatewayClient] = None
    max_items: int = 50
    deadline: float = float("inf")
    ai_sample_size: int = 10
    stale_after_days: int = 180
    monotonic: Callable[[], float] = time.monotonic
    failures: List[Dict[str, Any]] = field(default_factory=list)

    def exhausted(self, processed: int = 0) -> bool:
        """True when the item cap is reached or the time budget is spent."""
        return processed >= self.max_items or self.monotonic() >= self.deadline

    def record_failure(self, unit: str, error: str) -> None:
        """Record one failed unit of work without aborting the task."""
        self.failures.append({"unit": unit, "error": error})
        logger.warning(f"[{self.task_key}] {unit}: {error}")


@dataclass(frozen=True)
class TaskOutcome:
    findings: List[Finding] = field(default_factory=list)
    summary: str = ""


class GovernanceTask(Protocol):
    descriptor: TaskDescriptor

    async def run(self, ctx: TaskContext) -> TaskOutcome: ...


class TaskRunStatus(str, Enum):
    delivered = "delivered"
    empty = "empty"
    skipped = "skipped"
    failed = "failed"
    delivery_failed = "delivery_failed"


@dataclass(frozen=True)
class TaskReport:
    """Result of one task run as reported to the scheduler or CLI."""

    key: str
    status: TaskRunStatus
    finding_count: int = 0
    summary: str = ""
    error: Optional[str] = None
    unit_failures: int = 0
