"""Governance task runner.

Runs catalog tasks one at a time and hands non-empty findings to
``FindingsDelivery``. Each task is isolated: an exception or a timeout in one
task is logged, audited as ``governance_task_failed`` and reported, and the
batch continues with the next task.

Limits
------

- ``max_items`` and ``time_budget`` are soft caps passed to the task through
  ``TaskContext``; the task stops gathering and returns partial findings.
- ``task_timeout`` is a hard cap enforced with ``asyncio.wait_for``; a task
  that hits it produces no delivery.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional

import httpx

from ..audit.log import AuditLog
from ..core.errors import NotFoundError
from ..core.monitoring import log_governance_run
from ..features import FeatureFlags
from ..gateway.client import GatewayClient
from ..repos.interfaces import OptionRepository
from ..schemas.domain import AuditEventType, AuditSource
from .base import GovernanceTask, TaskContext, TaskDescriptor, TaskReport, TaskRunStatus
from .content import ContentStore, NullContentStore
from .delivery import FindingsDelivery

logger = logging.getLogger(__name__)

DISABLED_OPTION_KEY = "governance_disabled_tasks"


class GovernanceRunner:
    """Resolve and run governance tasks.

    Args:
        tasks: The static task catalog, in run order.
        delivery: Findings delivery.
        options: Option store for the disabled-task list.
        audit: Audit log for task failures.
        content: Content-store collaborator (defaults to an empty store).
        gateway: Gated AI gateway client for AI-assisted tasks.
        http: HTTP client handed to tasks that probe URLs; when omitted the runner
            creates one and ``aclose`` closes it.
        flags: Feature flags (``governance_ai_tasks``).
        max_items: Per-task unit-of-work cap.
        time_budget: Soft per-task time budget in seconds.
        task_timeout: Hard per-task timeout in seconds.
        ai_sample_size: Items an AI-assisted task may send to the gateway.
        stale_after_days: Age threshold for freshness tasks.
    """

    def __init__(
        self,
        tasks: Iterable[GovernanceTask],
        *,
        delivery: FindingsDelivery,
        options: OptionRepository,
        audit: AuditLog,
        content: Optional[ContentStore] = None,
        gateway: Optional[GatewayClient] = None,
        http: Optional[httpx.AsyncClient] = None,
        flags: Optional[FeatureFlags] = None,
        max_items: int = 50,
        time_budget: float = 120.0,
        task_timeout: float = 300.0,
        ai_sample_size: int = 10,
        stale_after_days: int = 180,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._tasks: Dict[str, GovernanceTask] = {}
        for task in tasks:
            if task.descriptor.key in self._tasks:
                raise ValueError(f"duplicate governance task key: {task.descriptor.key}")
            self._tasks[task.descriptor.key] = task
        self._delivery = delivery
        self._options = options
        self._audit = audit
        self._content = content or NullContentStore()
        self._gateway = gateway
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=5.0, follow_redirects=False)
        self._flags = flags
        self._max_items = max_items
        self._time_budget = time_budget
        self._task_timeout = task_timeout
        self._ai_sample_size = ai_sample_size
        self._stale_after_days = stale_after_days
        self._monotonic = monotonic
        self._lock = asyncio.Lock()

    async def aclose(self) -> None:
        """Close the HTTP client when the runner created it."""
        if self._owns_http:
            await self._http.aclose()

    def catalog(self) -> List[TaskDescriptor]:
        """Every task descriptor in catalog order."""
        return [t.descriptor for t in self._tasks.values()]

    def has(self, key: str) -> bool:
        return key in self._tasks

    async def _disabled(self) -> List[str]:
        stored = await self._options.get(DISABLED_OPTION_KEY)
        if isinstance(stored, list):
            return [str(k) for k in stored]
        return [t.descriptor.key for t in self._tasks.values() if not t.descriptor.enabled_by_default]

    async def enabled_keys(self) -> List[str]:
        """Keys of enabled tasks in catalog order."""
        disabled = set(await self._disabled())
        return [k for k in self._tasks if k not in disabled]

    async def _set_enabled(self, key: str, enabled: bool) -> None:
        if key not in self._tasks:
            raise NotFoundError(f"Unknown governance task '{key}'.")
        async with self._lock:
            disabled = set(await self._disabled())
            if enabled:
                disabled.discard(key)
            else:
                disabled.add(key)
            await self._options.set(DISABLED_OPTION_KEY, sorted(disabled))
        logger.info(f"Governance task '{key}' {'enabled' if enabled else 'disabled'}")

    async def enable_task(self, key: str) -> None:
        await self._set_enabled(key, True)

    async def disable_task(self, key: str) -> None:
        await self._set_enabled(key, False)

    def _context(self, key: str) -> TaskContext:
        return TaskContext(
            task_key=key,
            content=self._content,
            http=self._http,
            gateway=self._gateway,
            max_items=self._max_items,
            deadline=self._monotonic() + self._time_budget,
            ai_sample_size=self._ai_sample_size,
            stale_after_days=self._stale_after_days,
            monotonic=self._monotonic,
        )

    async def _ai_allowed(self) -> bool:
        if self._gateway is None or not self._gateway.configured:
            return False
        return self._flags is None or await self._flags.is_enabled("governance_ai_tasks")

    async def run_task(self, key: str) -> TaskReport:
        """
        Run one task and deliver its findings.

        Raises:
            NotFoundError: ``key`` is not in the catalog.
        """
        task = self._tasks.get(key)
        if task is None:
            raise NotFoundError(f"Unknown governance task '{key}'.")

        if task.descriptor.ai_assisted and not await self._ai_allowed():
            logger.info(f"Governance task '{key}' skipped: AI gateway not available for governance")
            return TaskReport(key=key, status=TaskRunStatus.skipped, summary="AI-assisted tasks are unavailable.")

        ctx = self._context(key)
        started = time.perf_counter()
        try:
            outcome = await asyncio.wait_for(task.run(ctx), timeout=self._task_timeout)
        except asyncio.TimeoutError:
            return await self._failed(key, f"timed out after {self._task_timeout:g}s", ctx)
        except Exception as e:
            logger.exception(f"Governance task '{key}' failed")
            return await self._failed(key, str(e) or type(e).__name__, ctx)

        duration_ms = (time.perf_counter() - started) * 1000
        if not outcome.findings:
            logger.info(f"Governance task '{key}' found nothing")
            log_governance_run(key, TaskRunStatus.empty.value, 0, duration_ms)
            return TaskReport(
                key=key,
                status=TaskRunStatus.empty,
                summary=outcome.summary,
                unit_failures=len(ctx.failures),
            )

        delivered = await self._delivery.deliver(key, outcome.findings, outcome.summary)
        status = TaskRunStatus.delivered if delivered else TaskRunStatus.delivery_failed
        logger.info(f"Governance task '{key}': {len(outcome.findings)} finding(s), {status.value}")
        log_governance_run(key, status.value, len(outcome.findings), duration_ms)
        return TaskReport(
            key=key,
            status=status,
            finding_count=len(outcome.findings),
            summary=outcome.summary,
            unit_failures=len(ctx.failures),
        )

    async def _failed(self, key: str, error: str, ctx: TaskContext) -> TaskReport:
        logger.error(f"Governance task '{key}' failed: {error}")
        await self._audit.record(
            AuditEventType.governance_task_failed,
            AuditSource.governance,
            f"Governance task '{key}' failed: {error}",
            {"task": key, "error": error},
        )
        log_governance_run(key, TaskRunStatus.failed.value, 0)
        return TaskReport(key=key, status=TaskRunStatus.failed, error=error, unit_failures=len(ctx.failures))

    async def run_tasks(self, keys: Iterable[str]) -> List[TaskReport]:
        """Run the given tasks in order; unknown keys are warned about and reported as skipped."""
        reports: List[TaskReport] = []
        for key in keys:
            if key not in self._tasks:
                logger.warning(f"Unknown governance task '{key}' skipped")
                reports.append(TaskReport(key=key, status=TaskRunStatus.skipped, error="unknown task"))
                continue
            try:
                reports.append(await self.run_task(key))
            except Exception as e:
                # delivery or audit storage failed after the task itself ran
                logger.exception(f"Governance task '{key}' could not be completed")
                reports.append(TaskReport(key=key, status=TaskRunStatus.failed, error=str(e) or type(e).__name__))
        return reports

    async def run_all_enabled(self) -> List[TaskReport]:
        """Run every enabled task; one task's failure never stops the batch."""
        return await self.run_tasks(await self.enabled_keys())
