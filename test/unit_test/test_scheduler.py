import asyncio

import httpx
import pytest

from pinchgate.governance.base import TaskContext, TaskDescriptor, TaskOutcome
from pinchgate.governance.delivery import FindingsDelivery
from pinchgate.governance.runner import GovernanceRunner
from pinchgate.scheduler import Scheduler
from pinchgate.schemas.domain import Actor


class _CountingTask:
    def __init__(self, key: str, interval_seconds: int) -> None:
        self.descriptor = TaskDescriptor(key=key, label=key, interval_seconds=interval_seconds)
        self.runs = 0

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        self.runs += 1
        return TaskOutcome()


@pytest.fixture
def hourly() -> _CountingTask:
    return _CountingTask("hourly", 3600)


@pytest.fixture
def daily() -> _CountingTask:
    return _CountingTask("daily", 86400)


@pytest.fixture
def scheduler(hourly, daily, audit, options, flags, webhooks, monotonic, build_stack):
    runner = GovernanceRunner(
        [hourly, daily],
        delivery=FindingsDelivery(audit=audit, webhooks=webhooks),
        options=options,
        audit=audit,
        http=httpx.AsyncClient(),
        flags=flags,
    )
    queue = build_stack().queue
    return Scheduler(runner, queue, tick_seconds=0.01, monotonic=monotonic)


@pytest.mark.asyncio
async def test_first_tick_runs_everything(scheduler, hourly, daily) -> None:
    assert await scheduler.due_tasks() == ["hourly", "daily"]

    reports = await scheduler.tick()

    assert [r.key for r in reports] == ["hourly", "daily"]
    assert hourly.runs == daily.runs == 1


@pytest.mark.asyncio
async def test_tasks_rerun_only_after_interval(scheduler, hourly, daily, monotonic) -> None:
    await scheduler.tick()

    assert await scheduler.tick() == []

    monotonic.advance(3600)
    await scheduler.tick()
    assert (hourly.runs, daily.runs) == (2, 1)

    monotonic.advance(86400)
    await scheduler.tick()
    assert (hourly.runs, daily.runs) == (3, 2)


@pytest.mark.asyncio
async def test_disabled_tasks_are_not_due(scheduler, hourly) -> None:
    await scheduler._runner.disable_task("hourly")

    await scheduler.tick()

    assert hourly.runs == 0


@pytest.mark.asyncio
async def test_tick_sweeps_expired_approvals(build_stack, make_ability, audit, options, webhooks, clock, monotonic) -> None:
    stack = build_stack(make_ability(requires_approval=True), ttl_seconds=60)
    await stack.dispatcher.dispatch(
        "menu/create-item", {"menu_id": 1, "title": "x"}, Actor(id="e", capabilities=["edit_theme_options"])
    )
    runner = GovernanceRunner(
        [],
        delivery=FindingsDelivery(audit=audit, webhooks=webhooks),
        options=options,
        audit=audit,
        http=httpx.AsyncClient(),
    )
    clock.advance(120)

    await Scheduler(runner, stack.queue, monotonic=monotonic).tick()

    assert stack.audit_repo.events()[-1] == "approval_expired"


@pytest.mark.asyncio
async def test_run_forever_stops(scheduler, hourly) -> None:
    task = asyncio.create_task(scheduler.run_forever())
    await asyncio.sleep(0.05)
    scheduler.stop()
    await asyncio.wait_for(task, timeout=1)

    assert hourly.runs == 1
