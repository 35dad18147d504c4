"""Shared fixtures for pinchgate unit tests.

In-memory implementations of the repository protocols keep unit tests free
of a database; the SQL implementations are covered by the e2e suite.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from pydantic import BaseModel, Field

from pinchgate.abilities import (
    AbilityContext,
    AbilityDescriptor,
    AbilityDispatcher,
    AbilityExecutor,
    AbilityRegistry,
    AbilityResultCache,
    AbilityToggles,
)
from pinchgate.approvals.queue import ApprovalQueue
from pinchgate.audit.log import AuditLog
from pinchgate.features import FeatureFlags
from pinchgate.schemas.domain import AuditRecord, CircuitSnapshot, QueueItem, QueueStatus
from pinchgate.webhooks.dispatcher import WebhookDispatcher

# =====================================================================
# In-memory repositories
# =====================================================================


class InMemoryAuditRepository:
    def __init__(self) -> None:
        self.records: List[AuditRecord] = []

    async def append(self, record: AuditRecord) -> AuditRecord:
        stored = record.model_copy(update={"id": len(self.records) + 1})
        self.records.append(stored)
        return stored

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
        rows = [
            r
            for r in self.records
            if (not event_type or r.event_type == event_type)
            and (not source or r.source.value == source)
            and (not search or search.lower() in r.message.lower())
            and (date_from is None or r.created_at >= date_from)
            and (date_to is None or r.created_at <= date_to)
        ]
        if newest_first:
            rows.reverse()
        return rows[offset : offset + limit], len(rows)

    async def list_since(self, event_type: str, since: datetime) -> List[AuditRecord]:
        return [r for r in self.records if r.event_type == event_type and r.created_at >= since]

    def events(self) -> List[str]:
        return [r.event_type for r in self.records]

    def of(self, event_type: str) -> List[AuditRecord]:
        return [r for r in self.records if r.event_type == event_type]


class InMemoryQueueRepository:
    def __init__(self) -> None:
        self.items: Dict[str, QueueItem] = {}

    async def create(self, item: QueueItem) -> None:
        self.items[item.id] = item

    async def get(self, item_id: str) -> Optional[QueueItem]:
        return self.items.get(item_id)

    async def list_pending(self, *, now: datetime) -> List[QueueItem]:
        pending = [i for i in self.items.values() if i.status is QueueStatus.pending and i.expires_at > now]
        return sorted(pending, key=lambda i: (i.queued_at, i.id))

    async def transition(
        self,
        item_id: str,
        *,
        to_status: QueueStatus,
        now: datetime,
        decided_by: Optional[str] = None,
    ) -> bool:
        # Yield first so concurrent callers interleave like real round-trips.
        await asyncio.sleep(0)
        item = self.items.get(item_id)
        if item is None or item.status is not QueueStatus.pending or item.expires_at <= now:
            return False
        self.items[item_id] = item.model_copy(update={"status": to_status, "decided_at": now, "decided_by": decided_by})
        return True

    async def expire_due(self, *, now: datetime) -> List[QueueItem]:
        expired = []
        for item in list(self.items.values()):
            if item.status is QueueStatus.pending and item.expires_at <= now:
                updated = item.model_copy(
                    update={"status": QueueStatus.expired, "decided_at": now, "decided_by": "system"}
                )
                self.items[item.id] = updated
                expired.append(updated)
        return expired


class InMemoryCircuitStateRepository:
    def __init__(self) -> None:
        self.states: Dict[str, CircuitSnapshot] = {}
        self.saves = 0

    async def load(self, name: str) -> Optional[CircuitSnapshot]:
        return self.states.get(name)

    async def save(self, snapshot: CircuitSnapshot) -> None:
        self.saves += 1
        self.states[snapshot.name] = snapshot


class InMemoryOptionRepository:
    def __init__(self) -> None:
        self.values: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self.values.get(key))

    async def set(self, key: str, value: Any) -> None:
        self.values[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        return self.values.pop(key, None) is not None


# =====================================================================
# Clocks
# =====================================================================


class FakeClock:
    """Settable UTC clock; call it to read the time."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


# =====================================================================
# Abilities
# =====================================================================


class MenuItemInput(BaseModel):
    menu_id: int
    title: str = Field(min_length=1)
    url: Optional[str] = None


class RecordingAbility:
    """Ability double that records every call and returns (or raises) a fixed outcome."""

    def __init__(self, descriptor: AbilityDescriptor, result: Optional[Dict[str, Any]] = None, error=None) -> None:
        self.descriptor = descriptor
        self.calls: List[Tuple[AbilityContext, Dict[str, Any]]] = []
        self._result = result if result is not None else {"id": 101, "title": "created"}
        self._error = error

    async def execute(self, ctx: AbilityContext, *, args: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((ctx, args))
        if self._error is not None:
            raise self._error
        return dict(self._result)


def _make_ability(
    name: str = "menu/create-item",
    *,
    capability: str = "edit_theme_options",
    requires_approval: bool = False,
    read_only: bool = False,
    notify: bool = False,
    result: Optional[Dict[str, Any]] = None,
    error: Optional[BaseException] = None,
    input_model: type = MenuItemInput,
) -> RecordingAbility:
    descriptor = AbilityDescriptor(
        name=name,
        required_capability=capability,
        input_model=input_model,
        requires_approval=requires_approval,
        read_only=read_only,
        notify=notify,
    )
    return RecordingAbility(descriptor, result=result, error=error)


class WebhookRecorder:
    """MockTransport handler collecting every webhook request."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})


# =====================================================================
# Fixtures
# =====================================================================


@pytest.fixture
def audit_repo() -> InMemoryAuditRepository:
    return InMemoryAuditRepository()


@pytest.fixture
def audit(audit_repo: InMemoryAuditRepository) -> AuditLog:
    return AuditLog(audit_repo)


@pytest.fixture
def options() -> InMemoryOptionRepository:
    return InMemoryOptionRepository()


@pytest.fixture
def flags(options: InMemoryOptionRepository) -> FeatureFlags:
    return FeatureFlags(options)


@pytest.fixture
def queue_repo() -> InMemoryQueueRepository:
    return InMemoryQueueRepository()


@pytest.fixture
def circuit_repo() -> InMemoryCircuitStateRepository:
    return InMemoryCircuitStateRepository()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def webhook_recorder() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
async def webhooks(webhook_recorder: WebhookRecorder):
    client = httpx.AsyncClient(transport=httpx.MockTransport(webhook_recorder))
    yield WebhookDispatcher("http://mock-hooks/hooks/agent", auth_token="hook-token", client=client)
    await client.aclose()


@pytest.fixture
def build_stack(audit, audit_repo, options, flags, queue_repo, clock, webhooks):
    """Return a builder wiring registry, executor, queue and dispatcher over in-memory repos."""

    def _build(*abilities: RecordingAbility, exempt_actors=(), ttl_seconds: float = 900.0) -> SimpleNamespace:
        registry = AbilityRegistry(abilities)
        cache = AbilityResultCache(options)
        toggles = AbilityToggles(options, registry)
        executor = AbilityExecutor(audit=audit, flags=flags, cache=cache, webhooks=webhooks)
        queue = ApprovalQueue(
            queue_repo, registry=registry, executor=executor, audit=audit, ttl_seconds=ttl_seconds, clock=clock
        )
        dispatcher = AbilityDispatcher(
            registry=registry,
            executor=executor,
            queue=queue,
            toggles=toggles,
            flags=flags,
            exempt_actors=exempt_actors,
        )
        return SimpleNamespace(
            registry=registry,
            cache=cache,
            toggles=toggles,
            executor=executor,
            queue=queue,
            dispatcher=dispatcher,
            audit=audit,
            audit_repo=audit_repo,
            queue_repo=queue_repo,
            flags=flags,
            clock=clock,
        )

    return _build


@pytest.fixture
def make_ability():
    """Factory for ``RecordingAbility`` doubles (defaults to ``menu/create-item``)."""
    return _make_ability
