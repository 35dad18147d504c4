from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import httpx
import pytest

from pinchgate.governance.base import TaskContext, TaskDescriptor, TaskOutcome
from pinchgate.governance.content import ContentItem, LinkRef, SiteHealth
from pinchgate.schemas.domain import Finding


class FakeContentStore:
    def __init__(self) -> None:
        self.published: List[ContentItem] = []
        self.drafts: List[ContentItem] = []
        self.links: List[LinkRef] = []
        self.pending_comments = 0
        self.spam_comments = 0
        self.health = SiteHealth()

    async def list_published(self, *, modified_before: Optional[datetime] = None, limit: int = 50):
        items = [i for i in self.published if modified_before is None or i.modified_at < modified_before]
        return sorted(items, key=lambda i: i.modified_at)[:limit]

    async def list_drafts(self, *, modified_before: Optional[datetime] = None, limit: int = 50):
        items = [i for i in self.drafts if modified_before is None or i.modified_at < modified_before]
        return sorted(items, key=lambda i: i.modified_at)[:limit]

    async def list_links(self, *, limit: int = 50):
        return self.links[:limit]

    async def count_pending_comments(self) -> int:
        return self.pending_comments

    async def count_spam_comments(self) -> int:
        return self.spam_comments

    async def site_health(self) -> SiteHealth:
        return self.health


def content_item(
    item_id: str,
    *,
    days_old: int,
    title: Optional[str] = None,
    excerpt: str = "",
    body: Optional[str] = None,
    has_featured_image: Optional[bool] = None,
) -> ContentItem:
    return ContentItem(
        id=item_id,
        title=title or f"Post {item_id}",
        url=f"http://mock-site/{item_id}",
        modified_at=datetime.now(timezone.utc) - timedelta(days=days_old),
        excerpt=excerpt,
        body=body,
        has_featured_image=has_featured_image,
    )


class StubTask:
    """Governance task double with a fixed outcome, error or delay."""

    def __init__(
        self,
        key: str,
        *,
        findings: int = 0,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
        interval_seconds: int = 3600,
        ai_assisted: bool = False,
        enabled_by_default: bool = True,
    ) -> None:
        self.descriptor = TaskDescriptor(
            key=key,
            label=key.replace("_", " ").title(),
            interval_seconds=interval_seconds,
            ai_assisted=ai_assisted,
            enabled_by_default=enabled_by_default,
        )
        self._findings = findings
        self._error = error
        self._delay = delay
        self.runs: List[TaskContext] = []

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        self.runs.append(ctx)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        findings = [Finding(task_key=self.descriptor.key, payload={"n": n}) for n in range(self._findings)]
        return TaskOutcome(findings=findings, summary=f"{self._findings} findings from {self.descriptor.key}")


class SiteTransport:
    """MockTransport handler answering HEAD probes from a url -> outcome map.

    An outcome is a status code, an exception to raise, or a ``(status, location)``
    redirect pair.
    """

    def __init__(self, statuses: Dict[str, object]) -> None:
        self.statuses = statuses
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.statuses.get(str(request.url), 200)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, tuple):
            status, location = outcome
            return httpx.Response(status, headers={"Location": location})
        return httpx.Response(outcome)


@pytest.fixture
def content() -> FakeContentStore:
    return FakeContentStore()


@pytest.fixture
def make_content_item():
    return content_item


@pytest.fixture
def stub_task():
    return StubTask


@pytest.fixture
def site_transport():
    return SiteTransport
