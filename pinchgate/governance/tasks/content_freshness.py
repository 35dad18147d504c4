from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome


async def stale_posts(ctx: TaskContext) -> List[Dict[str, Any]]:
    """Published items not modified within ``ctx.stale_after_days``, oldest first."""
    now = datetime.now(timezone.utc)
    cutoff = now - timedelta(days=ctx.stale_after_days)
    items = await ctx.content.list_published(modified_before=cutoff, limit=ctx.max_items)
    return [
        {
            "post_id": item.id,
            "title": item.title,
            "url": item.url,
            "last_modified": item.modified_at.isoformat(),
            "days_stale": (now - item.modified_at).days,
        }
        for item in items[: ctx.max_items]
    ]


@dataclass(frozen=True)
class ContentFreshnessTask:
    descriptor: TaskDescriptor = TaskDescriptor(
        key="content_freshness", label="Content Freshness", interval_seconds=86400
    )

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        posts = await stale_posts(ctx)
        if not posts:
            return TaskOutcome()
        return TaskOutcome(
            findings=[Finding(task_key=self.descriptor.key, payload=p) for p in posts],
            summary=f"{len(posts)} posts have not been updated in over {ctx.stale_after_days} days.",
        )
