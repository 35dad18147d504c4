from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome

RESURFACE_AFTER_DAYS = 30


async def notes_to_resurface(ctx: TaskContext) -> List[Dict[str, Any]]:
    """Published items untouched for ``RESURFACE_AFTER_DAYS``, least recently modified first."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=RESURFACE_AFTER_DAYS)
    items = await ctx.content.list_published(modified_before=cutoff, limit=ctx.max_items)
    return [
        {"post_id": i.id, "title": i.title, "url": i.url, "modified": i.modified_at.isoformat()}
        for i in items[: ctx.max_items]
    ]


@dataclass(frozen=True)
class SpacedResurfacingTask:
    descriptor: TaskDescriptor = TaskDescriptor(
        key="spaced_resurfacing", label="Spaced Resurfacing", interval_seconds=86400
    )

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        notes = await notes_to_resurface(ctx)
        if not notes:
            return TaskOutcome()
        return TaskOutcome(
            findings=[Finding(task_key=self.descriptor.key, payload=n) for n in notes],
            summary=f"{len(notes)} posts have not been updated in over {RESURFACE_AFTER_DAYS} days.",
        )
