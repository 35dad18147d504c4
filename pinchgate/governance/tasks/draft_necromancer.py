from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome

ABANDONED_AFTER_DAYS = 30


async def abandoned_drafts(ctx: TaskContext) -> List[Dict[str, Any]]:
    cutoff = datetime.now(timezone.utc) - timedelta(days=ABANDONED_AFTER_DAYS)
    drafts = await ctx.content.list_drafts(modified_before=cutoff, limit=ctx.max_items)
    return [
        {"post_id": d.id, "title": d.title, "last_modified": d.modified_at.isoformat()}
        for d in drafts[: ctx.max_items]
    ]


@dataclass(frozen=True)
class DraftNecromancerTask:
    descriptor: TaskDescriptor = TaskDescriptor(
        key="draft_necromancer", label="Draft Necromancer", interval_seconds=7 * 86400
    )

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        drafts = await abandoned_drafts(ctx)
        if not drafts:
            return TaskOutcome()
        return TaskOutcome(
            findings=[Finding(task_key=self.descriptor.key, payload=d) for d in drafts],
            summary=f"{len(drafts)} abandoned drafts found worth resurrecting.",
        )
