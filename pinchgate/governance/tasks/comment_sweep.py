from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome


async def comment_counts(ctx: TaskContext) -> Dict[str, int]:
    return {
        "pending": await ctx.content.count_pending_comments(),
        "spam": await ctx.content.count_spam_comments(),
    }


@dataclass(frozen=True)
class CommentSweepTask:
    descriptor: TaskDescriptor = TaskDescriptor(key="comment_sweep", label="Comment Sweep", interval_seconds=6 * 3600)

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        counts = await comment_counts(ctx)
        if counts["pending"] == 0 and counts["spam"] == 0:
            return TaskOutcome()
        return TaskOutcome(
            findings=[Finding(task_key=self.descriptor.key, payload=counts)],
            summary=f"{counts['pending']} comments awaiting moderation, {counts['spam']} in spam.",
        )
