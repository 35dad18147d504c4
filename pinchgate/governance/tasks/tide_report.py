"""Tide report: one daily digest bundling several analyses into a single delivery."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome
from .comment_sweep import comment_counts
from .content_freshness import stale_posts
from .draft_necromancer import abandoned_drafts
from .seo_health import seo_findings
from .spaced_resurfacing import notes_to_resurface


@dataclass(frozen=True)
class TideReportTask:
    descriptor: TaskDescriptor = TaskDescriptor(key="tide_report", label="Tide Report", interval_seconds=86400)

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        key = self.descriptor.key
        findings: List[Finding] = []
        parts: List[str] = []

        posts = await stale_posts(ctx)
        if posts:
            findings.append(Finding(task_key=key, payload={"section": "content_freshness", "items": posts}))
            parts.append(f"{len(posts)} stale posts")

        seo = await seo_findings(ctx)
        if seo:
            findings.append(Finding(task_key=key, payload={"section": "seo_health", "items": seo}))
            parts.append(f"{len(seo)} SEO issues")

        counts = await comment_counts(ctx)
        if counts["pending"] or counts["spam"]:
            findings.append(Finding(task_key=key, payload={"section": "comment_sweep", **counts}))
            parts.append(f"{counts['pending']} pending, {counts['spam']} spam")

        drafts = await abandoned_drafts(ctx)
        if drafts:
            findings.append(Finding(task_key=key, payload={"section": "draft_necromancer", "items": drafts}))
            parts.append(f"{len(drafts)} drafts worth resurrecting")

        notes = await notes_to_resurface(ctx)
        if notes:
            findings.append(Finding(task_key=key, payload={"section": "spaced_resurfacing", "items": notes}))
            parts.append(f"{len(notes)} notes to resurface")

        if not findings:
            return TaskOutcome()
        return TaskOutcome(findings=findings, summary="Tide Report: " + "; ".join(parts) + ".")
