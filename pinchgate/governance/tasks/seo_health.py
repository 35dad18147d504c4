"""SEO health: title length, thin content, featured images and image alt text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List

from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome
from ..content import ContentItem

MIN_TITLE_CHARS = 20
MAX_TITLE_CHARS = 60
MIN_WORDS = 100

_TAG_RE = re.compile(r"<[^>]+>")
_WORD_RE = re.compile(r"\w+")
_IMG_RE = re.compile(r"<img[^>]+>", re.IGNORECASE)
_ALT_RE = re.compile(r"\balt\s*=\s*[\"']", re.IGNORECASE)


def seo_issues(item: ContentItem) -> List[str]:
    issues: List[str] = []
    if len(item.title) < MIN_TITLE_CHARS:
        issues.append(f"Title is shorter than {MIN_TITLE_CHARS} characters.")
    if len(item.title) > MAX_TITLE_CHARS:
        issues.append(f"Title exceeds {MAX_TITLE_CHARS} characters (may truncate in SERPs).")
    if item.body is not None:
        if len(_WORD_RE.findall(_TAG_RE.sub(" ", item.body))) < MIN_WORDS:
            issues.append(f"Content has fewer than {MIN_WORDS} words.")
        if any(not _ALT_RE.search(img) for img in _IMG_RE.findall(item.body)):
            issues.append("Image found without alt attribute.")
    if item.has_featured_image is False:
        issues.append("No featured image set.")
    return issues


async def seo_findings(ctx: TaskContext) -> List[Dict[str, Any]]:
    items = await ctx.content.list_published(limit=ctx.max_items)
    out: List[Dict[str, Any]] = []
    for item in items[: ctx.max_items]:
        issues = seo_issues(item)
        if issues:
            out.append({"post_id": item.id, "title": item.title, "url": item.url, "issues": issues})
    return out


@dataclass(frozen=True)
class SeoHealthTask:
    descriptor: TaskDescriptor = TaskDescriptor(key="seo_health", label="SEO Health", interval_seconds=86400)

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        found = await seo_findings(ctx)
        if not found:
            return TaskOutcome()
        return TaskOutcome(
            findings=[Finding(task_key=self.descriptor.key, payload=f) for f in found],
            summary=f"{len(found)} posts/pages have SEO issues.",
        )
