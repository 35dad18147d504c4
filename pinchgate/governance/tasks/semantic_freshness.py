"""AI-assisted freshness review.

A small sample of the oldest published items is sent to the AI gateway, one
item per call, asking whether the content is factually stale. The gateway
client applies the circuit breaker: when it refuses, the task stops quietly
and returns what it has.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ...core.errors import UnavailableError, UpstreamFailureError
from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome

logger = logging.getLogger(__name__)

CONTENT_MAX_CHARS = 1500

PROMPT = (
    "Is this content factually stale? Consider: outdated dates, superseded statistics, obsolete advice, "
    "or time-sensitive claims that may no longer hold.\n\n"
    "TITLE: {title}\n\n"
    "CONTENT EXCERPT:\n{excerpt}\n\n"
    'Return ONLY a JSON object with two keys: "stale" (boolean) and "reason" (string, brief explanation '
    "if stale). No markdown."
)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_verdict(reply: str) -> Optional[Dict[str, Any]]:
    """Extract ``{"stale": bool, "reason": str}`` from a model reply, or None."""
    match = _JSON_OBJECT.search(reply)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("stale"), bool):
        return None
    return {"stale": data["stale"], "reason": str(data.get("reason", ""))}


@dataclass(frozen=True)
class SemanticFreshnessTask:
    descriptor: TaskDescriptor = TaskDescriptor(
        key="semantic_content_freshness",
        label="Semantic Content Freshness",
        interval_seconds=7 * 86400,
        ai_assisted=True,
    )

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        if ctx.gateway is None:
            return TaskOutcome()
        sample = await ctx.content.list_published(limit=ctx.ai_sample_size)
        stale: List[Dict[str, Any]] = []
        for processed, item in enumerate(sample[: ctx.ai_sample_size]):
            if ctx.exhausted(processed):
                break
            excerpt = item.excerpt
            if len(excerpt) > CONTENT_MAX_CHARS:
                excerpt = excerpt[:CONTENT_MAX_CHARS] + "..."
            prompt = PROMPT.format(title=item.title, excerpt=excerpt)
            try:
                reply = await ctx.gateway.send(prompt, session_key=f"pinchgate-semantic-freshness-{item.id}")
            except UnavailableError as e:
                logger.info(f"Semantic freshness stopped early: {e}")
                break
            except UpstreamFailureError as e:
                ctx.record_failure(f"post {item.id}", str(e))
                continue
            verdict = parse_verdict(reply)
            if verdict is None:
                ctx.record_failure(f"post {item.id}", "unparseable gateway reply")
                continue
            if verdict["stale"]:
                stale.append({"post_id": item.id, "title": item.title, "url": item.url, "reason": verdict["reason"]})

        if not stale:
            return TaskOutcome()
        return TaskOutcome(
            findings=[Finding(task_key=self.descriptor.key, payload=s) for s in stale],
            summary=f"{len(stale)} posts may contain outdated facts.",
        )
