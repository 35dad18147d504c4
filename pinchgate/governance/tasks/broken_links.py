"""Broken link probe.

Each outbound link gets a ``HEAD`` request. Redirects are followed by hand,
at most ``MAX_REDIRECTS`` hops, and every hop is checked before it is
requested: links or redirects pointing at private, loopback or link-local
addresses are never probed. A transport error on one link is recorded as a
unit failure and the probe moves on; probing stops at the item cap or when
the time budget runs out, and whatever was found so far is returned.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome

PROBE_TIMEOUT = 5.0
MAX_REDIRECTS = 3


def is_private_host(url: str) -> bool:
    """True for URLs whose host is localhost or a non-public IP literal."""
    try:
        host = httpx.URL(url).host
    except httpx.InvalidURL:
        return True
    if not host or host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        addr = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_reserved


async def probe_status(http: httpx.AsyncClient, url: str) -> Optional[int]:
    """
    Return the final HTTP status of ``url``.

    Returns:
        The status code, or None when a redirect points at a private host.

    Raises:
        httpx.HTTPError: Transport failure, or more than ``MAX_REDIRECTS`` hops.
    """
    for _ in range(MAX_REDIRECTS + 1):
        r = await http.head(url, timeout=PROBE_TIMEOUT, follow_redirects=False)
        if not r.is_redirect:
            return r.status_code
        url = str(r.url.join(r.headers["location"]))
        if is_private_host(url):
            return None
    raise httpx.TooManyRedirects(f"more than {MAX_REDIRECTS} redirects", request=r.request)


@dataclass(frozen=True)
class BrokenLinksTask:
    descriptor: TaskDescriptor = TaskDescriptor(key="broken_links", label="Broken Links", interval_seconds=7 * 86400)

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        links = await ctx.content.list_links(limit=ctx.max_items)
        broken: List[Dict[str, Any]] = []
        checked = 0
        for link in links:
            if ctx.exhausted(checked):
                break
            if is_private_host(link.url):
                continue
            checked += 1
            try:
                status = await probe_status(ctx.http, link.url)
            except httpx.HTTPError as e:
                ctx.record_failure(link.url, f"{type(e).__name__}: {e}")
                continue
            if status is None:
                ctx.record_failure(link.url, "redirects to a private address")
                continue
            if status >= 400:
                broken.append({"post_id": link.post_id, "url": link.url, "status": status})

        if not broken:
            return TaskOutcome(summary=f"Checked {checked} links; none broken.")
        return TaskOutcome(
            findings=[Finding(task_key=self.descriptor.key, payload=b) for b in broken],
            summary=f"{len(broken)} broken links found across {checked} checked.",
        )
