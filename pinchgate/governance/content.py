"""Content-store collaborator used by governance tasks.

The content system itself (posts, comments, drafts) lives outside pinchgate.
Hosts provide an object implementing ``ContentStore``; ``NullContentStore``
stands in when none is configured, so every task simply finds nothing.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from pydantic import Field

from ..schemas.base import BaseSchema


class ContentItem(BaseSchema):
    """One post or page.

    ``body`` and ``has_featured_image`` are optional; stores that cannot
    provide them leave them ``None`` and the checks depending on them are
    skipped.
    """

    id: str
    title: str
    url: Optional[str] = None
    modified_at: datetime
    excerpt: str = ""
    body: Optional[str] = None
    has_featured_image: Optional[bool] = None


class LinkRef(BaseSchema):
    post_id: str
    url: str


class SiteHealth(BaseSchema):
    """Security-relevant state of the host site. The defaults describe a healthy site."""

    core_update_available: bool = False
    plugin_updates: List[str] = Field(default_factory=list)
    theme_updates: List[str] = Field(default_factory=list)
    debug_mode: bool = False
    file_editing_enabled: bool = False


class ContentStore(Protocol):
    async def list_published(
        self, *, modified_before: Optional[datetime] = None, limit: int = 50
    ) -> List[ContentItem]:
        """Published items, least recently modified first."""
        ...

    async def list_drafts(self, *, modified_before: Optional[datetime] = None, limit: int = 50) -> List[ContentItem]:
        """Draft items, least recently modified first."""
        ...

    async def list_links(self, *, limit: int = 50) -> List[LinkRef]:
        """Outbound links found in published content."""
        ...

    async def count_pending_comments(self) -> int: ...

    async def count_spam_comments(self) -> int: ...

    async def site_health(self) -> SiteHealth:
        """Pending updates and risky configuration of the host site."""
        ...


class NullContentStore:
    """Content store with no content."""

    async def list_published(
        self, *, modified_before: Optional[datetime] = None, limit: int = 50
    ) -> List[ContentItem]:
        return []

    async def list_drafts(self, *, modified_before: Optional[datetime] = None, limit: int = 50) -> List[ContentItem]:
        return []

    async def list_links(self, *, limit: int = 50) -> List[LinkRef]:
        return []

    async def count_pending_comments(self) -> int:
        return 0

    async def count_spam_comments(self) -> int:
        return 0

    async def site_health(self) -> SiteHealth:
        return SiteHealth()
