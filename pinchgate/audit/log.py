"""Audit log service.

``AuditLog`` is the single write path for "what happened". Every mutating
component (dispatcher, approval queue, circuit breaker, findings delivery)
records through it; nothing reads it transactionally.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ..repos.interfaces import AuditRepository
from ..schemas.domain import AuditEventType, AuditRecord, AuditSource
from .redaction import redact

logger = logging.getLogger(__name__)


class AuditLog:
    """Append-only audit trail backed by an ``AuditRepository``.

    Args:
        repo: Storage for the records.
    """

    def __init__(self, repo: AuditRepository) -> None:
        self._repo = repo

    async def record(
        self,
        event_type: Union[AuditEventType, str],
        source: AuditSource,
        message: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> AuditRecord:
        """
        Append one record.

        Args:
            event_type: The event name (``AuditEventType`` or a custom string).
            source: Which component produced the event.
            message: Short human-readable description; secrets are redacted.
            context: Structured details; callers pass sanitized summaries.

        Returns:
            The stored record with its id.
        """
        record = AuditRecord(
            event_type=getattr(event_type, "value", event_type),
            source=source,
            message=redact(message),
            context=dict(context or {}),
        )
        stored = await self._repo.append(record)
        logger.debug(f"audit #{stored.id} {stored.event_type} [{stored.source.value}] {stored.message}")
        return stored

    async def query(
        self,
        *,
        event_type: Optional[str] = None,
        source: Optional[str] = None,
        search: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
        newest_first: bool = True,
    ) -> Tuple[List[AuditRecord], int]:
        """Return one page of records and the total number of matches."""
        limit = max(1, min(limit, 500))
        offset = max(0, offset)
        return await self._repo.query(
            event_type=event_type,
            source=source,
            search=search,
            date_from=date_from,
            date_to=date_to,
            limit=limit,
            offset=offset,
            newest_first=newest_first,
        )

    async def usage_stats(self, *, days: int = 30) -> Dict[str, int]:
        """
        Count executed abilities over the last ``days`` days.

        Returns:
            ``{ability_name: executions}`` sorted by count, highest first.
        """
        since = datetime.now(timezone.utc) - timedelta(days=max(1, days))
        records = await self._repo.list_since(AuditEventType.ability_executed.value, since)
        counts = Counter(str(r.context.get("ability", "unknown")) for r in records)
        return dict(counts.most_common())
