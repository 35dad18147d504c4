"""Findings delivery.

One call per task run: one ``governance_finding`` audit record and one
webhook carrying every finding. A failed webhook is audited as
``governance_delivery_failed``; findings are not re-queued because the next
scheduled run re-derives them from current state.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..audit.log import AuditLog
from ..schemas.domain import AuditEventType, AuditSource, Finding
from ..webhooks.dispatcher import WebhookDispatcher

logger = logging.getLogger(__name__)

# Findings copied into the audit context; the webhook always carries all of them.
MAX_AUDITED_FINDINGS = 25


class FindingsDelivery:
    def __init__(self, *, audit: AuditLog, webhooks: WebhookDispatcher) -> None:
        self._audit = audit
        self._webhooks = webhooks

    async def deliver(self, task_key: str, findings: Sequence[Finding], summary: str) -> bool:
        """
        Audit and push one task's findings.

        Args:
            task_key: Catalog key of the task that produced the findings.
            findings: Everything the run gathered (bundled by the task when composite).
            summary: Human-readable summary line.

        Returns:
            True when the webhook accepted the payload. An empty ``findings``
            sequence is a no-op and returns True.
        """
        if not findings:
            logger.debug(f"No findings for '{task_key}'; nothing delivered")
            return True

        serialized = [f.model_dump(mode="json") for f in findings]
        await self._audit.record(
            AuditEventType.governance_finding,
            AuditSource.governance,
            summary,
            {
                "task": task_key,
                "count": len(serialized),
                "summary": summary,
                "findings": serialized[:MAX_AUDITED_FINDINGS],
            },
        )

        delivered = await self._webhooks.dispatch(
            AuditEventType.governance_finding.value,
            summary,
            {"task_key": task_key, "summary": summary, "count": len(serialized), "findings": serialized},
        )
        if not delivered:
            logger.warning(f"Findings for '{task_key}' were not delivered")
            await self._audit.record(
                AuditEventType.governance_delivery_failed,
                AuditSource.governance,
                f"Webhook delivery of '{task_key}' findings failed.",
                {"task": task_key, "count": len(serialized)},
            )
        return delivered
