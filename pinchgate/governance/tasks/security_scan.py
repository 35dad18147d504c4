"""Security scan: pending core/plugin/theme updates, debug mode and in-dashboard file editing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from ...schemas.domain import Finding
from ..base import TaskContext, TaskDescriptor, TaskOutcome


@dataclass(frozen=True)
class SecurityScanTask:
    descriptor: TaskDescriptor = TaskDescriptor(key="security_scan", label="Security Scan", interval_seconds=86400)

    async def run(self, ctx: TaskContext) -> TaskOutcome:
        health = await ctx.content.site_health()
        payload: Dict[str, Any] = {}
        parts: List[str] = []

        if health.core_update_available:
            payload["core_update_available"] = True
            parts.append("Core update available")
        if health.plugin_updates:
            payload["plugin_updates"] = list(health.plugin_updates)
            parts.append(f"{len(health.plugin_updates)} plugin updates")
        if health.theme_updates:
            payload["theme_updates"] = list(health.theme_updates)
            parts.append(f"{len(health.theme_updates)} theme updates")
        if health.debug_mode:
            payload["debug_mode"] = True
            parts.append("Debug mode is enabled")
        if health.file_editing_enabled:
            payload["file_editing_enabled"] = True
            parts.append("File editing is not disabled")

        if not payload:
            return TaskOutcome()
        return TaskOutcome(
            findings=[Finding(task_key=self.descriptor.key, payload=payload)],
            summary="; ".join(parts) + ".",
        )
