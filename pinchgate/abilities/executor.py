"""Ability execution with audit, caching and notification.

``AbilityExecutor.run`` is the one place a handler is actually invoked. The
dispatcher uses it for immediate executions and the approval queue uses it
for approved items, so both paths audit, cache and notify the same way.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from ..audit.log import AuditLog
from ..audit.redaction import summarize_input, summarize_result
from ..core.errors import ForbiddenError, InvalidInputError, NotFoundError
from ..features import FeatureFlags
from ..schemas.domain import AuditEventType, AuditSource
from ..webhooks.dispatcher import WebhookDispatcher
from .base import Ability, AbilityContext, DispatchResult, DispatchStatus
from .cache import AbilityResultCache

logger = logging.getLogger(__name__)


class AbilityExecutor:
    """Run a resolved ability and record its outcome.

    Args:
        audit: Audit log receiving one record per execution.
        flags: Feature flags (``ability_cache``, ``ability_notifications``); all
            optional features are off without it.
        cache: Result cache for read-only abilities.
        webhooks: Dispatcher for abilities that request notification.
    """

    def __init__(
        self,
        *,
        audit: AuditLog,
        flags: Optional[FeatureFlags] = None,
        cache: Optional[AbilityResultCache] = None,
        webhooks: Optional[WebhookDispatcher] = None,
    ) -> None:
        self._audit = audit
        self._flags = flags
        self._cache = cache
        self._webhooks = webhooks

    async def _flag(self, name: str) -> bool:
        return self._flags is not None and await self._flags.is_enabled(name)

    async def run(
        self,
        ability: Ability,
        args: Mapping[str, Any],
        ctx: AbilityContext,
        *,
        success_event: AuditEventType = AuditEventType.ability_executed,
        failure_event: AuditEventType = AuditEventType.ability_failed,
        extra_context: Optional[Mapping[str, Any]] = None,
    ) -> DispatchResult:
        """
        Execute ``ability`` once and audit the outcome.

        Handler rejections (``ForbiddenError``, ``NotFoundError``,
        ``InvalidInputError``) propagate untouched: nothing happened, so
        nothing is audited. Any other exception is converted into an
        ``{"error": ...}`` result and audited as a failure.

        Returns:
            ``DispatchResult`` with the handler's output unchanged.
        """
        desc = ability.descriptor
        cache_key: Optional[str] = None
        if desc.read_only and self._cache is not None and await self._flag("ability_cache"):
            cache_key = AbilityResultCache.key_for(desc.name, ctx.actor.id, args)
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Ability '{desc.name}' served from cache for actor '{ctx.actor.id}'")
                return DispatchResult(ability=desc.name, status=DispatchStatus.executed, output=cached)

        try:
            raw = await ability.execute(ctx, args=dict(args))
        except (ForbiddenError, NotFoundError, InvalidInputError):
            raise
        except Exception as e:
            logger.exception(f"Ability '{desc.name}' raised")
            raw = {"error": f"Ability '{desc.name}' failed: {e}"}

        output: Dict[str, Any] = dict(raw) if isinstance(raw, Mapping) else {"result": raw}
        failed = "error" in output
        status = DispatchStatus.failed if failed else DispatchStatus.executed

        context: Dict[str, Any] = {
            "ability": desc.name,
            "actor": ctx.actor.id,
            "request": summarize_input(args),
            "result": summarize_result(output),
        }
        if extra_context:
            context.update(extra_context)
        if failed:
            message = f"Ability '{desc.name}' failed: {output['error']}"
            logger.warning(message)
        else:
            message = f"Ability '{desc.name}' executed by {ctx.actor.id}."
            logger.info(message)
        await self._audit.record(failure_event if failed else success_event, AuditSource.ability, message, context)

        if not failed:
            if cache_key is not None:
                await self._cache.set(cache_key, output)
            elif not desc.read_only and self._cache is not None:
                await self._cache.flush()
            if desc.notify:
                await self._notify(desc.name, ctx, context)

        return DispatchResult(ability=desc.name, status=status, output=output, queue_id=ctx.queue_id)

    async def _notify(self, name: str, ctx: AbilityContext, context: Dict[str, Any]) -> None:
        if self._webhooks is None or not await self._flag("ability_notifications"):
            return
        delivered = await self._webhooks.dispatch(
            AuditEventType.ability_executed.value,
            f"Ability {name} executed by {ctx.actor.id}.",
            context,
        )
        if not delivered:
            logger.warning(f"Notification for ability '{name}' was not delivered")
