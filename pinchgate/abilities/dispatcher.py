"""Ability dispatcher.

``AbilityDispatcher.dispatch`` is the entry point for every ability
invocation, whoever the caller is.

Order of checks
---------------

1. Resolve the name in the registry (``NotFoundError``).
2. Refuse disabled abilities (``ForbiddenError``).
3. Check the actor holds the required capability (``ForbiddenError``).
4. Validate input against the ability's model (``InvalidInputError``).
5. Defer to the approval queue when the ability requires approval and the
   actor is not exempt; no side effect happens yet.
6. Otherwise execute through ``AbilityExecutor``, which audits the outcome.

Steps 1 to 4 reject before any side effect and before any audit write.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Optional

from pydantic import ValidationError

from ..core.errors import ForbiddenError, InvalidInputError, NotFoundError
from ..features import FeatureFlags
from ..schemas.domain import Actor
from .base import AbilityContext, AbilityDescriptor, DispatchResult, DispatchStatus
from .executor import AbilityExecutor
from .registry import AbilityRegistry
from .toggles import AbilityToggles

if TYPE_CHECKING:
    from ..approvals.queue import ApprovalQueue

logger = logging.getLogger(__name__)


def validate_input(descriptor: AbilityDescriptor, args: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate ``args`` against the ability's input model.

    Returns:
        The validated input as a JSON-compatible dict.

    Raises:
        InvalidInputError: Carrying the first violation.
    """
    try:
        model = descriptor.input_model.model_validate(dict(args))
    except ValidationError as e:
        first = e.errors(include_url=False)[0]
        loc = ".".join(str(p) for p in first.get("loc", ())) or "input"
        violation = {"loc": loc, "msg": first.get("msg", ""), "type": first.get("type", "")}
        raise InvalidInputError(
            f"Invalid input for '{descriptor.name}': {loc}: {violation['msg']}", violation=violation
        ) from None
    return model.model_dump(mode="json")


class AbilityDispatcher:
    """Authorize, validate and route ability invocations.

    Args:
        registry: The ability catalog.
        executor: Runs and audits handlers.
        queue: Approval queue receiving deferred invocations.
        toggles: Disabled-ability switches (checked when the ``ability_toggle`` flag is on).
        flags: Feature flags.
        exempt_actors: Actor ids that bypass the approval gate.
    """

    def __init__(
        self,
        *,
        registry: AbilityRegistry,
        executor: AbilityExecutor,
        queue: "ApprovalQueue",
        toggles: Optional[AbilityToggles] = None,
        flags: Optional[FeatureFlags] = None,
        exempt_actors: Iterable[str] = (),
    ) -> None:
        self._registry = registry
        self._executor = executor
        self._queue = queue
        self._toggles = toggles
        self._flags = flags
        self._exempt = frozenset(exempt_actors)

    @property
    def registry(self) -> AbilityRegistry:
        return self._registry

    async def _is_disabled(self, name: str) -> bool:
        if self._toggles is None:
            return False
        if self._flags is not None and not await self._flags.is_enabled("ability_toggle"):
            return False
        return await self._toggles.is_disabled(name)

    async def dispatch(self, ability_name: str, input: Mapping[str, Any], actor: Actor) -> DispatchResult:
        """
        Run (or defer) one ability invocation.

        Args:
            ability_name: Registered ``category/action`` name.
            input: Raw input mapping.
            actor: Who is asking.

        Returns:
            ``DispatchResult`` with status ``executed``, ``failed`` (handler
            reported an error, already audited) or ``deferred``.

        Raises:
            NotFoundError: Unknown ability.
            ForbiddenError: Ability disabled or capability missing.
            InvalidInputError: Input failed validation.
        """
        if not self._registry.has(ability_name):
            raise NotFoundError(f"Unknown ability '{ability_name}'.")
        ability = self._registry.get(ability_name)
        desc = ability.descriptor

        if await self._is_disabled(ability_name):
            raise ForbiddenError(f"Ability '{ability_name}' is currently disabled.")
        if not actor.can(desc.required_capability):
            raise ForbiddenError(
                f"Actor '{actor.id}' lacks the '{desc.required_capability}' capability required by '{ability_name}'."
            )

        args = validate_input(desc, input)

        if desc.requires_approval and actor.id not in self._exempt:
            queue_id = await self._queue.enqueue(ability_name, args, actor)
            logger.info(f"Ability '{ability_name}' deferred for approval as {queue_id}")
            return DispatchResult(
                ability=ability_name,
                status=DispatchStatus.deferred,
                output={
                    "status": "pending_approval",
                    "queue_id": queue_id,
                    "message": f"Ability '{ability_name}' requires approval and was queued as {queue_id}.",
                },
                queue_id=queue_id,
            )

        return await self._executor.run(ability, args, AbilityContext(actor=actor))
