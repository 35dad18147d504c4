from __future__ import annotations

"""Ability base types.

An *ability* is a named, schema-validated operation with a side effect
against the content store (creating a menu item, restoring a revision ...).
The operations themselves live outside pinchgate; this module defines the
contract they implement and the descriptor the dispatcher uses to gate them.

Contract
--------

- ``descriptor`` is static: name, required capability, input model and flags.
- ``execute`` receives already-validated input and returns a mapping. A
  domain failure is reported as ``{"error": "<message>"}``; pinchgate never
  inspects any other key.
- Fine-grained authorization (per-item ownership) stays in the handler; it
  raises ``ForbiddenError`` before doing anything.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Type

from pydantic import BaseModel

from ..schemas.domain import Actor

ABILITY_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*/[a-z0-9][a-z0-9_-]*$")


@dataclass(frozen=True)
class AbilityDescriptor:
    """Static description of one ability.

    Attributes:
        name: Unique ``category/action`` name.
        required_capability: Capability the actor must hold.
        input_model: Pydantic model validating the input mapping.
        requires_approval: Defer execution to the approval queue.
        read_only: Results may be cached; never flushes the cache.
        notify: Send a webhook notification after a successful execution.
        description: One-line summary for listings.
    """

    name: str
    required_capability: str
    input_model: Type[BaseModel]
    requires_approval: bool = False
    read_only: bool = False
    notify: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if not ABILITY_NAME_RE.match(self.name):
            raise ValueError(f"ability name must look like 'category/action', got {self.name!r}")


@dataclass(frozen=True)
class AbilityContext:
    """Execution context handed to an ability.

    ``approved_by`` and ``queue_id`` are set when the execution comes from an
    approved queue item.
    """

    actor: Actor
    approved_by: Optional[str] = None
    queue_id: Optional[str] = None


class Ability(Protocol):
    descriptor: AbilityDescriptor

    async def execute(self, ctx: AbilityContext, *, args: Dict[str, Any]) -> Dict[str, Any]: ...


AbilityFunc = Callable[[AbilityContext, Dict[str, Any]], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class FunctionAbility:
    """Adapt a plain async function into an ``Ability``."""

    descriptor: AbilityDescriptor
    func: AbilityFunc

    async def execute(self, ctx: AbilityContext, *, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self.func(ctx, args)


class DispatchStatus(str, Enum):
    executed = "executed"
    deferred = "deferred"
    failed = "failed"


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a dispatch or of an approved queue item.

    ``output`` is the handler's result unchanged for executed/failed outcomes.
    For deferred outcomes it carries the queue id and a status message.
    """

    ability: str
    status: DispatchStatus
    output: Dict[str, Any] = field(default_factory=dict)
    queue_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.executed

    @property
    def deferred(self) -> bool:
        return self.status is DispatchStatus.deferred

    @property
    def error(self) -> Optional[str]:
        err = self.output.get("error")
        return str(err) if err is not None else None
