"""Abilities: named side-effecting operations and the machinery gating them.

- ``base``: descriptor, context, ability protocol and dispatch result.
- ``registry``: the name -> ability catalog.
- ``dispatcher``: authorization, validation and approval gating.
- ``executor``: handler invocation with audit, caching and notification.
- ``toggles`` / ``cache``: disabled-ability switches and the read-only result cache.
"""

from .base import (
    Ability,
    AbilityContext,
    AbilityDescriptor,
    DispatchResult,
    DispatchStatus,
    FunctionAbility,
)
from .cache import AbilityResultCache
from .dispatcher import AbilityDispatcher, validate_input
from .executor import AbilityExecutor
from .registry import AbilityRegistry
from .toggles import AbilityToggles

__all__ = [
    "Ability",
    "AbilityContext",
    "AbilityDescriptor",
    "AbilityDispatcher",
    "AbilityExecutor",
    "AbilityRegistry",
    "AbilityResultCache",
    "AbilityToggles",
    "DispatchResult",
    "DispatchStatus",
    "FunctionAbility",
    "validate_input",
]
