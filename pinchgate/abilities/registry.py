from __future__ import annotations

"""Ability registry.

The registry maps an ability name to its implementation. It is filled once at
startup and read-only afterwards; the dispatcher and the approval queue both
resolve names through it.
"""

from typing import Dict, Iterable, List

from .base import Ability, AbilityDescriptor


class AbilityRegistry:
    """
    In-memory mapping of ability names to implementations.

    Notes:
        - ``register`` refuses a second ability with the same name.
        - ``get`` will raise ``KeyError`` if the ability is missing.
    """

    def __init__(self, abilities: Iterable[Ability] = ()) -> None:
        """Initialize the registry, optionally with a first batch of abilities."""
        self._abilities: Dict[str, Ability] = {}
        for ability in abilities:
            self.register(ability)

    def register(self, ability: Ability) -> None:
        """
        Register an ability implementation.

        Args:
            ability: The ability to register. Its ``descriptor.name`` is the key.

        Raises:
            ValueError: If an ability with the same name is already registered.
        """
        name = ability.descriptor.name
        if name in self._abilities:
            raise ValueError(f"ability already registered: {name}")
        self._abilities[name] = ability

    def get(self, name: str) -> Ability:
        """
        Retrieve a registered ability by name.

        Raises:
            KeyError: If no ability is registered with the given name.
        """
        return self._abilities[name]

    def has(self, name: str) -> bool:
        return name in self._abilities

    def descriptors(self) -> List[AbilityDescriptor]:
        """Return every descriptor sorted by name."""
        return [self._abilities[n].descriptor for n in sorted(self._abilities)]

    def __len__(self) -> int:
        return len(self._abilities)
