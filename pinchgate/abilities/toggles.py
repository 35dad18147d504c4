"""Per-ability enable/disable switches persisted in the option store."""

from __future__ import annotations

import asyncio
import logging
from typing import List

from ..core.errors import NotFoundError
from ..repos.interfaces import OptionRepository
from .registry import AbilityRegistry

logger = logging.getLogger(__name__)

OPTION_KEY = "disabled_abilities"


class AbilityToggles:
    def __init__(self, options: OptionRepository, registry: AbilityRegistry) -> None:
        self._options = options
        self._registry = registry
        self._lock = asyncio.Lock()

    async def disabled(self) -> List[str]:
        stored = await self._options.get(OPTION_KEY)
        if not isinstance(stored, list):
            return []
        return sorted(str(n) for n in stored)

    async def is_disabled(self, name: str) -> bool:
        return name in await self.disabled()

    async def _update(self, name: str, *, disable: bool) -> None:
        if not self._registry.has(name):
            raise NotFoundError(f"Unknown ability '{name}'.")
        async with self._lock:
            names = set(await self.disabled())
            if disable:
                names.add(name)
            else:
                names.discard(name)
            await self._options.set(OPTION_KEY, sorted(names))
        logger.info(f"Ability '{name}' {'disabled' if disable else 'enabled'}")

    async def disable(self, name: str) -> None:
        await self._update(name, disable=True)

    async def enable(self, name: str) -> None:
        await self._update(name, disable=False)
