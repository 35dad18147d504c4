"""Feature flags.

Flags have static defaults (``DEFAULTS``) and persisted overrides stored as a
single option. Only names present in ``DEFAULTS`` are valid.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict

from .core.errors import NotFoundError
from .repos.interfaces import OptionRepository

logger = logging.getLogger(__name__)

OPTION_KEY = "feature_flags"

DEFAULTS: Dict[str, bool] = {
    # Honor the disabled-abilities list in the dispatcher.
    "ability_toggle": True,
    # Cache results of read-only abilities.
    "ability_cache": True,
    # Send a webhook after abilities that request notification.
    "ability_notifications": True,
    # Allow governance tasks that call the AI gateway.
    "governance_ai_tasks": True,
}


class FeatureFlags:
    """Read and toggle feature flags.

    Args:
        options: Option store holding the overrides.
    """

    def __init__(self, options: OptionRepository) -> None:
        self._options = options
        self._lock = asyncio.Lock()

    @staticmethod
    def _check(name: str) -> None:
        if name not in DEFAULTS:
            raise NotFoundError(f"Unknown feature flag '{name}'. Known flags: {', '.join(sorted(DEFAULTS))}.")

    async def _overrides(self) -> Dict[str, bool]:
        stored = await self._options.get(OPTION_KEY)
        if not isinstance(stored, dict):
            return {}
        return {k: bool(v) for k, v in stored.items() if k in DEFAULTS}

    async def is_enabled(self, name: str) -> bool:
        """Return the effective value of ``name``; raises ``NotFoundError`` for unknown flags."""
        self._check(name)
        return (await self._overrides()).get(name, DEFAULTS[name])

    async def get_all(self) -> Dict[str, bool]:
        """Return every flag with its effective value."""
        return {**DEFAULTS, **(await self._overrides())}

    async def _store(self, name: str, value: bool | None) -> None:
        self._check(name)
        async with self._lock:
            overrides = await self._overrides()
            if value is None:
                overrides.pop(name, None)
            else:
                overrides[name] = value
            await self._options.set(OPTION_KEY, overrides)
        logger.info(f"Feature flag '{name}' set to {DEFAULTS[name] if value is None else value}")

    async def enable(self, name: str) -> None:
        await self._store(name, True)

    async def disable(self, name: str) -> None:
        await self._store(name, False)

    async def reset(self, name: str) -> None:
        """Drop the override so the default applies again."""
        await self._store(name, None)
