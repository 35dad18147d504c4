"""Result cache for read-only abilities.

Entries are keyed by ability, actor and canonical input and live for a fixed
TTL. Any successful mutating execution flushes the whole cache, so a cached
read never outlives a write made through the dispatcher.

The entries themselves are held in process memory. When an option store is
given, validity is tied to a generation token kept in that store: ``flush``
writes a fresh token, and every process sharing the store drops its entries
as soon as it sees the token change. A flush from the CLI or from another
worker therefore invalidates the cache everywhere.
"""

import asyncio
import json
import secrets
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..repos.interfaces import OptionRepository

GENERATION_OPTION_KEY = "ability_cache_generation"


class AbilityResultCache:
    """Cache for read-only ability results.

    Attributes:
        options: Shared option store holding the cache generation (None = process-local cache)
        ttl: Time-to-live for cached results in seconds
        max_size: Maximum number of entries (0 = unlimited)
    """

    def __init__(
        self,
        options: Optional[OptionRepository] = None,
        *,
        ttl: float = 300.0,
        max_size: int = 1000,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._options = options
        self._entries: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._generation: Optional[str] = None
        self._ttl = ttl
        self._max_size = max_size
        self._monotonic = monotonic
        self._lock = asyncio.Lock()

    @staticmethod
    def key_for(ability: str, actor_id: str, args: Mapping[str, Any]) -> str:
        return f"{ability}|{actor_id}|{json.dumps(args, sort_keys=True, default=str)}"

    async def _sync_generation(self) -> None:
        # caller holds the lock
        if self._options is None:
            return
        current = await self._options.get(GENERATION_OPTION_KEY)
        if current != self._generation:
            self._entries.clear()
            self._generation = current

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return a live cached result or None."""
        async with self._lock:
            await self._sync_generation()
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, result = entry
            if self._monotonic() - stored_at > self._ttl:
                del self._entries[key]
                return None
            return dict(result)

    async def set(self, key: str, result: Mapping[str, Any]) -> None:
        async with self._lock:
            await self._sync_generation()
            if self._max_size > 0 and key not in self._entries and len(self._entries) >= self._max_size:
                # Remove oldest entry (simple FIFO)
                self._entries.pop(next(iter(self._entries)))
            self._entries[key] = (self._monotonic(), dict(result))

    async def flush(self) -> int:
        """Invalidate every entry in every process sharing the store; returns how many local entries were removed."""
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            if self._options is not None:
                self._generation = secrets.token_hex(8)
                await self._options.set(GENERATION_OPTION_KEY, self._generation)
            return count

    def __len__(self) -> int:
        return len(self._entries)
