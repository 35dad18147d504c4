import pytest

from pinchgate.abilities import AbilityResultCache
from pinchgate.abilities.cache import GENERATION_OPTION_KEY


def test_key_is_canonical() -> None:
    a = AbilityResultCache.key_for("menu/list", "u1", {"b": 1, "a": 2})
    b = AbilityResultCache.key_for("menu/list", "u1", {"a": 2, "b": 1})

    assert a == b
    assert a != AbilityResultCache.key_for("menu/list", "u2", {"a": 2, "b": 1})


@pytest.mark.asyncio
async def test_entries_expire_after_ttl(monotonic) -> None:
    cache = AbilityResultCache(ttl=10, monotonic=monotonic)
    await cache.set("k", {"v": 1})

    monotonic.advance(5)
    assert await cache.get("k") == {"v": 1}

    monotonic.advance(6)
    assert await cache.get("k") is None
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_oldest_entry_evicted_at_max_size() -> None:
    cache = AbilityResultCache(max_size=2)
    await cache.set("a", {"v": 1})
    await cache.set("b", {"v": 2})
    await cache.set("c", {"v": 3})

    assert await cache.get("a") is None
    assert await cache.get("c") == {"v": 3}


@pytest.mark.asyncio
async def test_flush_reports_count() -> None:
    cache = AbilityResultCache()
    await cache.set("a", {})
    await cache.set("b", {})

    assert await cache.flush() == 2
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_returned_results_are_copies() -> None:
    cache = AbilityResultCache()
    await cache.set("a", {"v": 1})

    got = await cache.get("a")
    got["v"] = 99

    assert await cache.get("a") == {"v": 1}


class TestSharedGeneration:
    @pytest.mark.asyncio
    async def test_flush_elsewhere_invalidates_entries(self, options) -> None:
        worker = AbilityResultCache(options)
        admin = AbilityResultCache(options)
        await worker.set("menus", {"v": 1})
        assert await worker.get("menus") == {"v": 1}

        await admin.flush()

        assert await worker.get("menus") is None
        assert len(worker) == 0
        assert options.values[GENERATION_OPTION_KEY]

    @pytest.mark.asyncio
    async def test_every_flush_writes_a_new_generation(self, options) -> None:
        cache = AbilityResultCache(options)

        await cache.flush()
        first = options.values[GENERATION_OPTION_KEY]
        await cache.flush()

        assert options.values[GENERATION_OPTION_KEY] != first

    @pytest.mark.asyncio
    async def test_entries_survive_while_generation_unchanged(self, options) -> None:
        await AbilityResultCache(options).flush()
        cache = AbilityResultCache(options)
        await cache.set("menus", {"v": 1})

        assert await cache.get("menus") == {"v": 1}
