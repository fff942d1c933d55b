"""Tests for the TTL cache used by GPU listing and /health."""

import asyncio

import pytest

from hwnow.utils.cache import TTLCache


class TestTTLCache:
    def test_cached_none_is_a_hit(self):
        cache = TTLCache()
        cache.set("gpu", None)
        assert cache.contains("gpu") is True
        assert cache.get("gpu", "miss") is None
        assert cache.get("other", "miss") == "miss"

    def test_expired_entry_is_gone(self):
        cache = TTLCache()
        cache.set("k", 1, ttl=-1)
        assert cache.contains("k") is False

    def test_full_cache_evicts_soonest_expiry(self):
        cache = TTLCache(max_entries=2)
        cache.set("short", 1, ttl=10)
        cache.set("long", 2, ttl=100)
        cache.set("new", 3)
        assert cache.contains("short") is False
        assert cache.get("long") == 2
        assert cache.get("new") == 3

    @pytest.mark.asyncio
    async def test_concurrent_misses_compute_once(self):
        cache = TTLCache()
        calls = 0

        async def compute():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "value"

        results = await asyncio.gather(*(cache.get_or_compute("k", compute) for _ in range(5)))
        assert results == ["value"] * 5
        assert calls == 1
        assert cache.stats() == {"entries": 1, "hits": 4, "misses": 1}

    @pytest.mark.asyncio
    async def test_failed_compute_caches_nothing(self):
        cache = TTLCache()

        async def boom():
            raise RuntimeError("nvidia-smi hung")

        with pytest.raises(RuntimeError):
            await cache.get_or_compute("k", boom)
        assert cache.contains("k") is False
