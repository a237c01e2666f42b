"""Tests for the in-memory TTL response cache."""

import pytest

from finproxy.app.core.cache import CachedResponse, TTLCache


class TestTTLCache:
    """Test TTL expiry, bounded size and stats."""

    @pytest.fixture
    def cache(self, clock):
        return TTLCache(default_ttl=10.0, max_size=3, cleanup_interval=30.0, clock=clock)

    def test_set_and_get(self, cache):
        response = CachedResponse(200, "application/json", b'{"c": 1}')
        cache.set("key", response)

        assert cache.get("key") == response

    def test_get_missing_returns_none(self, cache):
        assert cache.get("missing") is None

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("key", "value", ttl_seconds=5)

        clock.advance(5)
        assert cache.get("key") == "value"

        clock.advance(0.5)
        assert cache.get("key") is None
        assert len(cache) == 0

    def test_default_ttl_used(self, cache, clock):
        cache.set("key", "value")

        clock.advance(9.9)
        assert cache.has("key") is True
        clock.advance(0.2)
        assert cache.has("key") is False

    def test_has_does_not_count(self, cache):
        cache.set("key", "value")
        cache.has("key")
        cache.has("missing")

        stats = cache.get_stats()
        assert stats["hits"] == 0
        assert stats["misses"] == 0

    def test_full_cache_evicts_first_inserted(self, cache, clock):
        for key in ("a", "b", "c"):
            cache.set(key, key)
            clock.advance(1)

        cache.set("d", "d")

        assert len(cache) == 3
        assert cache.has("a") is False
        assert all(cache.has(k) for k in ("b", "c", "d"))

    def test_delete(self, cache):
        cache.set("key", "value")

        assert cache.delete("key") is True
        assert cache.delete("key") is False

    def test_cleanup_expired(self, cache, clock):
        cache.set("short", 1, ttl_seconds=1)
        cache.set("long", 2, ttl_seconds=100)
        clock.advance(2)

        assert cache.cleanup_expired() == 1
        assert len(cache) == 1

    def test_stats_and_clear(self, cache):
        cache.set("key", "value")
        cache.get("key")
        cache.get("key")
        cache.get("missing")

        stats = cache.get_stats()
        assert stats == {
            "size": 1,
            "max_size": 3,
            "hits": 2,
            "misses": 1,
            "total_requests": 3,
            "hit_rate": 0.6667,
        }

        cache.clear()
        stats = cache.get_stats()
        assert stats["size"] == 0
        assert stats["total_requests"] == 0
        assert stats["hit_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_destroy_stops_and_clears(self, cache):
        await cache.start()
        cache.set("key", "value")

        await cache.destroy()

        assert len(cache) == 0
