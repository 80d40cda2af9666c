"""Tests for the in-memory TTL cache."""

import pytest

from app.services.cache import TTLCache, build_key


@pytest.fixture()
def clock():
    return [1000.0]


@pytest.fixture()
def cache(clock):
    cache = TTLCache(default_ttl=10)
    cache._now = lambda: clock[0]
    return cache


class TestTTLCache:
    def test_get_and_set(self, cache):
        assert cache.get("missing") is None
        assert cache.get("missing", default="fallback") == "fallback"

        cache.set("departments:list", [{"name": "Engineering"}])
        assert cache.get("departments:list") == [{"name": "Engineering"}]

    def test_entries_expire(self, cache, clock):
        cache.set("short", 1, ttl=2)
        cache.set("default", 2)

        clock[0] += 5
        assert cache.get("short") is None
        assert cache.get("default") == 2

        clock[0] += 10
        assert cache.get("default") is None

    def test_get_or_set_loads_once(self, cache):
        calls = []

        def _load():
            calls.append(1)
            return "value"

        assert cache.get_or_set("key", _load) == "value"
        assert cache.get_or_set("key", _load) == "value"
        assert len(calls) == 1

    def test_invalidate_by_prefix_or_exact_key(self, cache):
        cache.set("labels:list", 1)
        cache.set("labels:other", 2)
        cache.set("departments:list", 3)

        assert cache.invalidate("labels:*") == 2
        assert cache.get("labels:list") is None
        assert cache.invalidate("departments:list") == 1
        assert cache.invalidate("departments:list") == 0

    def test_purge_expired(self, cache, clock):
        cache.set("a", 1, ttl=1)
        cache.set("b", 2, ttl=100)

        clock[0] += 2
        assert cache.purge_expired() == 1
        assert cache.stats()["size"] == 1

    def test_stats(self, cache):
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")

        stats = cache.stats()
        assert (stats["hits"], stats["misses"], stats["hit_rate"]) == (1, 1, 0.5)

    def test_disabled_cache_always_loads(self):
        cache = TTLCache(enabled=False)
        cache.set("a", 1)

        assert cache.get("a") is None
        assert cache.get_or_set("a", lambda: 2) == 2
        assert cache.stats()["size"] == 0

    def test_sweeper_lifecycle(self):
        cache = TTLCache(sweep_interval=60)
        cache.start()
        cache.set("a", 1)

        cache.close()
        assert cache._sweeper is None
        assert cache.get("a") is None


def test_build_key_is_order_independent():
    assert build_key("stats", {"b": 2, "a": 1}) == build_key("stats", {"a": 1, "b": 2})
