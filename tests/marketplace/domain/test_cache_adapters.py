"""Tests for the cache adapters and key layout."""

import fnmatch

import pytest
from marketplace.cache import get_cache, reset_cache
from marketplace.cache.keys import invalidate_order, order_list_key, order_patterns
from marketplace.cache.memory_adapter import CacheUnavailable, InMemoryCache
from marketplace.cache.redis_adapter import RedisCache


class RecordingRedisClient:
    """Dict-backed stand-in for a ``redis.Redis`` connection."""

    def __init__(self):
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl

    def scan_iter(self, match=None, count=None):
        return iter([key for key in list(self.data) if fnmatch.fnmatchcase(key, match)])

    def delete(self, *keys):
        return sum(1 for key in keys if self.data.pop(key, None) is not None)


class TestInMemoryCache:
    def test_set_and_get(self):
        cache = InMemoryCache()
        cache.set("orders:detail:1", {"id": "1"})
        assert cache.get("orders:detail:1") == {"id": "1"}

    def test_values_are_copied(self):
        cache = InMemoryCache()
        value = {"units": []}
        cache.set("k", value)
        value["units"].append("mutated")
        assert cache.get("k") == {"units": []}

    def test_invalidate_by_pattern(self):
        cache = InMemoryCache()
        cache.set("orders:vendor:vendor-a:abc", 1)
        cache.set("orders:vendor:vendor-b:abc", 2)

        assert cache.invalidate("orders:vendor:vendor-a:*") == 1
        assert cache.keys() == ["orders:vendor:vendor-b:abc"]

    def test_configured_failure(self):
        cache = InMemoryCache()
        cache.configure(should_fail=True)
        with pytest.raises(CacheUnavailable):
            cache.get("k")


class TestRedisCache:
    def test_round_trip_with_prefix_and_ttl(self):
        client = RecordingRedisClient()
        cache = RedisCache("redis://unused", client=client)

        cache.set("orders:detail:1", {"id": "1", "grand_total": 115.0}, ttl_seconds=60)

        assert client.ttls == {"marketplace:orders:detail:1": 60}
        assert cache.get("orders:detail:1") == {"id": "1", "grand_total": 115.0}
        assert cache.get("orders:detail:2") is None

    def test_invalidate_scans_matching_keys(self):
        client = RecordingRedisClient()
        cache = RedisCache("redis://unused", client=client)
        cache.set("orders:customer:c1:aaa", 1)
        cache.set("orders:customer:c1:bbb", 2)
        cache.set("orders:customer:c2:aaa", 3)

        assert cache.invalidate("orders:customer:c1:*") == 2
        assert list(client.data) == ["marketplace:orders:customer:c2:aaa"]

    def test_invalidate_without_matches(self):
        cache = RedisCache("redis://unused", client=RecordingRedisClient())
        assert cache.invalidate("orders:*") == 0


class TestAdapterSelection:
    def test_memory_is_the_default(self, monkeypatch):
        monkeypatch.delenv("CACHE_ADAPTER", raising=False)
        reset_cache()
        assert isinstance(get_cache(), InMemoryCache)

    def test_unknown_adapter_is_rejected(self, monkeypatch):
        monkeypatch.setenv("CACHE_ADAPTER", "memcached")
        reset_cache()
        with pytest.raises(ValueError):
            get_cache()
        monkeypatch.setenv("CACHE_ADAPTER", "memory")
        reset_cache()


class TestKeys:
    def test_list_keys_are_stable_for_equal_params(self):
        assert order_list_key("admin", None, {"page": 1, "status": "placed"}) == order_list_key(
            "admin", None, {"status": "placed", "page": 1}
        )

    def test_order_patterns_cover_every_audience(self):
        patterns = order_patterns("ord-1", "cust-1", ["vendor-a", None])

        assert patterns == [
            "orders:detail:ord-1",
            "orders:customer:cust-1:*",
            "orders:admin:*",
            "orders:vendor:vendor-a:*",
        ]

    def test_invalidation_failures_are_swallowed(self):
        get_cache().configure(should_fail=True)
        invalidate_order("ord-1", "cust-1", ["vendor-a"])
