"""
Tests for cache.py
Covers CacheKey, MemoryCache, RedisCache fallback, ExplorerCache and policies
"""

import json
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest
import redis

from cache import (
    CacheKey,
    CachePolicies,
    CachePolicy,
    ExplorerCache,
    MemoryCache,
    RedisCache,
)
from network import NetworkSelector


@pytest.fixture
def clock():
    with patch("cache.time") as mock_time:
        mock_time.time.return_value = 1_000.0
        yield mock_time


class TestCacheKey:
    """Tests for typed cache keys"""

    def test_parameter_order_does_not_matter(self):
        a = CacheKey.build("mainnet", "block", {"slot": 1, "rewards": True})
        b = CacheKey.build("mainnet", "block", {"rewards": True, "slot": 1})
        assert a == b
        assert hash(a) == hash(b)
        assert a.render() == b.render()

    def test_network_partitions_keys(self):
        params = {"address": "abc"}
        assert CacheKey.build("mainnet", "address", params) != CacheKey.build("devnet", "address", params)

    def test_nested_values_are_hashable(self):
        key = CacheKey.build("mainnet", "updates", {"types": ["blocks", "network"], "opts": {"a": 1}})
        assert {key: 1}[key] == 1

    def test_render_prefix(self):
        rendered = CacheKey.build("devnet", "network_stats").render()
        assert rendered.startswith("devnet:network_stats:")


class TestMemoryCache:
    """Tests for in-memory LRU cache"""

    def test_basic_operations(self):
        """Test set, get, delete operations"""
        cache = MemoryCache(max_size=10)
        key = CacheKey.build("mainnet", "block", {"slot": 1})

        cache.set(key, {"slot": 1}, ttl=60)
        assert cache.get(key) == {"slot": 1}

        cache.delete(key)
        assert cache.get(key) is None

    def test_ttl_expiration(self, clock):
        """Entries are live strictly before their expiry"""
        cache = MemoryCache(max_size=10)
        key = CacheKey.build("mainnet", "network_stats")
        cache.set(key, "value", ttl=15)

        clock.time.return_value = 1_014.9
        assert cache.get(key) == "value"

        clock.time.return_value = 1_015.0
        assert cache.get(key) is None
        assert len(cache) == 0

    def test_zero_ttl_stores_nothing(self):
        cache = MemoryCache()
        key = CacheKey.build("mainnet", "x")
        cache.set(key, "value", ttl=0)
        assert cache.get(key) is None

    def test_none_ttl_never_expires(self, clock):
        cache = MemoryCache()
        key = CacheKey.build("mainnet", "x")
        cache.set(key, "value", ttl=None)
        clock.time.return_value = 10_000_000.0
        assert cache.get(key) == "value"
        assert cache.ttl_remaining(key) is None

    def test_lru_eviction(self):
        """Test LRU eviction when at capacity"""
        cache = MemoryCache(max_size=3)
        keys = [CacheKey.build("mainnet", "k", {"i": i}) for i in range(4)]

        for key in keys[:3]:
            cache.set(key, key.params)

        # Access first key to make it recently used
        cache.get(keys[0])
        cache.set(keys[3], "new")

        assert cache.get(keys[0]) is not None
        assert cache.get(keys[1]) is None
        assert cache.get(keys[2]) is not None
        assert cache.get(keys[3]) == "new"

    def test_stats(self):
        cache = MemoryCache(max_size=10)
        key = CacheKey.build("mainnet", "x")
        cache.set(key, 1)
        cache.get(key)
        cache.get(key)

        stats = cache.get_stats()
        assert stats == {"size": 1, "max_size": 10, "total_hits": 2}


class TestRedisCache:
    """Tests for the Redis tier and its memory fallback"""

    def test_falls_back_when_redis_unreachable(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("refused")
        with patch("cache.redis.from_url", return_value=client):
            cache = RedisCache("redis://localhost:6379/0")

        assert cache.fallback_mode is True
        key = CacheKey.build("mainnet", "x")
        cache.set(key, {"v": 1}, ttl=60)
        assert cache.get(key) == {"v": 1}
        assert cache.get_stats()["mode"] == "fallback"

    def test_stores_json_with_ttl(self):
        client = MagicMock()
        with patch("cache.redis.from_url", return_value=client):
            cache = RedisCache("redis://localhost:6379/0")

        key = CacheKey.build("mainnet", "block", {"slot": 5})
        cache.set(key, {"slot": 5}, ttl=300)

        client.setex.assert_called_once_with(f"solexp:{key.render()}", 300, json.dumps({"slot": 5}))

        client.get.return_value = json.dumps({"slot": 5})
        assert cache.get(key) == {"slot": 5}
        assert cache.get_stats() == {"mode": "redis", "key_prefix": "solexp:"}

    def test_runtime_error_switches_to_fallback(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("gone")
        with patch("cache.redis.from_url", return_value=client):
            cache = RedisCache("redis://localhost:6379/0")

        key = CacheKey.build("mainnet", "x")
        assert cache.get(key) is None
        assert cache.fallback_mode is True

    def test_corrupt_value_is_deleted(self):
        client = MagicMock()
        client.get.return_value = "{not json"
        with patch("cache.redis.from_url", return_value=client):
            cache = RedisCache("redis://localhost:6379/0")

        key = CacheKey.build("mainnet", "x")
        assert cache.get(key) is None
        client.delete.assert_called_once_with(f"solexp:{key.render()}")

    def test_clear_scans_prefix(self):
        client = MagicMock()
        client.scan.side_effect = [(7, ["solexp:a"]), (0, ["solexp:b"])]
        with patch("cache.redis.from_url", return_value=client):
            cache = RedisCache("redis://localhost:6379/0")

        cache.clear()
        assert client.delete.call_count == 2
        client.scan.assert_any_call(0, match="solexp:*", count=100)


class TestExplorerCache:
    """Tests for the two-tier explorer cache"""

    def test_round_trip_and_stats(self):
        cache = ExplorerCache(memory_cache=MemoryCache())
        key = CacheKey.build("mainnet", "block", {"slot": 1})

        assert cache.get(key) is None
        cache.set(key, {"slot": 1}, ttl=60)
        assert cache.get(key) == {"slot": 1}

        stats = cache.get_stats()
        assert stats["hits"]["l1"] == 1
        assert stats["misses"] == 1
        assert stats["stores"] == 1
        assert stats["hit_rate"] == 50.0
        assert stats["l2"] == {"mode": "disabled"}

    def test_l2_hit_promotes_to_l1(self):
        l2 = MagicMock()
        l2.get.return_value = {"cached": True}
        cache = ExplorerCache(memory_cache=MemoryCache(), redis_cache=l2)
        key = CacheKey.build("mainnet", "x")

        assert cache.get(key) == {"cached": True}
        assert cache.l1_cache.get(key) == {"cached": True}
        assert cache.get_stats()["hits"]["l2"] == 1

    def test_clear_empties_every_tier(self):
        l2 = MagicMock()
        cache = ExplorerCache(memory_cache=MemoryCache(), redis_cache=l2)
        key = CacheKey.build("mainnet", "x")
        cache.set(key, 1, ttl=60)

        cache.clear()
        l2.get.return_value = None
        assert cache.get(key) is None
        l2.clear.assert_called_once()
        assert cache.get_stats()["clears"] == 1

    def test_non_positive_ttl_skips_both_tiers(self):
        l2 = MagicMock()
        cache = ExplorerCache(memory_cache=MemoryCache(), redis_cache=l2)
        cache.set(CacheKey.build("mainnet", "x"), 1, ttl=0)
        l2.set.assert_not_called()


class TestConcurrentAccess:
    """Shared cache and network selection under many request threads"""

    URLS = {"mainnet": "http://mainnet.invalid", "devnet": "http://devnet.invalid"}

    def test_memory_cache_stays_bounded(self):
        cache = MemoryCache(max_size=50)

        def worker(n):
            for i in range(300):
                key = CacheKey.build("mainnet", "block", {"slot": (n * 37 + i) % 120})
                cache.set(key, {"slot": i}, ttl=60)
                cache.get(key)
                if i % 50 == 0:
                    cache.delete(key)
            return True

        with ThreadPoolExecutor(max_workers=8) as pool:
            assert all(pool.map(worker, range(8)))

        assert len(cache) <= 50
        assert cache.get_stats()["size"] == len(cache)

    def test_counters_consistent_while_network_switches(self):
        cache = ExplorerCache(memory_cache=MemoryCache(max_size=100))
        selector = NetworkSelector(self.URLS, cache=cache)
        readers, rounds, switches = 6, 200, 40

        def reader(n):
            for i in range(rounds):
                key = CacheKey.build("mainnet", "network_stats", {"reader": n, "i": i % 10})
                if cache.get(key) is None:
                    cache.set(key, {"slot": i}, ttl=60)
            return True

        def switcher():
            changed = 0
            for i in range(switches):
                changed += selector.set_network("devnet" if i % 2 == 0 else "mainnet")
            return changed

        with ThreadPoolExecutor(max_workers=readers + 1) as pool:
            switched = pool.submit(switcher)
            assert all(pool.map(reader, range(readers)))
            assert switched.result() == switches

        stats = cache.get_stats()
        assert stats["hits"]["total"] + stats["misses"] == readers * rounds
        assert stats["stores"] == stats["misses"]
        assert stats["clears"] == switches
        assert len(cache.l1_cache) <= 100
        assert selector.get_current_network() == "mainnet"


class TestCachePolicy:
    def test_header(self):
        assert CachePolicy("X", 15, 30).header() == "public, max-age=15, stale-while-revalidate=30"

    def test_no_store(self):
        assert CachePolicies.NO_STORE.header() == "no-store"

    def test_finalized_outlives_confirmed(self):
        assert CachePolicies.FINALIZED.max_age > CachePolicies.TRANSACTIONS.max_age
        assert CachePolicies.REAL_TIME_UPDATES.max_age < CachePolicies.NETWORK_STATS.max_age
