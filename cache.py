"""
Caching layer for the explorer gateway
Typed keys, per-class TTL policies, memory tier with optional Redis tier
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import redis

from config import config

logger = logging.getLogger(__name__)


def _freeze(value: Any) -> Any:
    """Turn lists and dicts into hashable, order-stable equivalents"""
    if isinstance(value, dict):
        return tuple(sorted((str(k), _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_freeze(v) for v in value]
        if isinstance(value, (set, frozenset)):
            items = sorted(items, key=repr)
        return tuple(items)
    return value


@dataclass(frozen=True)
class CacheKey:
    """
    Cache key made of the network, the logical resource name and the
    resolved request parameters.

    Parameters are stored as a sorted tuple of pairs, so two keys built
    from the same parameters in a different order compare equal.
    """

    network: str
    resource: str
    params: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def build(
        cls, network: str, resource: str, params: Optional[Dict[str, Any]] = None
    ) -> "CacheKey":
        frozen = tuple(sorted((str(k), _freeze(v)) for k, v in (params or {}).items()))
        return cls(network=network, resource=resource, params=frozen)

    def render(self) -> str:
        """Canonical string form, used by the Redis tier"""
        serialized = json.dumps(self.params, default=str, separators=(",", ":"))
        digest = hashlib.md5(serialized.encode()).hexdigest()
        return f"{self.network}:{self.resource}:{digest}"


@dataclass
class CacheEntry:
    """Cache entry with metadata"""

    key: CacheKey
    value: Any
    inserted_at: float
    expires_at: Optional[float]  # None never expires
    hit_count: int = 0

    def is_live(self, now: float) -> bool:
        return self.expires_at is None or now < self.expires_at


@dataclass(frozen=True)
class CachePolicy:
    """TTL class for a family of endpoints"""

    name: str
    max_age: int
    stale_while_revalidate: int = 0

    def header(self) -> str:
        """Cache-Control header value for successful responses"""
        if self.max_age <= 0:
            return "no-store"
        return (
            f"public, max-age={self.max_age}, "
            f"stale-while-revalidate={self.stale_while_revalidate}"
        )


class CachePolicies:
    """TTL classes ordered roughly by data volatility"""

    REAL_TIME_UPDATES = CachePolicy(
        "REAL_TIME_UPDATES", config.CACHE_TTL_REAL_TIME, config.CACHE_TTL_REAL_TIME * 2
    )
    NETWORK_STATS = CachePolicy(
        "NETWORK_STATS", config.CACHE_TTL_NETWORK_STATS, config.CACHE_TTL_NETWORK_STATS * 2
    )
    SEARCH = CachePolicy("SEARCH", config.CACHE_TTL_SEARCH, config.CACHE_TTL_SEARCH * 2)
    TRANSACTIONS = CachePolicy(
        "TRANSACTIONS", config.CACHE_TTL_TRANSACTIONS, config.CACHE_TTL_TRANSACTIONS * 2
    )
    TOKEN_BALANCES = CachePolicy(
        "TOKEN_BALANCES", config.CACHE_TTL_TOKEN_BALANCES, config.CACHE_TTL_TOKEN_BALANCES * 2
    )
    BLOCKS = CachePolicy("BLOCKS", config.CACHE_TTL_BLOCKS, config.CACHE_TTL_BLOCKS * 2)
    FINALIZED = CachePolicy(
        "FINALIZED", config.CACHE_TTL_FINALIZED, config.CACHE_TTL_FINALIZED * 2
    )
    TOKEN_DETAILS = CachePolicy(
        "TOKEN_DETAILS", config.CACHE_TTL_TOKEN_DETAILS, config.CACHE_TTL_TOKEN_DETAILS * 2
    )
    ADDRESS_NFTS = CachePolicy(
        "ADDRESS_NFTS", config.CACHE_TTL_ADDRESS_NFTS, config.CACHE_TTL_ADDRESS_NFTS * 2
    )
    ANALYTICS_CHARTS = CachePolicy(
        "ANALYTICS_CHARTS",
        config.CACHE_TTL_ANALYTICS_CHARTS,
        config.CACHE_TTL_ANALYTICS_CHARTS * 2 + 60,
    )
    ANALYTICS_OVERVIEW = CachePolicy(
        "ANALYTICS_OVERVIEW",
        config.CACHE_TTL_ANALYTICS_OVERVIEW,
        config.CACHE_TTL_ANALYTICS_OVERVIEW * 2,
    )
    ANALYTICS_PROGRAMS = CachePolicy(
        "ANALYTICS_PROGRAMS",
        config.CACHE_TTL_ANALYTICS_PROGRAMS,
        config.CACHE_TTL_ANALYTICS_PROGRAMS * 2,
    )
    NO_STORE = CachePolicy("NO_STORE", 0, 0)


class MemoryCache:
    """Thread-safe in-memory LRU cache with lazy expiry"""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self._entries: "OrderedDict[CacheKey, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: CacheKey) -> Optional[Any]:
        """Get value from cache, evicting it if expired"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if not entry.is_live(time.time()):
                del self._entries[key]
                return None

            self._entries.move_to_end(key)
            entry.hit_count += 1
            return entry.value

    def set(self, key: CacheKey, value: Any, ttl: Optional[float] = 300) -> None:
        """
        Store ``value`` under ``key``.

        ``ttl`` of 0 stores nothing; ``None`` keeps the entry until it is
        evicted or cleared.
        """
        if ttl is not None and ttl <= 0:
            return

        now = time.time()
        entry = CacheEntry(
            key=key,
            value=value,
            inserted_at=now,
            expires_at=None if ttl is None else now + ttl,
        )

        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = entry

    def ttl_remaining(self, key: CacheKey) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at is None:
                return None
            return max(0.0, entry.expires_at - time.time())

    def delete(self, key: CacheKey) -> None:
        """Delete key from cache"""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Clear all cache"""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> dict:
        """Get cache statistics"""
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "total_hits": sum(e.hit_count for e in self._entries.values()),
            }


class RedisCache:
    """Redis-backed cache tier that falls back to memory when Redis is down"""

    def __init__(
        self,
        redis_url: str,
        fallback_cache: Optional[MemoryCache] = None,
        key_prefix: str = "solexp:",
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.fallback_cache = fallback_cache or MemoryCache(max_size=1000)
        self.fallback_mode = False
        self.client: Optional[redis.Redis] = None

        try:
            self.client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True,
            )
            self.client.ping()
            logger.info("Redis cache tier initialized")
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed ({e}), using fallback MemoryCache")
            self.fallback_mode = True
            self.client = None

    def _get_key(self, key: CacheKey) -> str:
        return f"{self.key_prefix}{key.render()}"

    def _fall_back(self, action: str, key: Optional[CacheKey], error: Exception) -> None:
        label = key.render() if key is not None else "*"
        logger.error(f"Redis {action} error for key {label}: {error}")
        if not self.fallback_mode:
            logger.warning("Switching to fallback MemoryCache")
        self.fallback_mode = True

    def get(self, key: CacheKey) -> Optional[Any]:
        """Get value from Redis or fallback cache"""
        if self.fallback_mode or self.client is None:
            return self.fallback_cache.get(key)

        try:
            raw = self.client.get(self._get_key(key))
        except redis.RedisError as e:
            self._fall_back("get", key, e)
            return self.fallback_cache.get(key)

        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Redis JSON decode error for key {key.render()}: {e}")
            self.delete(key)
            return None

    def set(self, key: CacheKey, value: Any, ttl: Optional[float] = 300) -> None:
        """Set value in Redis or fallback cache"""
        if ttl is not None and ttl <= 0:
            return
        if self.fallback_mode or self.client is None:
            self.fallback_cache.set(key, value, ttl)
            return

        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Redis serialization error for key {key.render()}: {e}")
            return

        try:
            if ttl is None:
                self.client.set(self._get_key(key), serialized)
            else:
                self.client.setex(self._get_key(key), max(1, int(ttl)), serialized)
        except redis.RedisError as e:
            self._fall_back("set", key, e)
            self.fallback_cache.set(key, value, ttl)

    def delete(self, key: CacheKey) -> None:
        if self.fallback_mode or self.client is None:
            self.fallback_cache.delete(key)
            return
        try:
            self.client.delete(self._get_key(key))
        except redis.RedisError as e:
            self._fall_back("delete", key, e)
            self.fallback_cache.delete(key)

    def clear(self) -> None:
        """Clear all keys with our prefix"""
        self.fallback_cache.clear()
        if self.fallback_mode or self.client is None:
            return

        try:
            cursor = 0
            while True:
                cursor, keys = self.client.scan(
                    cursor, match=f"{self.key_prefix}*", count=100
                )
                if keys:
                    self.client.delete(*keys)
                if cursor == 0:
                    break
        except redis.RedisError as e:
            self._fall_back("clear", None, e)

    def get_stats(self) -> dict:
        if self.fallback_mode or self.client is None:
            stats = self.fallback_cache.get_stats()
            stats["mode"] = "fallback"
            return stats
        return {"mode": "redis", "key_prefix": self.key_prefix}


@dataclass
class CacheStats:
    l1_hits: int = 0
    l2_hits: int = 0
    misses: int = 0
    stores: int = 0
    clears: int = 0
    by_resource: Dict[str, int] = field(default_factory=dict)


class ExplorerCache:
    """Memory tier in front of an optional Redis tier"""

    def __init__(
        self,
        memory_cache: Optional[MemoryCache] = None,
        redis_cache: Optional[RedisCache] = None,
    ):
        self.l1_cache = memory_cache or MemoryCache(max_size=config.CACHE_MAX_ENTRIES)
        self.l2_cache = redis_cache
        self.stats = CacheStats()
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[Any]:
        """Get value from cache (L1 -> L2)"""
        value = self.l1_cache.get(key)
        if value is not None:
            with self._lock:
                self.stats.l1_hits += 1
            return value

        if self.l2_cache is not None:
            value = self.l2_cache.get(key)
            if value is not None:
                with self._lock:
                    self.stats.l2_hits += 1
                # Promote with the short real-time TTL; L2 keeps the authoritative expiry
                self.l1_cache.set(key, value, config.CACHE_TTL_REAL_TIME)
                return value

        with self._lock:
            self.stats.misses += 1
        return None

    def set(self, key: CacheKey, value: Any, ttl: Optional[float] = 300) -> None:
        """Set value in both tiers"""
        if ttl is not None and ttl <= 0:
            return
        self.l1_cache.set(key, value, ttl)
        if self.l2_cache is not None:
            self.l2_cache.set(key, value, ttl)
        with self._lock:
            self.stats.stores += 1
            self.stats.by_resource[key.resource] = (
                self.stats.by_resource.get(key.resource, 0) + 1
            )

    def delete(self, key: CacheKey) -> None:
        self.l1_cache.delete(key)
        if self.l2_cache is not None:
            self.l2_cache.delete(key)

    def clear(self) -> None:
        """Clear all tiers"""
        self.l1_cache.clear()
        if self.l2_cache is not None:
            self.l2_cache.clear()
        with self._lock:
            self.stats.clears += 1
        logger.info("Explorer cache cleared")

    def get_stats(self) -> dict:
        with self._lock:
            hits = self.stats.l1_hits + self.stats.l2_hits
            total = hits + self.stats.misses
            return {
                "l1": self.l1_cache.get_stats(),
                "l2": self.l2_cache.get_stats() if self.l2_cache else {"mode": "disabled"},
                "hits": {"l1": self.stats.l1_hits, "l2": self.stats.l2_hits, "total": hits},
                "misses": self.stats.misses,
                "stores": self.stats.stores,
                "clears": self.stats.clears,
                "hit_rate": (hits / total * 100) if total else 0.0,
            }


def create_cache() -> ExplorerCache:
    """Build the process-wide cache from configuration"""
    memory = MemoryCache(max_size=config.CACHE_MAX_ENTRIES)
    redis_tier = None
    if config.REDIS_URL:
        redis_tier = RedisCache(config.REDIS_URL, fallback_cache=memory)
    return ExplorerCache(memory_cache=memory, redis_cache=redis_tier)
