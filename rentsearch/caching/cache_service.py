"""
Cache Service
Cache-aside orchestration with per-operation TTL policies.
"""

import hashlib
import json
import logging
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, TypeVar

from pydantic import TypeAdapter

from ..config import SearchSettings, get_settings
from ..search.errors import SearchError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheStore(Protocol):
    """Byte store used by the cache service (RedisCache in production)."""

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def ping(self) -> bool: ...


class CacheConfig:
    """Cache configuration and TTL policies."""

    # Operation names (also the key namespace)
    SEARCH = "search"
    AUTOCOMPLETE = "autocomplete"
    SUGGESTIONS = "suggestions"
    SIMILAR = "similar"
    POPULAR = "popular"

    def __init__(self, settings: Optional[SearchSettings] = None):
        settings = settings or get_settings()

        self.enabled = settings.enable_cache
        self.key_prefix = settings.cache_key_prefix

        # TTL policies (in seconds)
        self.ttls: Dict[str, int] = {
            self.SEARCH: settings.cache_ttl_search,  # 5 minutes
            self.AUTOCOMPLETE: settings.cache_ttl_autocomplete,  # 15 minutes
            self.SUGGESTIONS: settings.cache_ttl_suggestions,  # 10 minutes
            self.SIMILAR: settings.cache_ttl_similar,  # 30 minutes
            self.POPULAR: settings.cache_ttl_popular,  # 1 hour
        }

    def ttl_for(self, operation: str) -> int:
        return self.ttls[operation]


class CacheStatistics:
    """Track cache performance metrics."""

    def __init__(self):
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.errors = 0

        # Per-operation stats
        self.hits_by_type: Dict[str, int] = defaultdict(int)
        self.misses_by_type: Dict[str, int] = defaultdict(int)

        # Timing stats
        self.total_get_time_ms = 0.0
        self.total_set_time_ms = 0.0

        self.start_time = time.time()

    def record_hit(self, key_type: str):
        """Record a cache hit."""
        self.hits += 1
        self.hits_by_type[key_type] += 1

    def record_miss(self, key_type: str):
        """Record a cache miss."""
        self.misses += 1
        self.misses_by_type[key_type] += 1

    def record_set(self):
        self.sets += 1

    def record_error(self):
        self.errors += 1

    def get_hit_rate(self) -> float:
        """Calculate overall hit rate."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def get_stats(self) -> Dict[str, Any]:
        """Get all statistics."""
        uptime = time.time() - self.start_time
        lookups = self.hits + self.misses

        return {
            "uptime_seconds": uptime,
            "total_operations": lookups + self.sets,
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "errors": self.errors,
            "hit_rate_percent": self.get_hit_rate(),
            "hits_by_type": dict(self.hits_by_type),
            "misses_by_type": dict(self.misses_by_type),
            "avg_get_time_ms": self.total_get_time_ms / lookups if lookups > 0 else 0,
            "avg_set_time_ms": self.total_set_time_ms / self.sets if self.sets > 0 else 0,
        }


class CacheService:
    """
    Cache-aside orchestration over a byte store.

    CHECK_CACHE -> HIT: return | MISS: COMPUTE -> POPULATE_CACHE -> return.
    Store failures are logged and counted, then treated as a miss or a
    skipped write. Compute failures propagate and are never cached.
    """

    def __init__(
        self,
        store: Optional[CacheStore],
        settings: Optional[SearchSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize cache service.

        Args:
            store: Byte store (None disables caching)
            settings: Search settings (TTLs, prefix, enable flag)
            logger: Logger (defaults to module logger)
        """
        self.store = store
        self.config = CacheConfig(settings)
        self.stats = CacheStatistics()
        self.logger = logger or logging.getLogger(__name__)

        self.logger.info(
            f"Cache service initialized (enabled={self.enabled}, prefix={self.config.key_prefix})"
        )

    @property
    def enabled(self) -> bool:
        return self.store is not None and self.config.enabled

    def make_key(self, operation: str, params: Mapping[str, Any]) -> str:
        """
        Build a deterministic cache key.

        Args:
            operation: Operation name
            params: JSON-serializable parameters

        Returns:
            "{prefix}:{operation}:{md5 of canonical JSON}"
        """
        canonical = json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)
        digest = hashlib.md5(canonical.encode("utf-8")).hexdigest()
        return f"{self.config.key_prefix}:{operation}:{digest}"

    async def get(self, operation: str, key: str, adapter: TypeAdapter) -> Optional[Any]:
        """
        Read and decode a cached value.

        Returns:
            Decoded value, or None on miss or store/decode failure
        """
        if not self.enabled:
            return None

        start_time = time.time()
        try:
            data = await self.store.get(key)
        except Exception as e:
            self.stats.record_error()
            self.logger.error(f"Failed to read {operation} cache entry {key}: {e}")
            return None
        finally:
            self.stats.total_get_time_ms += (time.time() - start_time) * 1000

        if data is None:
            self.stats.record_miss(operation)
            self.logger.debug(f"{operation} cache MISS: {key}")
            return None

        try:
            value = adapter.validate_json(data)
        except ValueError as e:
            self.stats.record_error()
            self.logger.warning(f"Discarding undecodable {operation} cache entry {key}: {e}")
            return None

        self.stats.record_hit(operation)
        self.logger.debug(f"{operation} cache HIT: {key}")
        return value

    async def set(
        self, operation: str, key: str, value: Any, adapter: TypeAdapter, ttl: Optional[int] = None
    ) -> bool:
        """
        Encode and write a value.

        Returns:
            True if cached successfully
        """
        if not self.enabled:
            return False

        ttl = ttl or self.config.ttl_for(operation)
        start_time = time.time()
        try:
            await self.store.set(key, adapter.dump_json(value), ttl=ttl)
        except Exception as e:
            self.stats.record_error()
            self.logger.error(f"Failed to cache {operation} result {key}: {e}")
            return False

        self.stats.total_set_time_ms += (time.time() - start_time) * 1000
        self.stats.record_set()
        self.logger.debug(f"Cached {operation} result: {key} (TTL={ttl}s)")
        return True

    async def get_or_compute(
        self,
        operation: str,
        params: Mapping[str, Any],
        compute: Callable[[], Awaitable[T]],
        adapter: TypeAdapter,
        ttl: Optional[int] = None,
        cacheable: Optional[Callable[[T], bool]] = None,
    ) -> T:
        """
        Cache-aside read.

        Args:
            operation: Operation name (key namespace and TTL policy)
            params: Canonical input parameters
            compute: Coroutine factory producing the value on a miss
            adapter: TypeAdapter used to (de)serialize the value
            ttl: TTL override in seconds
            cacheable: Predicate deciding whether a computed value may be stored

        Returns:
            Cached or freshly computed value

        Raises:
            Whatever compute raises; nothing is cached in that case
        """
        key = self.make_key(operation, params)

        cached = await self.get(operation, key, adapter)
        if cached is not None:
            return cached

        value = await compute()

        if cacheable is None or cacheable(value):
            await self.set(operation, key, value, adapter, ttl=ttl)
        else:
            self.logger.debug(f"Skipping cache write for partial {operation} result: {key}")

        return value

    async def ping(self) -> bool:
        """Check the cache store is reachable."""
        if self.store is None:
            return False
        try:
            return await self.store.ping()
        except SearchError as e:
            self.logger.error(f"Cache ping failed: {e}")
            return False

    def get_statistics(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return self.stats.get_stats()

    def reset_statistics(self):
        """Reset cache statistics."""
        self.stats = CacheStatistics()
        self.logger.info("Cache statistics reset")
