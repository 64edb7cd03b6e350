"""
Caching Module
Redis byte store and cache-aside orchestration.
"""

from .cache_service import CacheConfig, CacheService, CacheStatistics, CacheStore
from .redis_cache import RedisCache

__all__ = [
    "CacheConfig",
    "CacheService",
    "CacheStatistics",
    "CacheStore",
    "RedisCache",
]
