"""
Redis Cache Client
Async Redis client with connection pooling.
"""

import logging
from typing import Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

from ..config import SearchSettings, get_settings
from ..search.errors import RedisCacheError

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Redis cache client with connection pooling.

    Stores opaque bytes; serialization is the caller's concern. Unlike a
    best-effort client, errors are raised as RedisCacheError so the cache
    orchestration can decide how to degrade.
    """

    def __init__(
        self,
        settings: Optional[SearchSettings] = None,
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize Redis cache client.

        Args:
            settings: Search settings (connection parameters)
            client: Pre-built client (tests, shared pools)
        """
        self.settings = settings or get_settings()
        self.pool: Optional[ConnectionPool] = None

        if client is None:
            self.pool = ConnectionPool(
                host=self.settings.redis_host,
                port=self.settings.redis_port,
                db=self.settings.redis_db,
                password=self.settings.redis_password,
                decode_responses=False,
                max_connections=20,
                socket_timeout=self.settings.redis_socket_timeout,
                socket_connect_timeout=self.settings.redis_socket_timeout,
            )
            client = redis.Redis(connection_pool=self.pool)

        self.client = client

        logger.info(
            f"Redis cache initialized: {self.settings.redis_host}:"
            f"{self.settings.redis_port} (db={self.settings.redis_db})"
        )

    async def get(self, key: str) -> Optional[bytes]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached bytes or None if not found

        Raises:
            RedisCacheError: On connection or command failure
        """
        try:
            return await self.client.get(key)
        except RedisError as e:
            raise RedisCacheError(f"Redis GET error for key '{key}': {e}") from e

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Serialized value
            ttl: Time-to-live in seconds (None = no expiration)

        Raises:
            RedisCacheError: On connection or command failure
        """
        try:
            if ttl is not None:
                await self.client.setex(key, ttl, value)
            else:
                await self.client.set(key, value)
            return True
        except RedisError as e:
            raise RedisCacheError(f"Redis SET error for key '{key}': {e}") from e

    async def delete(self, key: str) -> bool:
        """
        Delete key from cache.

        Returns:
            True if key was deleted
        """
        try:
            return (await self.client.delete(key)) > 0
        except RedisError as e:
            raise RedisCacheError(f"Redis DELETE error for key '{key}': {e}") from e

    async def ping(self) -> bool:
        """
        Test Redis connection.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.error(f"Redis PING error: {e}")
            return False

    async def close(self) -> None:
        """Close the client and release pooled connections."""
        await self.client.aclose()
        if self.pool is not None:
            await self.pool.aclose()
