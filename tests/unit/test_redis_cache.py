"""
Test the Redis byte store against a mocked client.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from rentsearch.caching.redis_cache import RedisCache
from rentsearch.search.errors import BackendUnavailableError, RedisCacheError


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=b"cached")
    client.set = AsyncMock(return_value=True)
    client.setex = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def cache(redis_client, settings):
    return RedisCache(settings, client=redis_client)


async def test_get(cache, redis_client):
    """Test raw bytes are returned."""
    assert await cache.get("k") == b"cached"
    redis_client.get.assert_awaited_once_with("k")


async def test_set_with_ttl_uses_setex(cache, redis_client):
    """Test TTL writes use SETEX."""
    assert await cache.set("k", b"v", ttl=300)
    redis_client.setex.assert_awaited_once_with("k", 300, b"v")


async def test_set_without_ttl(cache, redis_client):
    """Test writes without TTL never expire."""
    await cache.set("k", b"v")
    redis_client.set.assert_awaited_once_with("k", b"v")


async def test_errors_are_raised(cache, redis_client):
    """Test connection failures surface as RedisCacheError."""
    redis_client.get.side_effect = RedisConnectionError("refused")
    redis_client.setex.side_effect = RedisConnectionError("refused")

    with pytest.raises(RedisCacheError):
        await cache.get("k")
    with pytest.raises(BackendUnavailableError):
        await cache.set("k", b"v", ttl=10)


async def test_delete(cache, redis_client):
    """Test delete reports whether a key was removed."""
    assert await cache.delete("k")

    redis_client.delete.return_value = 0
    assert not await cache.delete("k")


async def test_ping_failure_is_false(cache, redis_client):
    """Test ping does not raise."""
    assert await cache.ping()

    redis_client.ping.side_effect = RedisConnectionError("refused")
    assert not await cache.ping()


async def test_close(cache, redis_client):
    """Test close releases the client."""
    await cache.close()

    redis_client.aclose.assert_awaited_once()
