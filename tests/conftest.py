"""
Pytest configuration and shared fixtures
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from rentsearch.backends.base import SearchBackend
from rentsearch.caching.cache_service import CacheService
from rentsearch.config import SearchSettings
from rentsearch.search.errors import RedisCacheError
from rentsearch.search.models import (
    BackendMode,
    ListingDocument,
    ListingStatus,
    VerificationStatus,
)


class FakeCacheStore:
    """In-memory byte store with switchable failures."""

    def __init__(self):
        self.data: Dict[str, bytes] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.set_calls: List[Tuple[str, Optional[int]]] = []

    async def get(self, key: str) -> Optional[bytes]:
        if self.fail_reads:
            raise RedisCacheError("connection refused")
        return self.data.get(key)

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> bool:
        if self.fail_writes:
            raise RedisCacheError("connection refused")
        self.data[key] = value
        self.ttls[key] = ttl
        self.set_calls.append((key, ttl))
        return True

    async def delete(self, key: str) -> bool:
        return self.data.pop(key, None) is not None

    async def ping(self) -> bool:
        return not self.fail_reads


def make_settings(**overrides) -> SearchSettings:
    """Settings isolated from the environment's .env file."""
    return SearchSettings(_env_file=None, **overrides)


def make_listing(listing_id: str = "listing-1", **overrides) -> ListingDocument:
    """Search-eligible listing with sensible defaults."""
    data = {
        "id": listing_id,
        "title": "Compact car rental",
        "description": "Fuel efficient compact car for city trips",
        "slug": listing_id,
        "category_id": "cat-vehicles",
        "category_name": "Vehicles",
        "category_slug": "vehicles",
        "city": "San Francisco",
        "state": "CA",
        "country": "USA",
        "latitude": 37.7749,
        "longitude": -122.4194,
        "base_price": 100.0,
        "status": ListingStatus.AVAILABLE,
        "verification_status": VerificationStatus.VERIFIED,
        "average_rating": 4.5,
        "review_count": 20,
        "booking_mode": "instant_book",
        "condition": "good",
        "features": ["bluetooth", "gps"],
        "owner_id": "owner-1",
        "owner_name": "Ada Lovelace",
        "created_at": datetime(2024, 1, 10, 12, 0, 0),
    }
    data.update(overrides)
    return ListingDocument(**data)


@pytest.fixture
def settings() -> SearchSettings:
    return make_settings()


@pytest.fixture
def cache_store() -> FakeCacheStore:
    return FakeCacheStore()


@pytest.fixture
def cache_service(cache_store, settings) -> CacheService:
    return CacheService(cache_store, settings=settings)


@pytest.fixture
def mock_backend() -> AsyncMock:
    """SearchBackend double whose async methods are AsyncMocks."""
    backend = AsyncMock(spec=SearchBackend)
    backend.mode = BackendMode.RELATIONAL
    return backend


@pytest.fixture
def listing_factory():
    return make_listing
