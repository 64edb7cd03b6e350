"""
Search Errors
Exception taxonomy shared by backends, cache orchestration and the API layer.
"""

import asyncio
from typing import Any, Awaitable, Dict, Optional, TypeVar

T = TypeVar("T")


class SearchError(Exception):
    """Base exception for search errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class BackendUnavailableError(SearchError):
    """Raised when the cache, repository or index call fails or times out."""

    pass


class RedisCacheError(BackendUnavailableError):
    """Exception raised for Redis cache errors."""

    pass


class InvalidQueryError(SearchError, ValueError):
    """Raised for malformed search input."""

    pass


class ListingNotFoundError(SearchError):
    """Raised when a referenced listing does not exist."""

    def __init__(self, listing_id: str):
        super().__init__(
            message=f"Listing not found: {listing_id}",
            details={"resource": "listing", "id": listing_id},
        )
        self.listing_id = listing_id


async def bounded(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await an I/O call with an upper time bound.

    Raises:
        BackendUnavailableError: If the call does not finish within timeout seconds
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise BackendUnavailableError(
            f"{operation} timed out after {timeout}s",
            details={"operation": operation, "timeout": timeout},
        ) from e
