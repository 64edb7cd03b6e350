"""
Search Backend Interface
Capability shared by the relational and index backends.
"""

from abc import ABC, abstractmethod
from typing import List

from ..search.models import (
    BackendMode,
    Bucket,
    ListingHit,
    ListingSuggestion,
    SearchQuery,
    SearchResponse,
)


class SearchBackend(ABC):
    """
    Abstract search backend.

    The facade depends only on this interface; the variant is selected at
    construction time from configuration. Implementations raise
    BackendUnavailableError for store failures and ListingNotFoundError when
    a similarity reference is missing.
    """

    mode: BackendMode

    @abstractmethod
    async def search(self, query: SearchQuery) -> SearchResponse:
        """
        Execute a search.

        Aggregation failures degrade to an empty bundle and mark the response
        partial; failures of the primary result set propagate.
        """

    @abstractmethod
    async def autocomplete(self, text: str, limit: int) -> List[str]:
        """Titles of eligible listings matching a partial query."""

    @abstractmethod
    async def suggest_listings(self, text: str, limit: int) -> List[ListingSuggestion]:
        """Eligible listings loosely matching text."""

    @abstractmethod
    async def suggest_categories(self, text: str, limit: int) -> List[Bucket]:
        """Category names matching text, with eligible listing counts."""

    @abstractmethod
    async def suggest_locations(self, text: str, limit: int) -> List[Bucket]:
        """Cities matching text, with eligible listing counts."""

    @abstractmethod
    async def find_similar(self, listing_id: str, limit: int) -> List[ListingHit]:
        """
        Listings similar to a reference listing, excluding it.

        Raises:
            ListingNotFoundError: If the reference listing does not exist
        """

    @abstractmethod
    async def ping(self) -> bool:
        """Check the backing store is reachable."""

    async def close(self) -> None:
        """Release backend resources."""
        return None
