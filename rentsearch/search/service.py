"""
Search Service
Single entry point for listing discovery: cache lookup, backend dispatch and result shaping.
"""

import asyncio
import logging
import time
from typing import List, Optional

from pydantic import TypeAdapter

from ..backends.base import SearchBackend
from ..caching.cache_service import CacheConfig, CacheService
from ..config import SearchSettings, get_settings
from .errors import InvalidQueryError, ListingNotFoundError
from .models import ListingHit, SearchQuery, SearchResponse, Suggestions

logger = logging.getLogger(__name__)

_SEARCH_ADAPTER = TypeAdapter(SearchResponse)
_TITLES_ADAPTER = TypeAdapter(List[str])
_SUGGESTIONS_ADAPTER = TypeAdapter(Suggestions)
_HITS_ADAPTER = TypeAdapter(List[ListingHit])


class SearchService:
    """
    Listing search facade.

    Every operation follows CHECK_CACHE -> COMPUTE -> POPULATE_CACHE. Primary
    search failures propagate; enrichment (facets, suggestion sub-queries,
    similar listings, autocomplete) degrades to empty values, which are
    returned but never cached.
    """

    def __init__(
        self,
        backend: SearchBackend,
        cache_service: CacheService,
        settings: Optional[SearchSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize search service.

        Args:
            backend: Search backend (relational or index)
            cache_service: Cache-aside orchestration
            settings: Search settings
            logger: Logger (defaults to module logger)
        """
        self.backend = backend
        self.cache = cache_service
        self.settings = settings or get_settings()
        self.logger = logger or logging.getLogger(__name__)

        self.logger.info(f"Search service initialized (backend={backend.mode.value})")

    async def search(self, query: SearchQuery) -> SearchResponse:
        """
        Execute a search.

        Args:
            query: Validated search query

        Returns:
            Ranked page of results, total and facets

        Raises:
            BackendUnavailableError: If the primary result set cannot be computed
        """
        start_time = time.time()
        params = query.model_dump(mode="json")

        async def compute() -> SearchResponse:
            try:
                return await self.backend.search(query)
            except Exception as e:
                self.logger.error(f"Search failed for query {params}: {e}")
                raise

        response = await self.cache.get_or_compute(
            CacheConfig.SEARCH,
            params,
            compute,
            _SEARCH_ADAPTER,
            cacheable=lambda r: not r.is_partial,
        )

        elapsed_ms = (time.time() - start_time) * 1000
        self.logger.info(
            f"Search: query='{query.query}', total={response.total}, "
            f"page={query.page}, time={elapsed_ms:.1f}ms"
        )
        return response

    async def autocomplete(self, text: str, limit: int = 10) -> List[str]:
        """
        Titles matching a partial query.

        Inputs shorter than the configured minimum return [] without touching
        the backend.

        Raises:
            InvalidQueryError: If limit is not positive
        """
        if limit <= 0:
            raise InvalidQueryError("limit must be positive", details={"limit": limit})

        if text is None or len(text.strip()) < self.settings.autocomplete_min_chars:
            return []

        needle = text.strip()
        degraded = False

        async def compute() -> List[str]:
            nonlocal degraded
            try:
                return await self.backend.autocomplete(needle, limit)
            except Exception as e:
                self.logger.warning(f"Autocomplete degraded to empty for '{needle}': {e}")
                degraded = True
                return []

        return await self.cache.get_or_compute(
            CacheConfig.AUTOCOMPLETE,
            {"text": needle, "limit": limit},
            compute,
            _TITLES_ADAPTER,
            cacheable=lambda _: not degraded,
        )

    async def get_suggestions(self, text: str) -> Suggestions:
        """
        Listings, categories and locations matching text.

        The three sub-queries run concurrently; each degrades to empty on its
        own failure.
        """
        if text is None or len(text.strip()) < self.settings.autocomplete_min_chars:
            return Suggestions()

        needle = text.strip()

        async def compute() -> Suggestions:
            listings, categories, locations = await asyncio.gather(
                self.backend.suggest_listings(needle, self.settings.suggestion_listing_limit),
                self.backend.suggest_categories(needle, self.settings.suggestion_bucket_limit),
                self.backend.suggest_locations(needle, self.settings.suggestion_bucket_limit),
                return_exceptions=True,
            )

            suggestions = Suggestions()
            for name, value in (
                ("listings", listings),
                ("categories", categories),
                ("locations", locations),
            ):
                if isinstance(value, Exception):
                    self.logger.warning(f"Suggestion sub-query '{name}' failed for '{needle}': {value}")
                    suggestions.mark_partial()
                else:
                    setattr(suggestions, name, value)
            return suggestions

        return await self.cache.get_or_compute(
            CacheConfig.SUGGESTIONS,
            {"text": needle},
            compute,
            _SUGGESTIONS_ADAPTER,
            cacheable=lambda s: not s.is_partial,
        )

    async def find_similar(self, listing_id: str, limit: int = 10) -> List[ListingHit]:
        """
        Listings similar to a reference listing.

        A missing reference yields [] rather than an error; other failures
        also degrade to []. Neither outcome is cached.

        Raises:
            InvalidQueryError: If limit is not positive
        """
        if limit <= 0:
            raise InvalidQueryError("limit must be positive", details={"limit": limit})

        degraded = False

        async def compute() -> List[ListingHit]:
            nonlocal degraded
            try:
                return await self.backend.find_similar(listing_id, limit)
            except ListingNotFoundError:
                self.logger.info(f"Similar listings requested for missing listing {listing_id}")
                degraded = True
                return []
            except Exception as e:
                self.logger.warning(f"Similar listings degraded to empty for {listing_id}: {e}")
                degraded = True
                return []

        return await self.cache.get_or_compute(
            CacheConfig.SIMILAR,
            {"listing_id": listing_id, "limit": limit},
            compute,
            _HITS_ADAPTER,
            cacheable=lambda _: not degraded,
        )

    async def get_popular_searches(self, limit: int = 10) -> List[str]:
        """Curated popular searches (static list until analytics exist)."""
        if limit <= 0:
            raise InvalidQueryError("limit must be positive", details={"limit": limit})

        async def compute() -> List[str]:
            return list(self.settings.popular_searches[:limit])

        return await self.cache.get_or_compute(
            CacheConfig.POPULAR,
            {"limit": limit},
            compute,
            _TITLES_ADAPTER,
        )
