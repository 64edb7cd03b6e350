"""
Index Search Backend
Search over an Elasticsearch index with native relevance and aggregations.
"""

import logging
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError

from ..config import SearchSettings, get_settings
from ..search.aggregations import parse_index_aggregations
from ..search.errors import BackendUnavailableError, ListingNotFoundError, bounded
from ..search.models import (
    AggregationBundle,
    BackendMode,
    Bucket,
    ListingDocument,
    ListingHit,
    ListingSuggestion,
    SearchQuery,
    SearchResponse,
    SortMode,
)
from ..search.query_builder import IndexQueryBuilder
from .base import SearchBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_es_client(settings: Optional[SearchSettings] = None) -> AsyncElasticsearch:
    """Create an async Elasticsearch client from settings."""
    settings = settings or get_settings()

    kwargs: Dict[str, Any] = {"request_timeout": settings.elasticsearch_request_timeout}
    if settings.elasticsearch_api_key:
        kwargs["api_key"] = settings.elasticsearch_api_key
    elif settings.elasticsearch_username and settings.elasticsearch_password:
        kwargs["basic_auth"] = (settings.elasticsearch_username, settings.elasticsearch_password)

    return AsyncElasticsearch(hosts=settings.elasticsearch_hosts, **kwargs)


def response_body(response: Any) -> Dict[str, Any]:
    """Plain dict body of a client response."""
    return getattr(response, "body", response)


def total_hits(hits: Dict[str, Any]) -> int:
    total = hits.get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)


async def call_index(
    operation: str,
    awaitable: Awaitable[T],
    timeout: float,
    log: logging.Logger,
) -> T:
    """
    Await an Elasticsearch call, translating client errors.

    NotFoundError passes through for callers that map it.

    Raises:
        BackendUnavailableError: On API/transport errors or timeout
    """
    try:
        return await bounded(awaitable, timeout, f"index.{operation}")
    except NotFoundError:
        raise
    except (ApiError, TransportError) as e:
        log.error(f"Index {operation} failed: {e}")
        raise BackendUnavailableError(
            f"Search index error during {operation}",
            details={"operation": operation},
        ) from e


class IndexBackend(SearchBackend):
    """
    Search backend over the listings index.

    Relevance and facets are native; distance is read from the geo sort value.
    """

    mode = BackendMode.INDEX

    def __init__(
        self,
        client: AsyncElasticsearch,
        settings: Optional[SearchSettings] = None,
        query_builder: Optional[IndexQueryBuilder] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize index backend.

        Args:
            client: Async Elasticsearch client
            settings: Search settings
            query_builder: Request body builder
            logger: Logger (defaults to module logger)
        """
        self.settings = settings or get_settings()
        self.client = client
        self.index_name = self.settings.elasticsearch_index
        self.query_builder = query_builder or IndexQueryBuilder()
        self.logger = logger or logging.getLogger(__name__)

        self.logger.info(f"Index search backend initialized (index={self.index_name})")

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        return await call_index(
            operation, awaitable, self.settings.io_timeout_seconds, self.logger
        )

    async def _search(self, operation: str, body: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._call(operation, self.client.search(index=self.index_name, **body))
        return response_body(response)

    # ========== Search ==========

    @staticmethod
    def _distance(hit: Dict[str, Any], query: SearchQuery) -> Optional[float]:
        if not query.has_geo:
            return None
        sort_values = hit.get("sort") or []
        if not sort_values:
            return None
        # Distance leads relevance sorts and trails explicit sorts
        value = sort_values[0] if query.sort == SortMode.RELEVANCE else sort_values[-1]
        try:
            return round(float(value), 3)
        except (TypeError, ValueError):
            return None

    async def search(self, query: SearchQuery) -> SearchResponse:
        """
        Execute a search against the index.

        Args:
            query: Validated search query

        Returns:
            Ranked page, total and facets
        """
        body = self.query_builder.build_search(query)
        data = await self._search("search", body)

        hits = data.get("hits", {})
        results = [
            ListingHit(
                **ListingDocument.from_index_source(hit["_source"]).model_dump(),
                score=float(hit.get("_score") or 0.0),
                distance=self._distance(hit, query),
            )
            for hit in hits.get("hits", [])
        ]

        response = SearchResponse(
            results=results,
            total=total_hits(hits),
            page=query.page,
            size=query.size,
        )

        raw_aggregations = data.get("aggregations")
        if raw_aggregations is None:
            self.logger.warning("Index response carried no aggregations")
            response.mark_partial()
            return response

        try:
            response.aggregations = parse_index_aggregations(raw_aggregations)
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Aggregation parsing failed, returning empty facets: {e}")
            response.aggregations = AggregationBundle.empty()
            response.mark_partial()

        return response

    # ========== Autocomplete / suggestions ==========

    async def autocomplete(self, text: str, limit: int) -> List[str]:
        data = await self._search("autocomplete", self.query_builder.build_autocomplete(text, limit))

        titles: List[str] = []
        for hit in data.get("hits", {}).get("hits", []):
            title = hit.get("_source", {}).get("title")
            if title and title not in titles:
                titles.append(title)
        return titles

    async def suggest_listings(self, text: str, limit: int) -> List[ListingSuggestion]:
        data = await self._search(
            "suggest_listings", self.query_builder.build_listing_suggestions(text, limit)
        )
        return [
            ListingSuggestion(
                id=hit["_source"].get("id", hit["_id"]),
                title=hit["_source"]["title"],
                slug=hit["_source"].get("slug"),
                base_price=hit["_source"].get("base_price"),
                currency=hit["_source"].get("currency"),
            )
            for hit in data.get("hits", {}).get("hits", [])
        ]

    async def _bucket_suggestions(self, operation: str, name: str, body: Dict[str, Any]) -> List[Bucket]:
        data = await self._search(operation, body)
        buckets = (data.get("aggregations") or {}).get(name, {}).get("buckets", [])
        return [Bucket(key=str(b["key"]), count=b["doc_count"]) for b in buckets]

    async def suggest_categories(self, text: str, limit: int) -> List[Bucket]:
        return await self._bucket_suggestions(
            "suggest_categories", "categories", self.query_builder.build_category_suggestions(text, limit)
        )

    async def suggest_locations(self, text: str, limit: int) -> List[Bucket]:
        return await self._bucket_suggestions(
            "suggest_locations", "locations", self.query_builder.build_location_suggestions(text, limit)
        )

    # ========== Similar listings ==========

    async def get_listing(self, listing_id: str) -> ListingDocument:
        """
        Fetch one indexed listing.

        Raises:
            ListingNotFoundError: If the document does not exist
        """
        try:
            response = await self._call(
                "get", self.client.get(index=self.index_name, id=listing_id)
            )
        except NotFoundError as e:
            raise ListingNotFoundError(listing_id) from e

        data = response_body(response)
        if not data.get("found", True):
            raise ListingNotFoundError(listing_id)
        return ListingDocument.from_index_source(data["_source"])

    async def find_similar(self, listing_id: str, limit: int) -> List[ListingHit]:
        """
        Listings similar to the reference, ranked by text likeness and proximity.

        Raises:
            ListingNotFoundError: If the reference listing is not indexed
        """
        reference = await self.get_listing(listing_id)

        body = self.query_builder.build_similar(
            reference,
            self.index_name,
            limit,
            self.settings.similarity_geo_radius_km,
        )
        data = await self._search("find_similar", body)

        return [
            ListingHit(
                **ListingDocument.from_index_source(hit["_source"]).model_dump(),
                score=float(hit.get("_score") or 0.0),
            )
            for hit in data.get("hits", {}).get("hits", [])
            if hit.get("_id") != listing_id
        ]

    async def ping(self) -> bool:
        try:
            return bool(await self._call("ping", self.client.ping()))
        except BackendUnavailableError:
            return False

    async def close(self) -> None:
        await self.client.close()
