"""
Relational Search Backend
Search over the relational store with computed relevance, distance and facets.
"""

import logging
from typing import Dict, List, Optional

from ..config import SearchSettings, get_settings
from ..db.models import Category, Listing
from ..db.repository import ListingRepository
from ..search.aggregations import RelationalAggregator
from ..search.errors import ListingNotFoundError
from ..search.geo import haversine_km_batch
from ..search.models import (
    AggregationBundle,
    BackendMode,
    Bucket,
    ListingDocument,
    ListingHit,
    ListingSuggestion,
    LocationFilter,
    SearchQuery,
    SearchResponse,
    SortMode,
)
from ..search.query_builder import (
    LIKE_ESCAPE,
    AnyOf,
    Filter,
    FilterOperator,
    ListingFilter,
    RelationalQueryBuilder,
    escape_like,
    to_predicate,
)
from ..search.ranking import RelevanceScorer
from ..search.similarity import SimilarityConfig, SimilarityScorer
from .base import SearchBackend

logger = logging.getLogger(__name__)


class RelationalBackend(SearchBackend):
    """
    Search backend over the relational listing store.

    Relevance is a SQL expression built by RelevanceScorer; geo radius
    filtering is a bounding-box SQL prefilter refined by exact haversine
    distance, and the distances are fed back to the database for ordering.
    """

    mode = BackendMode.RELATIONAL

    def __init__(
        self,
        repository: ListingRepository,
        settings: Optional[SearchSettings] = None,
        query_builder: Optional[RelationalQueryBuilder] = None,
        scorer: Optional[RelevanceScorer] = None,
        similarity: Optional[SimilarityScorer] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize relational backend.

        Args:
            repository: Listing repository
            settings: Search settings
            query_builder: Predicate builder
            scorer: Relevance scorer
            similarity: Similarity scorer
            logger: Logger (defaults to module logger)
        """
        self.settings = settings or get_settings()
        self.repository = repository
        self.query_builder = query_builder or RelationalQueryBuilder()
        self.scorer = scorer or RelevanceScorer()
        self.similarity = similarity or SimilarityScorer(
            SimilarityConfig(
                price_tolerance=self.settings.similarity_price_tolerance,
                max_shared_features=self.settings.similarity_max_shared_features,
                sort=self.settings.similarity_sort,
            )
        )
        self.aggregator = RelationalAggregator(repository)
        self.logger = logger or logging.getLogger(__name__)

        self.logger.info("Relational search backend initialized")

    # ========== Search ==========

    async def _within_radius(
        self, location: LocationFilter, filters: List[Filter]
    ) -> Dict[str, float]:
        """
        Ids of matching listings within the radius, with distances in km.
        """
        prefilter = filters + self.query_builder.bounding_box_filters(location)
        coordinates = await self.repository.find_coordinates(to_predicate(prefilter))
        if not coordinates:
            return {}

        ids = [c[0] for c in coordinates]
        distances = haversine_km_batch(
            location.lat,
            location.lon,
            [c[1] for c in coordinates],
            [c[2] for c in coordinates],
        )

        return {
            listing_id: float(distance)
            for listing_id, distance in zip(ids, distances)
            if distance <= location.radius_km
        }

    def _to_hit(
        self,
        listing: ListingDocument,
        query_text: Optional[str],
        distances: Optional[Dict[str, float]],
    ) -> ListingHit:
        distance = None
        if distances is not None and listing.id in distances:
            distance = round(distances[listing.id], 3)
        return ListingHit(
            **listing.model_dump(),
            score=self.scorer.calculate_relevance_score(listing, query_text),
            distance=distance,
        )

    async def search(self, query: SearchQuery) -> SearchResponse:
        """
        Execute a search against the relational store.

        Relevance and distance are SQL expressions, so ordering and
        pagination happen in the database over every match.

        Args:
            query: Validated search query

        Returns:
            Ranked page, total and facets
        """
        filters = self.query_builder.build_filters(query)

        distances: Optional[Dict[str, float]] = None
        distance_expr = None
        if query.has_geo:
            distances = await self._within_radius(query.location, filters)
            if not distances:
                return SearchResponse(results=[], total=0, page=query.page, size=query.size)
            filters = filters + [ListingFilter("id", FilterOperator.IN, list(distances))]
            distance_expr = self.query_builder.distance_expression(distances)

        predicate = to_predicate(filters)
        total = await self.repository.count(predicate)

        score_expr = None
        if query.sort == SortMode.RELEVANCE and query.query:
            score_expr = self.scorer.score_expression(query.query)

        rows = await self.repository.find_many(
            predicate,
            order_by=self.query_builder.order_by(
                query.sort, score=score_expr, distance=distance_expr
            ),
            limit=query.size,
            offset=query.offset,
        )
        results = [self._to_hit(row, query.query, distances) for row in rows]

        response = SearchResponse(
            results=results,
            total=total,
            page=query.page,
            size=query.size,
        )

        try:
            response.aggregations = await self.aggregator.aggregate(predicate)
        except Exception as e:
            self.logger.warning(f"Aggregation failed, returning empty facets: {e}")
            response.aggregations = AggregationBundle.empty()
            response.mark_partial()

        return response

    # ========== Autocomplete / suggestions ==========

    async def autocomplete(self, text: str, limit: int) -> List[str]:
        """Titles starting with text, or with a word starting with text."""
        filters = self.query_builder.eligibility_filters() + [
            AnyOf(
                [
                    ListingFilter("title", FilterOperator.ISTARTSWITH, text),
                    ListingFilter("title", FilterOperator.ICONTAINS, f" {text}"),
                ]
            )
        ]
        return await self.repository.distinct_titles(to_predicate(filters), limit)

    async def suggest_listings(self, text: str, limit: int) -> List[ListingSuggestion]:
        filters = self.query_builder.eligibility_filters() + [
            AnyOf(
                [
                    ListingFilter("title", FilterOperator.ICONTAINS, text),
                    ListingFilter("description", FilterOperator.ICONTAINS, text),
                ]
            )
        ]
        rows = await self.repository.find_many(
            to_predicate(filters),
            order_by=self.query_builder.base_order(),
            limit=limit,
            include_owner_and_category=False,
        )
        return [
            ListingSuggestion(
                id=row.id,
                title=row.title,
                slug=row.slug,
                base_price=row.base_price,
                currency=row.currency,
            )
            for row in rows
        ]

    async def suggest_categories(self, text: str, limit: int) -> List[Bucket]:
        predicate = to_predicate(self.query_builder.eligibility_filters()) + [
            Category.name.ilike(f"%{escape_like(text)}%", escape=LIKE_ESCAPE)
        ]
        buckets = await self.repository.group_by("category_name", predicate, limit=limit)
        return [Bucket(key=str(k), count=c) for k, c in buckets]

    async def suggest_locations(self, text: str, limit: int) -> List[Bucket]:
        filters = self.query_builder.eligibility_filters() + [
            ListingFilter("city", FilterOperator.ICONTAINS, text)
        ]
        buckets = await self.repository.group_by("city", to_predicate(filters), limit=limit)
        return [Bucket(key=str(k), count=c) for k, c in buckets]

    # ========== Similar listings ==========

    async def find_similar(self, listing_id: str, limit: int) -> List[ListingHit]:
        """
        Listings similar to the reference.

        Ordered by average rating then review count by default; with
        similarity_sort="score", by similarity score.

        Raises:
            ListingNotFoundError: If the reference listing does not exist
        """
        reference = await self.repository.get(listing_id)
        if reference is None:
            raise ListingNotFoundError(listing_id)

        filters = self.query_builder.similar_filters(
            reference, self.similarity.config.price_tolerance
        )

        if self.similarity.config.sort == "score":
            primary = [self.similarity.score_expression(reference).desc()]
        else:
            primary = [
                Listing.average_rating.desc().nulls_last(),
                Listing.review_count.desc(),
            ]

        candidates = await self.repository.find_many(
            to_predicate(filters),
            order_by=primary + self.query_builder.base_order(),
            limit=limit,
        )
        return self.similarity.rank(reference, candidates, limit)

    async def ping(self) -> bool:
        return await self.repository.ping()
