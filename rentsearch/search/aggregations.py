"""
Aggregation Engine
Facets over the unpaginated filtered set, via grouped queries or native index aggregations.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.sql.elements import ColumnElement

from ..db.repository import ListingRepository
from .models import AggregationBundle, Bucket, HistogramBucket, PriceStats

logger = logging.getLogger(__name__)

CITY_BUCKET_LIMIT = 20


class RelationalAggregator:
    """
    Computes facets with grouped/aggregate queries.

    Reuses the search predicate so facets describe exactly the matched set.
    Category buckets are uncapped so their counts sum to the total.
    """

    def __init__(self, repository: ListingRepository):
        self.repository = repository

    async def aggregate(self, predicate: Sequence[ColumnElement]) -> AggregationBundle:
        """
        Compute the aggregation bundle.

        Args:
            predicate: Search predicate (without pagination)

        Returns:
            Category, city and condition buckets plus price statistics
        """
        categories = await self.repository.group_by("category_id", predicate, order="count")
        cities = await self.repository.group_by(
            "city", predicate, order="key", limit=CITY_BUCKET_LIMIT
        )
        conditions = await self.repository.group_by(
            "condition", predicate, order="count", exclude_null=True
        )
        prices = await self.repository.aggregate(predicate, ("min", "max", "avg"))

        return AggregationBundle(
            categories=[Bucket(key=str(k), count=c) for k, c in categories],
            cities=[Bucket(key=str(k), count=c) for k, c in cities],
            conditions=[Bucket(key=str(k), count=c) for k, c in conditions],
            price_stats=PriceStats(**prices) if prices.get("min") is not None else None,
        )


def _terms_buckets(raw: Optional[Dict[str, Any]]) -> List[Bucket]:
    if not raw:
        return []
    return [
        Bucket(key=str(b.get("key_as_string", b["key"])), count=b["doc_count"])
        for b in raw.get("buckets", [])
    ]


def parse_index_aggregations(raw: Optional[Dict[str, Any]]) -> AggregationBundle:
    """
    Convert an Elasticsearch aggregations response into an AggregationBundle.

    Args:
        raw: The "aggregations" object of a search response

    Returns:
        Parsed bundle (empty when raw is empty)
    """
    if not raw:
        return AggregationBundle.empty()

    stats = raw.get("price_stats") or {}
    price_stats = None
    if stats.get("count"):
        price_stats = PriceStats(min=stats.get("min"), max=stats.get("max"), avg=stats.get("avg"))

    histogram = [
        HistogramBucket(key=float(b["key"]), count=b["doc_count"])
        for b in (raw.get("price_histogram") or {}).get("buckets", [])
    ]

    return AggregationBundle(
        categories=_terms_buckets(raw.get("categories")),
        cities=_terms_buckets(raw.get("cities")),
        conditions=_terms_buckets(raw.get("conditions")),
        price_stats=price_stats,
        price_histogram=histogram,
    )
