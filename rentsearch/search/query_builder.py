"""
Query Builder
Translate a SearchQuery into relational predicates or an Elasticsearch query body.

Both builders apply the eligibility predicate first (status=available,
verification=verified); every user filter is AND-combined on top of it.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import and_, case, or_
from sqlalchemy.sql.elements import ColumnElement

from ..db.models import Listing, ListingFeature
from .geo import bounding_box
from .models import (
    ListingDocument,
    ListingStatus,
    LocationFilter,
    SearchQuery,
    SortMode,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"


def escape_like(value: str) -> str:
    """Escape LIKE wildcards in user text."""
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class FilterOperator(Enum):
    """Comparison operators for relational filters."""

    EQ = "="
    NE = "!="
    GTE = ">="
    LTE = "<="
    IN = "IN"
    ICONTAINS = "ICONTAINS"  # Case-insensitive substring
    ISTARTSWITH = "ISTARTSWITH"  # Case-insensitive prefix
    HAS_ANY = "HAS ANY"  # Feature set shares at least one value


_COLUMNS = {
    "id": Listing.id,
    "title": Listing.title,
    "description": Listing.description,
    "category_id": Listing.category_id,
    "city": Listing.city,
    "state": Listing.state,
    "country": Listing.country,
    "latitude": Listing.latitude,
    "longitude": Listing.longitude,
    "base_price": Listing.base_price,
    "status": Listing.status,
    "verification_status": Listing.verification_status,
    "booking_mode": Listing.booking_mode,
    "condition": Listing.condition,
    "average_rating": Listing.average_rating,
    "created_at": Listing.created_at,
}


@dataclass
class ListingFilter:
    """
    Single filter condition on listings.

    Example:
        ListingFilter("base_price", FilterOperator.LTE, 100.0)  # base_price <= 100
        ListingFilter("features", FilterOperator.HAS_ANY, ["wifi", "parking"])
    """

    field: str
    operator: FilterOperator
    value: Any

    def to_clause(self) -> ColumnElement:
        """Convert filter to a SQLAlchemy boolean clause."""
        if self.operator == FilterOperator.HAS_ANY:
            return Listing.features.any(ListingFeature.name.in_(list(self.value)))

        column = _COLUMNS[self.field]

        if self.operator == FilterOperator.EQ:
            return column == self.value
        if self.operator == FilterOperator.NE:
            return column != self.value
        if self.operator == FilterOperator.GTE:
            return column >= self.value
        if self.operator == FilterOperator.LTE:
            return column <= self.value
        if self.operator == FilterOperator.IN:
            return column.in_(list(self.value))
        if self.operator == FilterOperator.ICONTAINS:
            return column.ilike(f"%{escape_like(self.value)}%", escape=LIKE_ESCAPE)
        if self.operator == FilterOperator.ISTARTSWITH:
            return column.ilike(f"{escape_like(self.value)}%", escape=LIKE_ESCAPE)

        raise ValueError(f"Unsupported operator: {self.operator}")


@dataclass
class AnyOf:
    """OR-combination of filters."""

    filters: List[Union[ListingFilter, "AllOf"]] = field(default_factory=list)

    def to_clause(self) -> ColumnElement:
        return or_(*[f.to_clause() for f in self.filters])


@dataclass
class AllOf:
    """AND-combination of filters (for nesting inside AnyOf)."""

    filters: List[Union[ListingFilter, AnyOf]] = field(default_factory=list)

    def to_clause(self) -> ColumnElement:
        return and_(*[f.to_clause() for f in self.filters])


Filter = Union[ListingFilter, AnyOf, AllOf]


def to_predicate(filters: List[Filter]) -> List[ColumnElement]:
    """Convert filters to a list of AND-combined clauses."""
    return [f.to_clause() for f in filters]


class RelationalQueryBuilder:
    """
    Builds predicate sets for the relational backend.

    Free text becomes OR-combined substring matches over title, description and
    city; relevance is scored separately by the ranking engine.
    """

    TEXT_FIELDS = ("title", "description", "city")

    def eligibility_filters(self) -> List[Filter]:
        return [
            ListingFilter("status", FilterOperator.EQ, ListingStatus.AVAILABLE),
            ListingFilter("verification_status", FilterOperator.EQ, VerificationStatus.VERIFIED),
        ]

    def text_filter(self, text: str) -> AnyOf:
        return AnyOf([ListingFilter(f, FilterOperator.ICONTAINS, text) for f in self.TEXT_FIELDS])

    def place_filters(self, location: LocationFilter) -> List[Filter]:
        """Case-insensitive containment on each provided place name (AND across fields)."""
        filters: List[Filter] = []
        for name in ("city", "state", "country"):
            value = getattr(location, name)
            if value:
                filters.append(ListingFilter(name, FilterOperator.ICONTAINS, value))
        return filters

    def bounding_box_filters(self, location: LocationFilter) -> List[Filter]:
        """Lat/lon box around the query point; exact radius is applied afterwards."""
        min_lat, max_lat, min_lon, max_lon = bounding_box(
            location.lat, location.lon, location.radius_km
        )
        filters: List[Filter] = [
            ListingFilter("latitude", FilterOperator.GTE, min_lat),
            ListingFilter("latitude", FilterOperator.LTE, max_lat),
        ]
        if min_lon > -180.0 or max_lon < 180.0:
            filters.append(ListingFilter("longitude", FilterOperator.GTE, min_lon))
            filters.append(ListingFilter("longitude", FilterOperator.LTE, max_lon))
        return filters

    def build_filters(self, query: SearchQuery) -> List[Filter]:
        """
        Build the full filter set for a query, without geo radius.

        Args:
            query: Search query

        Returns:
            List of filters, eligibility first
        """
        filters = self.eligibility_filters()

        if query.query:
            filters.append(self.text_filter(query.query))

        if query.category_id:
            filters.append(ListingFilter("category_id", FilterOperator.EQ, query.category_id))

        if query.location is not None and query.location.has_place_names:
            filters.extend(self.place_filters(query.location))

        if query.price_range is not None:
            if query.price_range.min is not None:
                filters.append(ListingFilter("base_price", FilterOperator.GTE, query.price_range.min))
            if query.price_range.max is not None:
                filters.append(ListingFilter("base_price", FilterOperator.LTE, query.price_range.max))

        if query.filters is not None:
            if query.filters.booking_mode:
                filters.append(
                    ListingFilter("booking_mode", FilterOperator.EQ, query.filters.booking_mode)
                )
            if query.filters.condition:
                filters.append(ListingFilter("condition", FilterOperator.EQ, query.filters.condition))
            if query.filters.features:
                filters.append(
                    ListingFilter("features", FilterOperator.HAS_ANY, query.filters.features)
                )

        return filters

    @staticmethod
    def distance_expression(distances: Dict[str, float]) -> ColumnElement:
        """Distance in km per listing id, for ordering an already radius-filtered set."""
        return case(distances, value=Listing.id, else_=None)

    def order_by(
        self,
        sort: SortMode,
        score: Optional[ColumnElement] = None,
        distance: Optional[ColumnElement] = None,
    ) -> List[ColumnElement]:
        """
        SQL ordering for a sort mode; the base row order breaks ties.

        Args:
            sort: Requested sort mode
            score: Relevance expression (relevance sort with free text)
            distance: Distance expression (geo filter)

        Returns:
            ORDER BY clauses. For relevance, distance leads and score follows;
            for explicit sorts, distance breaks ties of the sort key.
        """
        if sort == SortMode.PRICE_ASC:
            primary = [Listing.base_price.asc()]
        elif sort == SortMode.PRICE_DESC:
            primary = [Listing.base_price.desc()]
        elif sort == SortMode.RATING:
            primary = [Listing.average_rating.desc().nulls_last()]
        elif sort == SortMode.NEWEST:
            primary = [Listing.created_at.desc()]
        else:
            primary = []
            if distance is not None:
                primary.append(distance.asc())
            if score is not None:
                primary.append(score.desc())
            return primary + self.base_order()

        if distance is not None:
            primary.append(distance.asc())
        return primary + self.base_order()

    @staticmethod
    def base_order() -> List[ColumnElement]:
        return [Listing.created_at.desc(), Listing.id.asc()]

    def similar_filters(self, reference: ListingDocument, price_tolerance: float) -> List[Filter]:
        """
        Hard filters for similar listings.

        Eligible, same category, not the reference, and either in the same
        city+state or within +/- price_tolerance of the reference price.
        """
        low = reference.base_price * (1 - price_tolerance)
        high = reference.base_price * (1 + price_tolerance)

        alternatives: List[Filter] = [
            AllOf(
                [
                    ListingFilter("base_price", FilterOperator.GTE, low),
                    ListingFilter("base_price", FilterOperator.LTE, high),
                ]
            )
        ]
        if reference.city and reference.state:
            alternatives.insert(
                0,
                AllOf(
                    [
                        ListingFilter("city", FilterOperator.EQ, reference.city),
                        ListingFilter("state", FilterOperator.EQ, reference.state),
                    ]
                ),
            )

        return self.eligibility_filters() + [
            ListingFilter("category_id", FilterOperator.EQ, reference.category_id),
            ListingFilter("id", FilterOperator.NE, reference.id),
            AnyOf(alternatives),
        ]


class IndexQueryBuilder:
    """
    Builds Elasticsearch request bodies.

    Text relevance is native: a fuzzy multi-field match (title^3, description^2,
    category/city/features^1) plus a title phrase-prefix boost of 5.
    """

    TEXT_FIELDS = ["title^3", "description^2", "category_name", "city", "features"]
    TITLE_PHRASE_BOOST = 5
    HISTOGRAM_INTERVAL = 50

    def eligibility_filters(self) -> List[Dict[str, Any]]:
        return [
            {"term": {"status": ListingStatus.AVAILABLE.value}},
            {"term": {"verification_status": VerificationStatus.VERIFIED.value}},
        ]

    @staticmethod
    def _contains(field_name: str, value: str) -> Dict[str, Any]:
        escaped = value.replace("\\", "\\\\").replace("*", "\\*").replace("?", "\\?")
        return {
            "wildcard": {field_name: {"value": f"*{escaped}*", "case_insensitive": True}}
        }

    def text_should(self, text: str) -> List[Dict[str, Any]]:
        return [
            {
                "multi_match": {
                    "query": text,
                    "fields": self.TEXT_FIELDS,
                    "type": "best_fields",
                    "fuzziness": "AUTO",
                }
            },
            {
                "match_phrase_prefix": {
                    "title": {"query": text, "boost": self.TITLE_PHRASE_BOOST}
                }
            },
        ]

    def geo_distance_filter(self, location: LocationFilter) -> Dict[str, Any]:
        return {
            "geo_distance": {
                "distance": f"{location.radius_km}km",
                "location": {"lat": location.lat, "lon": location.lon},
            }
        }

    def build_filters(self, query: SearchQuery) -> List[Dict[str, Any]]:
        filters = self.eligibility_filters()

        if query.category_id:
            filters.append({"term": {"category_id": query.category_id}})

        if query.location is not None:
            for name in ("city", "state", "country"):
                value = getattr(query.location, name)
                if value:
                    filters.append(self._contains(name, value))
            if query.location.has_point:
                filters.append(self.geo_distance_filter(query.location))

        if query.price_range is not None:
            bounds = {}
            if query.price_range.min is not None:
                bounds["gte"] = query.price_range.min
            if query.price_range.max is not None:
                bounds["lte"] = query.price_range.max
            if bounds:
                filters.append({"range": {"base_price": bounds}})

        if query.filters is not None:
            if query.filters.booking_mode:
                filters.append({"term": {"booking_mode": query.filters.booking_mode}})
            if query.filters.condition:
                filters.append({"term": {"condition": query.filters.condition}})
            if query.filters.features:
                filters.append({"terms": {"features": list(query.filters.features)}})

        return filters

    def build_sort(self, query: SearchQuery) -> List[Any]:
        """
        Resolve sort mode.

        With a geo filter, ascending distance leads the relevance ordering and
        follows explicit sorts as a tie-breaker.
        """
        if query.sort == SortMode.PRICE_ASC:
            sort: List[Any] = [{"base_price": "asc"}]
        elif query.sort == SortMode.PRICE_DESC:
            sort = [{"base_price": "desc"}]
        elif query.sort == SortMode.RATING:
            sort = [{"average_rating": {"order": "desc", "missing": "_last"}}]
        elif query.sort == SortMode.NEWEST:
            sort = [{"created_at": "desc"}]
        else:
            sort = ["_score"]

        if query.has_geo:
            geo_sort = {
                "_geo_distance": {
                    "location": {"lat": query.location.lat, "lon": query.location.lon},
                    "order": "asc",
                    "unit": "km",
                }
            }
            if query.sort == SortMode.RELEVANCE:
                sort.insert(0, geo_sort)
            else:
                sort.append(geo_sort)

        return sort

    def build_aggregations(self) -> Dict[str, Any]:
        return {
            "categories": {"terms": {"field": "category_id", "size": 20}},
            "cities": {"terms": {"field": "city", "size": 20, "order": {"_key": "asc"}}},
            "conditions": {"terms": {"field": "condition", "size": 10}},
            "price_stats": {"stats": {"field": "base_price"}},
            "price_histogram": {
                "histogram": {"field": "base_price", "interval": self.HISTOGRAM_INTERVAL}
            },
        }

    def build_search(self, query: SearchQuery, with_aggregations: bool = True) -> Dict[str, Any]:
        """
        Build the search request body.

        Returns:
            Keyword arguments for AsyncElasticsearch.search (minus index)
        """
        bool_query: Dict[str, Any] = {"filter": self.build_filters(query)}

        if query.query:
            bool_query["should"] = self.text_should(query.query)
            bool_query["minimum_should_match"] = 1

        body: Dict[str, Any] = {
            "query": {"bool": bool_query},
            "sort": self.build_sort(query),
            "from_": query.offset,
            "size": query.size,
            "track_scores": True,
            "track_total_hits": True,
        }
        if with_aggregations:
            body["aggs"] = self.build_aggregations()

        return body

    def build_autocomplete(self, text: str, limit: int) -> Dict[str, Any]:
        return {
            "query": {
                "bool": {
                    "filter": self.eligibility_filters(),
                    "must": [
                        {
                            "multi_match": {
                                "query": text,
                                "fields": ["title", "category_name", "city"],
                                "type": "phrase_prefix",
                            }
                        }
                    ],
                }
            },
            "size": limit,
            "source": ["title"],
        }

    def build_listing_suggestions(self, text: str, limit: int) -> Dict[str, Any]:
        return {
            "query": {
                "bool": {
                    "filter": self.eligibility_filters(),
                    "must": [
                        {
                            "multi_match": {
                                "query": text,
                                "fields": ["title^2", "description"],
                                "fuzziness": "AUTO",
                            }
                        }
                    ],
                }
            },
            "size": limit,
            "source": ["id", "title", "slug", "base_price", "currency"],
        }

    def build_category_suggestions(self, text: str, limit: int) -> Dict[str, Any]:
        return {
            "query": {
                "bool": {
                    "filter": self.eligibility_filters(),
                    "must": [{"match": {"category_name": text}}],
                }
            },
            "aggs": {"categories": {"terms": {"field": "category_name.keyword", "size": limit}}},
            "size": 0,
        }

    def build_location_suggestions(self, text: str, limit: int) -> Dict[str, Any]:
        return {
            "query": {
                "bool": {
                    "filter": self.eligibility_filters(),
                    "should": [self._contains(name, text) for name in ("city", "state", "country")],
                    "minimum_should_match": 1,
                }
            },
            "aggs": {"locations": {"terms": {"field": "city", "size": limit}}},
            "size": 0,
        }

    def build_similar(
        self,
        reference: ListingDocument,
        index_name: str,
        limit: int,
        radius_km: float,
    ) -> Dict[str, Any]:
        """
        Similar-listing query: eligibility and category are hard filters,
        text likeness and geo proximity only affect ranking.
        """
        should: List[Dict[str, Any]] = [
            {
                "more_like_this": {
                    "fields": ["title", "description", "features"],
                    "like": [{"_index": index_name, "_id": reference.id}],
                    "min_term_freq": 1,
                    "min_doc_freq": 1,
                }
            }
        ]
        if reference.latitude is not None and reference.longitude is not None:
            should.append(
                {
                    "geo_distance": {
                        "distance": f"{radius_km}km",
                        "location": {"lat": reference.latitude, "lon": reference.longitude},
                    }
                }
            )

        return {
            "query": {
                "bool": {
                    "filter": self.eligibility_filters()
                    + [{"term": {"category_id": reference.category_id}}],
                    "should": should,
                    "must_not": [{"ids": {"values": [reference.id]}}],
                }
            },
            "size": limit,
        }
