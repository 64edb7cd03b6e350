"""
Search Module
Query models, errors and the engines behind listing search.
"""

from .errors import (
    SearchError,
    BackendUnavailableError,
    InvalidQueryError,
    ListingNotFoundError,
)
from .models import (
    SearchQuery,
    LocationFilter,
    PriceRange,
    AttributeFilters,
    SortMode,
    ListingDocument,
    ListingHit,
    AggregationBundle,
    SearchResponse,
    Suggestions,
)

__all__ = [
    "SearchError",
    "BackendUnavailableError",
    "InvalidQueryError",
    "ListingNotFoundError",
    "SearchQuery",
    "LocationFilter",
    "PriceRange",
    "AttributeFilters",
    "SortMode",
    "ListingDocument",
    "ListingHit",
    "AggregationBundle",
    "SearchResponse",
    "Suggestions",
]
