"""
Pydantic Models
Request/response models for API endpoints.
"""

from .search import (
    AutocompleteResponse,
    BulkIndexRequest,
    BulkIndexResponse,
    IndexActionResponse,
    IndexStatsResponse,
    PopularSearchesResponse,
    SimilarListingsResponse,
    TaskQueuedResponse,
)

__all__ = [
    "AutocompleteResponse",
    "BulkIndexRequest",
    "BulkIndexResponse",
    "IndexActionResponse",
    "IndexStatsResponse",
    "PopularSearchesResponse",
    "SimilarListingsResponse",
    "TaskQueuedResponse",
]
