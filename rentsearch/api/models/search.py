"""
API Models
Request/response models for search and index endpoints.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ...search.models import ListingHit


class AutocompleteResponse(BaseModel):
    query: str = Field(..., description="Partial query as received")
    suggestions: List[str] = Field(default_factory=list, description="Matching titles")


class SimilarListingsResponse(BaseModel):
    listing_id: str = Field(..., description="Reference listing ID")
    results: List[ListingHit] = Field(default_factory=list)


class PopularSearchesResponse(BaseModel):
    searches: List[str] = Field(default_factory=list)


class BulkIndexRequest(BaseModel):
    listing_ids: List[str] = Field(
        ..., min_length=1, max_length=10000, description="Listing IDs to index"
    )


class BulkIndexResponse(BaseModel):
    requested: int
    indexed: int
    failed: int
    missing: int
    ineligible: int = 0


class IndexActionResponse(BaseModel):
    listing_id: str
    status: str = Field(..., description="indexed, removed, or skipped")


class TaskQueuedResponse(BaseModel):
    task_id: str = Field(..., description="Celery task ID")
    status: str = Field(default="queued", description="Task status")
    message: str = Field(..., description="Success message")


class IndexStatsResponse(BaseModel):
    index: str
    document_count: int
    size_in_bytes: int
    cache: Optional[dict] = Field(None, description="Cache statistics")
