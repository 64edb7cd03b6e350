"""
Index Admin Endpoints
POST   /api/v1/search/index/listing/{id} - Index one listing
DELETE /api/v1/search/index/listing/{id} - Remove one listing from the index
POST   /api/v1/search/index/bulk         - Bulk index listings
POST   /api/v1/search/reindex            - Queue a full reindex (Celery)
GET    /api/v1/search/stats              - Index and cache statistics

Available only when SEARCH_BACKEND=index.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...caching.cache_service import CacheService
from ...indexing.indexer import ListingIndexer
from ..dependencies import get_cache_service, get_indexer, verify_api_key
from ..models.search import (
    BulkIndexRequest,
    BulkIndexResponse,
    IndexActionResponse,
    IndexStatsResponse,
    TaskQueuedResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/search",
    tags=["index-admin"],
    dependencies=[Depends(verify_api_key)],
)


@router.post("/index/listing/{listing_id}", response_model=IndexActionResponse)
async def index_listing(
    listing_id: str, indexer: ListingIndexer = Depends(get_indexer)
) -> IndexActionResponse:
    """Index (or re-index) one listing from the relational store."""
    indexed = await indexer.index_listing(listing_id)
    return IndexActionResponse(listing_id=listing_id, status="indexed" if indexed else "skipped")


@router.delete("/index/listing/{listing_id}", response_model=IndexActionResponse)
async def remove_listing(
    listing_id: str, indexer: ListingIndexer = Depends(get_indexer)
) -> IndexActionResponse:
    """Remove one listing from the index."""
    removed = await indexer.remove_listing(listing_id)
    return IndexActionResponse(listing_id=listing_id, status="removed" if removed else "skipped")


@router.post("/index/bulk", response_model=BulkIndexResponse)
async def bulk_index(
    request: BulkIndexRequest, indexer: ListingIndexer = Depends(get_indexer)
) -> BulkIndexResponse:
    """Bulk index listings by id."""
    result = await indexer.bulk_index_listings(request.listing_ids)
    return BulkIndexResponse(**result)


@router.post("/reindex", response_model=TaskQueuedResponse, status_code=status.HTTP_202_ACCEPTED)
async def reindex(indexer: ListingIndexer = Depends(get_indexer)) -> TaskQueuedResponse:
    """
    Queue a full reindex.

    Long-running: drops and rebuilds the index in a Celery worker.
    Returns immediately with the task ID.
    """
    try:
        from ...tasks.indexing import reindex_all

        result = reindex_all.delay()
        logger.info(f"Full reindex triggered: task_id={result.id}, index={indexer.index_name}")

        return TaskQueuedResponse(
            task_id=result.id,
            status="queued",
            message=f"Full reindex queued for index {indexer.index_name}",
        )

    except Exception as e:
        logger.error(f"Failed to trigger reindex: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to trigger reindex: {str(e)}",
        )


@router.get("/stats", response_model=IndexStatsResponse)
async def index_stats(
    indexer: ListingIndexer = Depends(get_indexer),
    cache_service: CacheService = Depends(get_cache_service),
) -> IndexStatsResponse:
    """Index document count and size, plus cache statistics."""
    stats = await indexer.get_index_stats()
    return IndexStatsResponse(**stats, cache=cache_service.get_statistics())
