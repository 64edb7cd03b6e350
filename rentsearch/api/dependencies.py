"""
Dependency Injection
FastAPI dependencies for the search service, indexer and configuration.
"""

import logging
import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..caching.cache_service import CacheService
from ..config import SearchSettings, get_settings
from ..indexing.indexer import ListingIndexer
from ..search.service import SearchService

logger = logging.getLogger(__name__)


def get_search_service(request: Request) -> SearchService:
    """
    Get the search service built at startup.

    Use as FastAPI dependency:
        @router.get("/search")
        async def search(service: SearchService = Depends(get_search_service)):
            ...
    """
    return request.app.state.search_service


def get_cache_service(request: Request) -> CacheService:
    """Get the cache service built at startup."""
    return request.app.state.cache_service


def get_indexer(request: Request) -> ListingIndexer:
    """
    Get the listing indexer.

    Raises:
        HTTPException: 409 when the service runs on the relational backend
    """
    indexer = getattr(request.app.state, "indexer", None)
    if indexer is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Index operations require SEARCH_BACKEND=index",
        )
    return indexer


def verify_api_key(
    settings: SearchSettings = Depends(get_settings), x_api_key: Optional[str] = Header(None)
) -> bool:
    """
    Verify API key if required.

    Use as FastAPI dependency:
        @router.post("/reindex", dependencies=[Depends(verify_api_key)])
    """
    if not settings.require_api_key:
        return True

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key is required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if x_api_key not in settings.api_keys:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return True


def get_request_id(x_request_id: Optional[str] = Header(None)) -> str:
    """Get or generate request ID for tracing."""
    if x_request_id:
        return x_request_id
    return str(uuid.uuid4())
