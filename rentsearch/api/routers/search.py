"""
Search Endpoints
GET  /api/v1/search              - Search with flat query parameters
POST /api/v1/search/advanced     - Search with a JSON query body
GET  /api/v1/search/autocomplete - Title completions
GET  /api/v1/search/suggestions  - Listing/category/location suggestions
GET  /api/v1/search/similar/{id} - Similar listings
GET  /api/v1/search/popular      - Popular searches
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ...search.models import SearchQuery, SearchResponse, Suggestions
from ...search.service import SearchService
from ..dependencies import get_request_id, get_search_service
from ..models.search import (
    AutocompleteResponse,
    PopularSearchesResponse,
    SimilarListingsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/search", tags=["search"])


@router.get("", response_model=SearchResponse, status_code=status.HTTP_200_OK)
async def search(
    query: Optional[str] = Query(None, max_length=500, description="Free-text query"),
    category_id: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    country: Optional[str] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    radius: Optional[str] = Query(None, description='Radius, e.g. "10", "10km", "500m", "5mi"'),
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    booking_mode: Optional[str] = None,
    condition: Optional[str] = None,
    features: Optional[str] = Query(None, description="Comma-separated feature names"),
    sort: Optional[str] = None,
    page: Optional[int] = None,
    size: Optional[int] = None,
    search_service: SearchService = Depends(get_search_service),
    request_id: str = Depends(get_request_id),
) -> SearchResponse:
    """
    Search listings with flat query parameters.

    Invalid combinations (e.g. lat/lon without radius, page < 1) return 400.
    """
    search_query = SearchQuery.from_params(
        query=query,
        category_id=category_id,
        city=city,
        state=state,
        country=country,
        lat=lat,
        lon=lon,
        radius=radius,
        min_price=min_price,
        max_price=max_price,
        booking_mode=booking_mode,
        condition=condition,
        features=features,
        sort=sort,
        page=page,
        size=size,
    )

    logger.info(f"Search request: query='{search_query.query}'", extra={"request_id": request_id})
    return await search_service.search(search_query)


@router.post("/advanced", response_model=SearchResponse, status_code=status.HTTP_200_OK)
async def advanced_search(
    search_query: SearchQuery,
    search_service: SearchService = Depends(get_search_service),
    request_id: str = Depends(get_request_id),
) -> SearchResponse:
    """Search listings with a structured JSON query."""
    logger.info(
        f"Advanced search request: query='{search_query.query}'", extra={"request_id": request_id}
    )
    return await search_service.search(search_query)


@router.get("/autocomplete", response_model=AutocompleteResponse)
async def autocomplete(
    q: str = Query("", max_length=200, description="Partial query"),
    limit: int = Query(10, ge=1, le=50),
    search_service: SearchService = Depends(get_search_service),
) -> AutocompleteResponse:
    """Title completions for a partial query (empty below the minimum length)."""
    suggestions = await search_service.autocomplete(q, limit)
    return AutocompleteResponse(query=q, suggestions=suggestions)


@router.get("/suggestions", response_model=Suggestions)
async def suggestions(
    q: str = Query("", max_length=200, description="Partial query"),
    search_service: SearchService = Depends(get_search_service),
) -> Suggestions:
    """Listings, categories and locations matching a partial query."""
    return await search_service.get_suggestions(q)


@router.get("/similar/{listing_id}", response_model=SimilarListingsResponse)
async def similar_listings(
    listing_id: str,
    limit: int = Query(10, ge=1, le=50),
    search_service: SearchService = Depends(get_search_service),
) -> SimilarListingsResponse:
    """Listings similar to a reference listing; empty when it does not exist."""
    results = await search_service.find_similar(listing_id, limit)
    return SimilarListingsResponse(listing_id=listing_id, results=results)


@router.get("/popular", response_model=PopularSearchesResponse)
async def popular_searches(
    limit: int = Query(10, ge=1, le=50),
    search_service: SearchService = Depends(get_search_service),
) -> PopularSearchesResponse:
    """Curated popular searches."""
    return PopularSearchesResponse(searches=await search_service.get_popular_searches(limit))
