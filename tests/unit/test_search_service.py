"""
Test the search facade: caching, degradation and input guards.
"""

import pytest

from rentsearch.caching.cache_service import CacheService
from rentsearch.search.errors import (
    BackendUnavailableError,
    InvalidQueryError,
    ListingNotFoundError,
)
from rentsearch.search.models import (
    Bucket,
    ListingHit,
    ListingSuggestion,
    SearchQuery,
    SearchResponse,
)
from rentsearch.search.service import SearchService

from tests.conftest import make_listing, make_settings


@pytest.fixture
def service(mock_backend, cache_service, settings):
    return SearchService(mock_backend, cache_service, settings=settings)


def _response(total=1) -> SearchResponse:
    hits = [ListingHit(**make_listing(f"l{i}").model_dump(), score=1.0) for i in range(total)]
    return SearchResponse(results=hits, total=total, page=1, size=10)


# ========== search ==========


async def test_search_is_cached(service, mock_backend):
    """Test identical queries reach the backend once."""
    mock_backend.search.return_value = _response()
    query = SearchQuery(query="car rental", page=1, size=10)

    first = await service.search(query)
    second = await service.search(SearchQuery(query="car rental", page=1, size=10))

    assert mock_backend.search.await_count == 1
    assert first.model_dump() == second.model_dump()
    assert second.results[0].id == "l0"


async def test_search_keys_differ_by_page(service, mock_backend):
    """Test different pages are cached separately."""
    mock_backend.search.return_value = _response()

    await service.search(SearchQuery(query="tent", page=1))
    await service.search(SearchQuery(query="tent", page=2))

    assert mock_backend.search.await_count == 2


async def test_partial_search_not_cached(service, mock_backend, cache_store):
    """Test responses with degraded facets are returned but not cached."""
    mock_backend.search.return_value = _response().mark_partial()

    response = await service.search(SearchQuery(query="tent"))
    await service.search(SearchQuery(query="tent"))

    assert response.total == 1
    assert mock_backend.search.await_count == 2
    assert cache_store.data == {}


async def test_search_failure_propagates(service, mock_backend, cache_store):
    """Test primary search failures surface to the caller."""
    mock_backend.search.side_effect = BackendUnavailableError("index down")

    with pytest.raises(BackendUnavailableError):
        await service.search(SearchQuery(query="tent"))

    assert cache_store.data == {}


async def test_search_works_with_cache_down(service, mock_backend, cache_store):
    """Test an unreachable cache does not fail the search."""
    cache_store.fail_reads = True
    cache_store.fail_writes = True
    mock_backend.search.return_value = _response(total=2)

    response = await service.search(SearchQuery(query="tent"))

    assert response.total == 2


# ========== autocomplete ==========


async def test_autocomplete_short_text_skips_backend(service, mock_backend):
    """Test inputs below the minimum length return [] without a backend call."""
    assert await service.autocomplete("c") == []
    assert await service.autocomplete("  ") == []

    mock_backend.autocomplete.assert_not_awaited()


async def test_autocomplete_min_chars_configurable(mock_backend, cache_service):
    """Test the minimum length comes from settings."""
    service = SearchService(mock_backend, cache_service, settings=make_settings(autocomplete_min_chars=3))
    mock_backend.autocomplete.return_value = ["Camera kit"]

    assert await service.autocomplete("ca") == []
    assert await service.autocomplete("cam") == ["Camera kit"]
    mock_backend.autocomplete.assert_awaited_once_with("cam", 10)


async def test_autocomplete_cached(service, mock_backend):
    """Test repeated autocomplete is served from cache."""
    mock_backend.autocomplete.return_value = ["Camera kit", "Camping stove"]

    assert await service.autocomplete("ca", 5) == ["Camera kit", "Camping stove"]
    assert await service.autocomplete("ca", 5) == ["Camera kit", "Camping stove"]

    assert mock_backend.autocomplete.await_count == 1


async def test_autocomplete_surrounding_whitespace_shares_cache(service, mock_backend, cache_store):
    """Test padded input reuses the cache entry of the trimmed text."""
    mock_backend.autocomplete.return_value = ["Camera kit"]

    assert await service.autocomplete("ca") == ["Camera kit"]
    assert await service.autocomplete(" ca ") == ["Camera kit"]

    mock_backend.autocomplete.assert_awaited_once_with("ca", 10)
    assert len(cache_store.data) == 1


async def test_autocomplete_degrades_to_empty(service, mock_backend, cache_store):
    """Test autocomplete failures return [] and are not cached."""
    mock_backend.autocomplete.side_effect = BackendUnavailableError("down")

    assert await service.autocomplete("ca") == []
    assert cache_store.data == {}


async def test_autocomplete_rejects_bad_limit(service):
    """Test non-positive limits are invalid."""
    with pytest.raises(InvalidQueryError):
        await service.autocomplete("camera", 0)


# ========== suggestions ==========


def _suggestion_results(backend):
    backend.suggest_listings.return_value = [ListingSuggestion(id="l1", title="Camera kit", base_price=60.0)]
    backend.suggest_categories.return_value = [Bucket(key="Cameras", count=3)]
    backend.suggest_locations.return_value = [Bucket(key="Camden", count=1)]


async def test_suggestions_combine_sub_queries(service, mock_backend, settings):
    """Test listings, categories and locations are combined."""
    _suggestion_results(mock_backend)

    suggestions = await service.get_suggestions("cam")

    assert [s.title for s in suggestions.listings] == ["Camera kit"]
    assert suggestions.categories == [Bucket(key="Cameras", count=3)]
    assert suggestions.locations == [Bucket(key="Camden", count=1)]
    mock_backend.suggest_listings.assert_awaited_once_with("cam", settings.suggestion_listing_limit)


async def test_suggestions_partial_when_sub_query_fails(service, mock_backend, cache_store):
    """Test one failing sub-query empties its section and skips caching."""
    _suggestion_results(mock_backend)
    mock_backend.suggest_categories.side_effect = BackendUnavailableError("down")

    suggestions = await service.get_suggestions("cam")

    assert suggestions.is_partial
    assert suggestions.categories == []
    assert len(suggestions.listings) == 1
    assert len(suggestions.locations) == 1
    assert cache_store.data == {}


async def test_suggestions_cached(service, mock_backend):
    """Test complete suggestions are cached."""
    _suggestion_results(mock_backend)

    await service.get_suggestions("cam")
    await service.get_suggestions("cam")

    assert mock_backend.suggest_listings.await_count == 1


async def test_suggestions_surrounding_whitespace_shares_cache(service, mock_backend, cache_store):
    """Test padded input reuses the cached suggestions of the trimmed text."""
    _suggestion_results(mock_backend)

    await service.get_suggestions("cam")
    await service.get_suggestions("cam  ")

    assert mock_backend.suggest_listings.await_count == 1
    assert len(cache_store.data) == 1


async def test_suggestions_short_text(service, mock_backend):
    """Test short inputs return empty suggestions without backend calls."""
    suggestions = await service.get_suggestions("c")

    assert suggestions.listings == []
    mock_backend.suggest_listings.assert_not_awaited()


# ========== similar ==========


async def test_similar_missing_listing_returns_empty(service, mock_backend, cache_store):
    """Test a missing reference yields [] and nothing is cached."""
    mock_backend.find_similar.side_effect = ListingNotFoundError("nope")

    assert await service.find_similar("nope") == []
    assert cache_store.data == {}


async def test_similar_failure_returns_empty(service, mock_backend):
    """Test backend failures degrade to []."""
    mock_backend.find_similar.side_effect = BackendUnavailableError("down")

    assert await service.find_similar("l1") == []


async def test_similar_cached(service, mock_backend):
    """Test similar listings are cached per listing and limit."""
    hit = ListingHit(**make_listing("l2").model_dump(), score=7.5)
    mock_backend.find_similar.return_value = [hit]

    first = await service.find_similar("l1", 5)
    second = await service.find_similar("l1", 5)

    assert [h.id for h in first] == [h.id for h in second] == ["l2"]
    assert second[0].score == 7.5
    mock_backend.find_similar.assert_awaited_once_with("l1", 5)


# ========== popular ==========


async def test_popular_searches(service, settings):
    """Test popular searches come from the curated list."""
    assert await service.get_popular_searches(3) == settings.popular_searches[:3]


async def test_popular_searches_bad_limit(service):
    """Test non-positive limits are invalid."""
    with pytest.raises(InvalidQueryError):
        await service.get_popular_searches(0)


async def test_service_without_cache(mock_backend, settings):
    """Test every call reaches the backend when caching is off."""
    service = SearchService(mock_backend, CacheService(None, settings=settings), settings=settings)
    mock_backend.search.return_value = _response()

    await service.search(SearchQuery(query="tent"))
    await service.search(SearchQuery(query="tent"))

    assert mock_backend.search.await_count == 2
