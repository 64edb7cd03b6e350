"""
Test the relational backend and the search facade end to end on SQLite.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from rentsearch.backends.relational import RelationalBackend
from rentsearch.caching.cache_service import CacheService
from rentsearch.search.errors import BackendUnavailableError, ListingNotFoundError
from rentsearch.search.models import SearchQuery, SortMode
from rentsearch.search.service import SearchService

from tests.conftest import FakeCacheStore, make_settings

from .conftest import ELIGIBLE_IDS, SAN_FRANCISCO, add_listings

pytestmark = pytest.mark.integration


def _ids(response):
    return [hit.id for hit in response.results]


def _near_sf(radius_km, **kwargs):
    lat, lon = SAN_FRANCISCO
    return SearchQuery(location={"lat": lat, "lon": lon, "radius_km": radius_km}, **kwargs)


# ========== Search ==========


async def test_car_rental_scenario(relational_backend):
    """Test text + category + price bounds find the single matching listing."""
    query = SearchQuery(
        query="car rental",
        category_id="cat-vehicles",
        price_range={"min": 50, "max": 200},
        page=1,
        size=10,
    )

    response = await relational_backend.search(query)

    assert response.total == 1
    assert _ids(response) == ["car-compact"]
    assert response.results[0].category_id == "cat-vehicles"
    assert 50 <= response.results[0].base_price <= 200
    assert [(b.key, b.count) for b in response.aggregations.categories] == [("cat-vehicles", 1)]


async def test_only_eligible_listings(relational_backend):
    """Test draft and unverified listings never match."""
    response = await relational_backend.search(SearchQuery(size=100))

    assert set(_ids(response)) == ELIGIBLE_IDS
    assert response.total == len(ELIGIBLE_IDS)


async def test_text_matches_description_not_hidden_rows(relational_backend):
    """Test text hits the description of an eligible listing only."""
    response = await relational_backend.search(SearchQuery(query="luxury"))

    assert _ids(response) == ["car-premium"]


async def test_relevance_ordering(relational_backend):
    """Test title prefix beats title contains, rating breaks the rest."""
    response = await relational_backend.search(SearchQuery(query="car"))

    assert response.total == 3
    assert _ids(response) == ["van-cargo", "car-compact", "car-premium"]
    assert response.results[0].score == pytest.approx(10 + 5 + 3.9 * 0.5)
    assert response.results[1].score == pytest.approx(10 + 3 + 4.5 * 0.5)


def _kayak(listing_id, created_at, **overrides):
    data = {
        "id": listing_id,
        "title": "Touring boat",
        "description": "Sea kayak with paddle and spray skirt",
        "category_id": "cat-vehicles",
        "city": "Sausalito",
        "latitude": 37.8591,
        "longitude": -122.4853,
        "base_price": 40.0,
        "average_rating": None,
        "review_count": 0,
        "booking_mode": "request",
        "condition": None,
        "features": [],
        "created_at": created_at,
    }
    data.update(overrides)
    return data


async def test_relevance_ranks_every_match(session_factory, relational_backend):
    """Test an old best match outranks a large set of newer weak matches."""
    newer = [_kayak(f"kayak-{n:04d}", datetime(2024, 6, 1) + timedelta(minutes=n)) for n in range(1200)]
    best = _kayak(
        "best",
        datetime(2023, 1, 1),
        title="Kayak for two",
        description="Tandem kayak",
        average_rating=4.5,
    )
    await add_listings(session_factory, newer + [best])

    first = await relational_backend.search(SearchQuery(query="kayak", size=5))

    assert first.total == 1201
    assert _ids(first) == ["best", "kayak-1199", "kayak-1198", "kayak-1197", "kayak-1196"]
    assert first.results[0].score == pytest.approx(10 + 5 + 3 + 4.5 * 0.5)
    assert first.results[1].score == pytest.approx(3.0)

    last = await relational_backend.search(SearchQuery(query="kayak", page=61, size=20))

    assert last.total == 1201
    assert _ids(last) == ["kayak-0000"]


async def test_no_text_uses_base_order(relational_backend):
    """Test relevance without text falls back to newest first."""
    response = await relational_backend.search(SearchQuery())

    assert _ids(response) == ["scooter", "camera-kit", "drill", "car-premium", "van-cargo", "car-compact"]


@pytest.mark.parametrize(
    "sort, expected",
    [
        (SortMode.PRICE_ASC, ["drill", "scooter", "camera-kit", "car-compact", "van-cargo", "car-premium"]),
        (SortMode.PRICE_DESC, ["car-premium", "van-cargo", "car-compact", "camera-kit", "scooter", "drill"]),
        (SortMode.RATING, ["scooter", "car-premium", "car-compact", "drill", "van-cargo", "camera-kit"]),
        (SortMode.NEWEST, ["scooter", "camera-kit", "drill", "car-premium", "van-cargo", "car-compact"]),
    ],
)
async def test_sorts(relational_backend, sort, expected):
    """Test explicit sort modes."""
    response = await relational_backend.search(SearchQuery(sort=sort))

    assert _ids(response) == expected


async def test_pagination(relational_backend):
    """Test pages slice the ordered result and keep the full total."""
    response = await relational_backend.search(SearchQuery(sort=SortMode.PRICE_ASC, page=2, size=2))

    assert _ids(response) == ["camera-kit", "car-compact"]
    assert response.total == 6
    assert (response.page, response.size) == (2, 2)


async def test_page_past_the_end(relational_backend):
    """Test a page past the end is empty with the real total."""
    response = await relational_backend.search(SearchQuery(page=5, size=10))

    assert response.results == []
    assert response.total == 6


async def test_price_bounds_inclusive(relational_backend):
    """Test price bounds include both ends."""
    response = await relational_backend.search(SearchQuery(price_range={"min": 60, "max": 110}))

    assert set(_ids(response)) == {"camera-kit", "car-compact", "van-cargo"}


async def test_category_filter(relational_backend):
    """Test category filter."""
    response = await relational_backend.search(SearchQuery(category_id="cat-vehicles"))

    assert set(_ids(response)) == {"car-compact", "car-premium", "van-cargo", "scooter"}


async def test_place_names_case_insensitive(relational_backend):
    """Test city filter is case-insensitive containment."""
    response = await relational_backend.search(SearchQuery(location={"city": "SAN", "state": "ca"}))

    assert set(_ids(response)) == {"car-compact", "scooter", "camera-kit", "van-cargo"}


async def test_features_any(relational_backend):
    """Test features filter matches listings with any of the features."""
    response = await relational_backend.search(SearchQuery(filters={"features": ["tripod", "helmet"]}))

    assert set(_ids(response)) == {"scooter", "camera-kit"}


async def test_booking_mode_and_condition(relational_backend):
    """Test exact attribute filters."""
    response = await relational_backend.search(
        SearchQuery(filters={"booking_mode": "instant_book", "condition": "good"})
    )

    assert set(_ids(response)) == {"car-compact", "drill"}


async def test_geo_radius(relational_backend):
    """Test radius filtering, distances and distance-first relevance order."""
    response = await relational_backend.search(_near_sf(15))

    assert _ids(response) == ["car-compact", "camera-kit", "scooter", "car-premium"]
    distances = [hit.distance for hit in response.results]
    assert all(d <= 15 for d in distances)
    assert distances == sorted(distances)
    assert distances[0] == 0.0
    assert distances[-1] == pytest.approx(13.4, abs=0.2)
    assert response.total == 4


async def test_geo_with_explicit_sort(relational_backend):
    """Test explicit sorts still carry distances."""
    response = await relational_backend.search(_near_sf(15, sort=SortMode.PRICE_ASC))

    assert _ids(response) == ["scooter", "camera-kit", "car-compact", "car-premium"]
    assert all(hit.distance is not None for hit in response.results)


async def test_geo_excludes_box_corners(relational_backend):
    """Test a listing inside the bounding box but outside the circle is dropped."""
    response = await relational_backend.search(_near_sf(16))

    assert "drill" not in _ids(response)


async def test_geo_high_latitude_near_tangent_point(session_factory, relational_backend):
    """Test a listing near the circle's eastern edge at 70N is inside the prefilter."""
    await add_listings(
        session_factory,
        [
            _kayak(
                "arctic-cabin",
                datetime(2024, 4, 1),
                title="Arctic cabin",
                city="Nordkyn",
                state="Finnmark",
                latitude=70.175,
                longitude=7.895,
            )
        ],
    )

    response = await relational_backend.search(
        SearchQuery(location={"lat": 70.0, "lon": 0.0, "radius_km": 300})
    )

    assert _ids(response) == ["arctic-cabin"]
    assert response.results[0].distance == pytest.approx(299.4, abs=0.2)


async def test_geo_nothing_nearby(relational_backend):
    """Test an empty area gives an empty response."""
    response = await relational_backend.search(
        SearchQuery(location={"lat": 0.0, "lon": 0.0, "radius_km": 5})
    )

    assert response.total == 0
    assert response.results == []


async def test_aggregations(relational_backend):
    """Test facets describe the whole filtered set."""
    response = await relational_backend.search(SearchQuery(size=1))
    aggregations = response.aggregations

    assert [(b.key, b.count) for b in aggregations.categories] == [
        ("cat-vehicles", 4),
        ("cat-cameras", 1),
        ("cat-tools", 1),
    ]
    assert sum(b.count for b in aggregations.categories) == response.total
    assert [(b.key, b.count) for b in aggregations.cities] == [
        ("Berkeley", 1),
        ("Oakland", 1),
        ("San Francisco", 3),
        ("San Jose", 1),
    ]
    assert [(b.key, b.count) for b in aggregations.conditions] == [
        ("good", 2),
        ("excellent", 1),
        ("fair", 1),
    ]
    assert aggregations.price_stats.min == 15.0
    assert aggregations.price_stats.max == 250.0
    assert aggregations.price_stats.avg == pytest.approx(565 / 6)


async def test_aggregations_follow_filters(relational_backend):
    """Test facets use the same predicate as the results."""
    response = await relational_backend.search(_near_sf(15))

    assert sum(b.count for b in response.aggregations.categories) == response.total


async def test_aggregation_failure_marks_partial(relational_backend, monkeypatch):
    """Test failed facets degrade to empty and mark the response partial."""
    monkeypatch.setattr(
        relational_backend.aggregator,
        "aggregate",
        AsyncMock(side_effect=BackendUnavailableError("group by failed")),
    )

    response = await relational_backend.search(SearchQuery(query="car"))

    assert response.total == 3
    assert response.aggregations.categories == []
    assert response.is_partial


# ========== Autocomplete / suggestions ==========


async def test_autocomplete(relational_backend):
    """Test titles starting with, or with a word starting with, the text."""
    titles = await relational_backend.autocomplete("ca", 10)

    assert titles == ["Cargo van", "Compact car rental", "Mirrorless camera kit", "Premium car rental"]


async def test_autocomplete_limit(relational_backend):
    """Test the limit caps the titles."""
    assert len(await relational_backend.autocomplete("ca", 2)) == 2


async def test_suggestions(relational_backend):
    """Test the three suggestion sub-queries."""
    listings = await relational_backend.suggest_listings("cam", 5)
    categories = await relational_backend.suggest_categories("cam", 5)
    locations = await relational_backend.suggest_locations("san", 5)

    assert [s.id for s in listings] == ["camera-kit"]
    assert [(b.key, b.count) for b in categories] == [("Cameras", 1)]
    assert [(b.key, b.count) for b in locations] == [("San Francisco", 3), ("San Jose", 1)]


# ========== Similar listings ==========


async def test_similar_by_rating(relational_backend):
    """Test similar listings share the category and match place or price."""
    results = await relational_backend.find_similar("car-compact", 10)

    assert [h.id for h in results] == ["scooter", "van-cargo"]
    assert results[0].score == pytest.approx(5 + 3)
    assert results[1].score == pytest.approx(5 + 2 + 0.5)


async def test_similar_by_score(repository):
    """Test score ordering when configured."""
    backend = RelationalBackend(repository, settings=make_settings(similarity_sort="score"))

    results = await backend.find_similar("car-compact", 1)

    assert [h.id for h in results] == ["scooter"]


async def test_similar_none(relational_backend):
    """Test a listing with no peers has no similar listings."""
    assert await relational_backend.find_similar("drill", 10) == []


async def test_similar_missing(relational_backend):
    """Test a missing reference raises ListingNotFoundError."""
    with pytest.raises(ListingNotFoundError):
        await relational_backend.find_similar("nope", 10)


async def test_ping(relational_backend):
    """Test the backend is reachable."""
    assert await relational_backend.ping()


# ========== Facade ==========


@pytest.fixture
def search_service(relational_backend, settings):
    return SearchService(relational_backend, CacheService(FakeCacheStore(), settings=settings), settings=settings)


async def test_facade_search_cached(search_service, relational_backend, monkeypatch):
    """Test the second identical search is served from cache."""
    query = SearchQuery(query="car rental", category_id="cat-vehicles", price_range={"min": 50, "max": 200})

    first = await search_service.search(query)
    monkeypatch.setattr(relational_backend, "search", AsyncMock(side_effect=AssertionError("not cached")))
    second = await search_service.search(query)

    assert second.total == first.total == 1
    assert _ids(second) == ["car-compact"]


async def test_facade_similar_missing_is_empty(search_service):
    """Test the facade maps a missing reference to no results."""
    assert await search_service.find_similar("nope") == []


async def test_facade_suggestions(search_service):
    """Test the facade combines suggestion sub-queries."""
    suggestions = await search_service.get_suggestions("cam")

    assert [s.title for s in suggestions.listings] == ["Mirrorless camera kit"]
    assert not suggestions.is_partial
