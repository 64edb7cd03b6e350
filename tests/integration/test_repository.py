"""
Test listing repository queries against SQLite.
"""

import pytest

from rentsearch.search.errors import BackendUnavailableError
from rentsearch.search.models import SearchQuery
from rentsearch.search.query_builder import RelationalQueryBuilder, to_predicate

from .conftest import ELIGIBLE_IDS

pytestmark = pytest.mark.integration


def _predicate(query: SearchQuery):
    return to_predicate(RelationalQueryBuilder().build_filters(query))


async def test_get_loads_relations(repository):
    """Test a single listing carries category, owner and features."""
    listing = await repository.get("car-compact")

    assert listing.title == "Compact car rental"
    assert listing.category_name == "Vehicles"
    assert listing.owner_name == "Ada Lovelace"
    assert listing.owner_rating == 4.6
    assert listing.features == ["bluetooth", "gps"]
    assert listing.base_price == 100.0


async def test_get_returns_ineligible_rows(repository):
    """Test lookups by id ignore eligibility."""
    listing = await repository.get("car-draft")

    assert listing is not None
    assert not listing.is_search_eligible


async def test_get_missing(repository):
    """Test unknown ids return None."""
    assert await repository.get("nope") is None


async def test_get_many_keeps_order(repository):
    """Test get_many follows the requested order and skips unknown ids."""
    listings = await repository.get_many(["drill", "nope", "car-compact"])

    assert [listing.id for listing in listings] == ["drill", "car-compact"]


async def test_find_many_without_relations(repository):
    """Test category and owner stay empty when not loaded."""
    predicate = _predicate(SearchQuery(query="drill"))

    listings = await repository.find_many(predicate, include_owner_and_category=False)

    assert [listing.id for listing in listings] == ["drill"]
    assert listings[0].category_name is None
    assert listings[0].owner_name is None


async def test_count_eligible(repository):
    """Test the eligibility predicate."""
    predicate = _predicate(SearchQuery())

    assert await repository.count(predicate) == len(ELIGIBLE_IDS)


async def test_aggregate_empty_set(repository):
    """Test aggregates over no rows are None."""
    predicate = _predicate(SearchQuery(query="zeppelin"))

    assert await repository.aggregate(predicate) == {"min": None, "max": None, "avg": None}


async def test_eligible_ids_keyset(repository):
    """Test eligible ids are paged in id order."""
    first = await repository.eligible_ids(batch_size=4)
    second = await repository.eligible_ids(after_id=first[-1], batch_size=4)

    assert first == ["camera-kit", "car-compact", "car-premium", "drill"]
    assert second == ["scooter", "van-cargo"]


async def test_group_by_rejects_unknown_field(repository):
    """Test only known fields can be grouped."""
    with pytest.raises(ValueError):
        await repository.group_by("title", [])


async def test_distinct_titles(repository):
    """Test titles are distinct and alphabetical."""
    titles = await repository.distinct_titles([], limit=3)

    assert titles == ["Cargo van", "Classic car rental", "Compact car rental"]


async def test_ping(repository):
    """Test the store is reachable."""
    assert await repository.ping()


async def test_driver_errors_become_unavailable(repository, engine):
    """Test SQL errors surface as BackendUnavailableError."""
    async with engine.begin() as conn:
        await conn.exec_driver_sql("DROP TABLE listing_features")

    with pytest.raises(BackendUnavailableError):
        await repository.get("car-compact")
