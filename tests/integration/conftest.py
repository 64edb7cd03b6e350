"""
Integration test fixtures
In-memory SQLite database seeded with a small Bay Area corpus.
"""

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from rentsearch.backends.relational import RelationalBackend
from rentsearch.db import Base, Category, Listing, ListingFeature, Owner
from rentsearch.db.repository import ListingRepository
from rentsearch.db.session import create_session_factory
from rentsearch.search.models import ListingStatus, VerificationStatus

SAN_FRANCISCO = (37.7749, -122.4194)

CATEGORIES = [
    ("cat-vehicles", "Vehicles", "vehicles"),
    ("cat-cameras", "Cameras", "cameras"),
    ("cat-tools", "Tools", "tools"),
]

# Eligible unless status/verification say otherwise
LISTINGS = [
    {
        "id": "car-compact",
        "title": "Compact car rental",
        "description": "Fuel efficient compact car for city trips",
        "category_id": "cat-vehicles",
        "city": "San Francisco",
        "latitude": 37.7749,
        "longitude": -122.4194,
        "base_price": 100.0,
        "average_rating": 4.5,
        "review_count": 20,
        "booking_mode": "instant_book",
        "condition": "good",
        "features": ["bluetooth", "gps"],
        "created_at": datetime(2024, 1, 10),
    },
    {
        "id": "car-premium",
        "title": "Premium car rental",
        "description": "Luxury sedan with driver option",
        "category_id": "cat-vehicles",
        "city": "Oakland",
        "latitude": 37.8044,
        "longitude": -122.2712,
        "base_price": 250.0,
        "average_rating": 4.8,
        "review_count": 5,
        "booking_mode": "request",
        "condition": "excellent",
        "features": ["gps", "leather_seats"],
        "created_at": datetime(2024, 2, 1),
    },
    {
        "id": "van-cargo",
        "title": "Cargo van",
        "description": "Moving van for furniture",
        "category_id": "cat-vehicles",
        "city": "San Jose",
        "latitude": 37.3382,
        "longitude": -121.8863,
        "base_price": 110.0,
        "average_rating": 3.9,
        "review_count": 12,
        "booking_mode": "instant_book",
        "condition": "fair",
        "features": ["bluetooth"],
        "created_at": datetime(2024, 1, 20),
    },
    {
        "id": "scooter",
        "title": "Electric scooter",
        "description": "Fast electric scooter with helmet",
        "category_id": "cat-vehicles",
        "city": "San Francisco",
        "latitude": 37.7700,
        "longitude": -122.4300,
        "base_price": 30.0,
        "average_rating": 4.9,
        "review_count": 40,
        "booking_mode": "instant_book",
        "condition": None,
        "features": ["helmet"],
        "created_at": datetime(2024, 3, 5),
    },
    {
        "id": "camera-kit",
        "title": "Mirrorless camera kit",
        "description": "Full frame body with two lenses",
        "category_id": "cat-cameras",
        "city": "San Francisco",
        "latitude": 37.7790,
        "longitude": -122.4140,
        "base_price": 60.0,
        "average_rating": None,
        "review_count": 0,
        "booking_mode": "request",
        "condition": None,
        "features": ["tripod"],
        "created_at": datetime(2024, 3, 1),
    },
    {
        "id": "drill",
        "title": "Cordless drill",
        "description": "18V drill with two batteries",
        "category_id": "cat-tools",
        "city": "Berkeley",
        "latitude": 37.8715,
        "longitude": -122.2730,
        "base_price": 15.0,
        "average_rating": 4.0,
        "review_count": 3,
        "booking_mode": "instant_book",
        "condition": "good",
        "features": [],
        "created_at": datetime(2024, 2, 15),
    },
    {
        "id": "car-draft",
        "title": "Luxury car rental",
        "description": "Not published yet",
        "category_id": "cat-vehicles",
        "city": "San Francisco",
        "latitude": 37.7750,
        "longitude": -122.4195,
        "base_price": 150.0,
        "average_rating": 5.0,
        "review_count": 1,
        "booking_mode": "instant_book",
        "condition": "excellent",
        "features": ["gps"],
        "created_at": datetime(2024, 3, 10),
        "status": ListingStatus.DRAFT,
    },
    {
        "id": "car-unverified",
        "title": "Classic car rental",
        "description": "Awaiting moderation",
        "category_id": "cat-vehicles",
        "city": "San Francisco",
        "latitude": 37.7751,
        "longitude": -122.4193,
        "base_price": 100.0,
        "average_rating": 4.7,
        "review_count": 8,
        "booking_mode": "instant_book",
        "condition": "good",
        "features": ["bluetooth"],
        "created_at": datetime(2024, 3, 12),
        "verification_status": VerificationStatus.PENDING,
    },
]

ELIGIBLE_IDS = {"car-compact", "car-premium", "van-cargo", "scooter", "camera-kit", "drill"}


async def add_listings(session_factory, listings):
    """Insert listing rows owned by the seeded owner, eligible unless overridden."""
    async with session_factory() as session:
        for data in listings:
            data = dict(data)
            features = data.pop("features", [])
            listing = Listing(
                owner_id="owner-1",
                state=data.pop("state", "CA"),
                country="USA",
                slug=data["id"],
                currency="USD",
                status=data.pop("status", ListingStatus.AVAILABLE),
                verification_status=data.pop("verification_status", VerificationStatus.VERIFIED),
                updated_at=data["created_at"],
                **data,
            )
            listing.features = [ListingFeature(name=name) for name in features]
            session.add(listing)

        await session.commit()


@pytest.fixture
async def engine():
    """In-memory database shared by every session of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = create_session_factory(engine)

    async with factory() as session:
        session.add(Owner(id="owner-1", first_name="Ada", last_name="Lovelace", average_rating=4.6))
        for category_id, name, slug in CATEGORIES:
            session.add(Category(id=category_id, name=name, slug=slug))
        await session.commit()

    await add_listings(factory, LISTINGS)

    return factory


@pytest.fixture
def repository(session_factory):
    return ListingRepository(session_factory, io_timeout=5.0)


@pytest.fixture
def relational_backend(repository, settings):
    return RelationalBackend(repository, settings=settings)
