"""
Database ORM Models
SQLAlchemy ORM models, async session helpers and the listing repository.
"""

from .models import Base, Category, Owner, Listing, ListingFeature
from .repository import ListingRepository
from .session import create_engine_from_settings, create_session_factory

__all__ = [
    "Base",
    "Category",
    "Owner",
    "Listing",
    "ListingFeature",
    "ListingRepository",
    "create_engine_from_settings",
    "create_session_factory",
]
