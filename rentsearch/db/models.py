"""
SQLAlchemy ORM Models
Relational tables read by the listing search backend.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Column, String, Integer, Float, TIMESTAMP, Enum as SAEnum,
    ForeignKey, Numeric, Text, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from ..search.models import ListingStatus, VerificationStatus

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Category(Base):
    """
    Listing category.
    """
    __tablename__ = 'categories'

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False)

    listings = relationship("Listing", back_populates="category")

    def __repr__(self):
        return f"<Category(id={self.id}, slug={self.slug})>"


class Owner(Base):
    """
    Listing owner (read-only subset of the users table).
    """
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=_uuid)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    average_rating = Column(Float, nullable=True,
                            comment='Average rating received as an owner (0-5)')

    listings = relationship("Listing", back_populates="owner")

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self):
        return f"<Owner(id={self.id})>"


class Listing(Base):
    """
    Rental listing.

    Only rows with status=available and verification_status=verified are
    search-eligible.
    """
    __tablename__ = 'listings'

    id = Column(String(36), primary_key=True, default=_uuid)

    # Core info
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    slug = Column(String(255), nullable=True, index=True)

    category_id = Column(String(36), ForeignKey('categories.id'), nullable=False, index=True)
    owner_id = Column(String(36), ForeignKey('users.id', ondelete='CASCADE'), nullable=False)

    # Location
    city = Column(String(120), nullable=True, index=True)
    state = Column(String(120), nullable=True)
    country = Column(String(120), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Pricing
    base_price = Column(Numeric(10, 2, asdecimal=False), nullable=False, index=True)
    currency = Column(String(10), nullable=False, server_default='USD')

    # Status
    status = Column(
        SAEnum(ListingStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False, default=ListingStatus.DRAFT,
    )
    verification_status = Column(
        SAEnum(VerificationStatus, native_enum=False, length=20, values_callable=_enum_values),
        nullable=False, default=VerificationStatus.PENDING,
    )

    # Reviews
    average_rating = Column(Float, nullable=True, comment='Average review rating (0-5)')
    review_count = Column(Integer, nullable=False, default=0, server_default='0')

    # Attributes
    booking_mode = Column(String(50), nullable=True,
                          comment='e.g. instant_book, request')
    condition = Column(String(50), nullable=True)

    # Timestamps
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), index=True)
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    category = relationship("Category", back_populates="listings")
    owner = relationship("Owner", back_populates="listings")
    features = relationship("ListingFeature", back_populates="listing",
                            cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_listings_eligibility', 'status', 'verification_status'),
        Index('idx_listings_lat_lon', 'latitude', 'longitude'),
    )

    @property
    def feature_names(self):
        return sorted({f.name for f in self.features})

    def __repr__(self):
        return f"<Listing(id={self.id}, title={self.title[:30]})>"


class ListingFeature(Base):
    """
    One feature tag of a listing (e.g. "wifi", "parking").
    """
    __tablename__ = 'listing_features'

    listing_id = Column(String(36), ForeignKey('listings.id', ondelete='CASCADE'),
                        primary_key=True)
    name = Column(String(100), primary_key=True)

    listing = relationship("Listing", back_populates="features")

    __table_args__ = (
        Index('idx_listing_features_name', 'name'),
    )

    def __repr__(self):
        return f"<ListingFeature(listing_id={self.listing_id}, name={self.name})>"
