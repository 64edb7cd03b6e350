"""
Search Models
Typed query, listing projection and result models shared by every backend.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import InvalidQueryError

MAX_PAGE_SIZE = 100


class ListingStatus(str, Enum):
    """Lifecycle status of a listing."""

    AVAILABLE = "available"
    RENTED = "rented"
    DRAFT = "draft"
    PENDING = "pending"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class VerificationStatus(str, Enum):
    """Moderation status of a listing."""

    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class SortMode(str, Enum):
    """Result ordering modes."""

    RELEVANCE = "relevance"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    RATING = "rating"
    NEWEST = "newest"


class BackendMode(str, Enum):
    """Backing store used for search."""

    RELATIONAL = "relational"
    INDEX = "index"


_RADIUS_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(km|m|mi)?\s*$", re.IGNORECASE)
_UNIT_TO_KM = {"km": 1.0, "m": 0.001, "mi": 1.609344}


def parse_radius_km(value: Union[str, float, int, None]) -> Optional[float]:
    """
    Parse a radius into kilometres.

    Accepts plain numbers (km) or strings such as "10km", "500m", "5mi".
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)

    match = _RADIUS_PATTERN.match(str(value))
    if not match:
        raise ValueError(f"Invalid radius: {value!r}")

    amount, unit = match.groups()
    return float(amount) * _UNIT_TO_KM[(unit or "km").lower()]


# ========== Query ==========


class LocationFilter(BaseModel):
    """Location filter: free-text place names and/or a point with radius."""

    model_config = ConfigDict(frozen=True)

    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lon: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_km: Optional[float] = None

    @field_validator("radius_km", mode="before")
    @classmethod
    def parse_radius(cls, v: Any) -> Optional[float]:
        return parse_radius_km(v)

    @field_validator("city", "state", "country")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def check_point(self) -> "LocationFilter":
        if (self.lat is None) != (self.lon is None):
            raise ValueError("lat and lon must be provided together")
        if self.has_point:
            if self.radius_km is None or self.radius_km <= 0:
                raise ValueError("a positive radius is required with lat/lon")
        elif self.radius_km is not None:
            raise ValueError("radius requires lat and lon")
        return self

    @property
    def has_point(self) -> bool:
        return self.lat is not None and self.lon is not None

    @property
    def has_place_names(self) -> bool:
        return any([self.city, self.state, self.country])


class PriceRange(BaseModel):
    """Inclusive base price bounds."""

    model_config = ConfigDict(frozen=True)

    min: Optional[float] = Field(default=None, ge=0)
    max: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "PriceRange":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("price min must not exceed price max")
        return self


class AttributeFilters(BaseModel):
    """Exact-match attribute filters plus "contains any" feature filter."""

    model_config = ConfigDict(frozen=True)

    booking_mode: Optional[str] = None
    condition: Optional[str] = None
    features: List[str] = Field(default_factory=list)

    @field_validator("features")
    @classmethod
    def normalize_features(cls, v: List[str]) -> List[str]:
        # Order-independent semantics, so equivalent filters share a cache key
        return sorted({f.strip() for f in v if f and f.strip()})


class SearchQuery(BaseModel):
    """
    Search request.

    Validated at construction; page >= 1 and 0 < size <= MAX_PAGE_SIZE.
    """

    model_config = ConfigDict(frozen=True)

    query: Optional[str] = Field(default=None, max_length=500)
    category_id: Optional[str] = None
    location: Optional[LocationFilter] = None
    price_range: Optional[PriceRange] = None
    filters: Optional[AttributeFilters] = None
    sort: SortMode = SortMode.RELEVANCE
    page: int = Field(default=1, ge=1)
    size: int = Field(default=20, gt=0, le=MAX_PAGE_SIZE)

    @field_validator("query")
    @classmethod
    def strip_query(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size

    @property
    def has_geo(self) -> bool:
        return self.location is not None and self.location.has_point

    @classmethod
    def from_params(
        cls,
        query: Optional[str] = None,
        category_id: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
        country: Optional[str] = None,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
        radius: Optional[Union[str, float]] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        booking_mode: Optional[str] = None,
        condition: Optional[str] = None,
        features: Optional[Union[str, List[str]]] = None,
        sort: Optional[str] = None,
        page: Optional[int] = None,
        size: Optional[int] = None,
    ) -> "SearchQuery":
        """
        Build a query from flat parameters (e.g. HTTP query string).

        Raises:
            InvalidQueryError: If the parameters do not form a valid query
        """
        if isinstance(features, str):
            features = [f for f in features.split(",") if f.strip()]

        data: Dict[str, Any] = {"query": query, "category_id": category_id}

        if any(v is not None for v in (city, state, country, lat, lon, radius)):
            data["location"] = {
                "city": city,
                "state": state,
                "country": country,
                "lat": lat,
                "lon": lon,
                "radius_km": radius,
            }
        if min_price is not None or max_price is not None:
            data["price_range"] = {"min": min_price, "max": max_price}
        if booking_mode or condition or features:
            data["filters"] = {
                "booking_mode": booking_mode,
                "condition": condition,
                "features": features or [],
            }
        if sort:
            data["sort"] = sort
        if page is not None:
            data["page"] = page
        if size is not None:
            data["size"] = size

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidQueryError(
                "Invalid search query",
                details={
                    "errors": [
                        {"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()
                    ]
                },
            ) from e


# ========== Listings ==========


class ListingDocument(BaseModel):
    """Read-only listing projection consumed by search."""

    id: str
    title: str
    description: Optional[str] = None
    slug: Optional[str] = None
    category_id: str
    category_name: Optional[str] = None
    category_slug: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    base_price: float
    currency: str = "USD"
    status: ListingStatus = ListingStatus.AVAILABLE
    verification_status: VerificationStatus = VerificationStatus.PENDING
    average_rating: Optional[float] = None
    review_count: int = 0
    booking_mode: Optional[str] = None
    condition: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    owner_id: Optional[str] = None
    owner_name: Optional[str] = None
    owner_rating: Optional[float] = None
    created_at: Optional[datetime] = None

    @property
    def is_search_eligible(self) -> bool:
        return (
            self.status == ListingStatus.AVAILABLE
            and self.verification_status == VerificationStatus.VERIFIED
        )

    def to_index_document(self) -> Dict[str, Any]:
        """Convert to the document shape stored in the search index."""
        doc = self.model_dump(mode="json", exclude={"latitude", "longitude"})
        if self.latitude is not None and self.longitude is not None:
            doc["location"] = {"lat": self.latitude, "lon": self.longitude}
        else:
            doc["location"] = None
        return doc

    @classmethod
    def from_index_source(cls, source: Dict[str, Any]) -> "ListingDocument":
        """Build a projection from an index document _source."""
        data = dict(source)
        location = data.pop("location", None) or {}
        data.setdefault("latitude", location.get("lat"))
        data.setdefault("longitude", location.get("lon"))
        return cls.model_validate(data)


class ListingHit(ListingDocument):
    """Listing projection annotated with relevance and optional distance (km)."""

    score: float = 0.0
    distance: Optional[float] = None


# ========== Aggregations ==========


class Bucket(BaseModel):
    """Facet bucket."""

    key: str
    count: int


class HistogramBucket(BaseModel):
    """Price histogram bucket (lower bound of the interval)."""

    key: float
    count: int


class PriceStats(BaseModel):
    """Base price statistics over the filtered set."""

    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None


class AggregationBundle(BaseModel):
    """Facets computed over the unpaginated filtered set."""

    categories: List[Bucket] = Field(default_factory=list)
    cities: List[Bucket] = Field(default_factory=list)
    conditions: List[Bucket] = Field(default_factory=list)
    price_stats: Optional[PriceStats] = None
    price_histogram: List[HistogramBucket] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "AggregationBundle":
        return cls()


# ========== Responses ==========


class SearchResponse(BaseModel):
    """Ranked page of results with facets."""

    results: List[ListingHit] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    size: int = 20
    aggregations: AggregationBundle = Field(default_factory=AggregationBundle)

    _partial: bool = PrivateAttr(default=False)

    @property
    def is_partial(self) -> bool:
        """True when enrichment (aggregations) degraded during compute."""
        return self._partial

    def mark_partial(self) -> "SearchResponse":
        self._partial = True
        return self


class ListingSuggestion(BaseModel):
    """Compact listing entry for search-as-you-type suggestions."""

    id: str
    title: str
    slug: Optional[str] = None
    base_price: Optional[float] = None
    currency: Optional[str] = None


class Suggestions(BaseModel):
    """Listings, categories and locations matching a partial query."""

    listings: List[ListingSuggestion] = Field(default_factory=list)
    categories: List[Bucket] = Field(default_factory=list)
    locations: List[Bucket] = Field(default_factory=list)

    _partial: bool = PrivateAttr(default=False)

    @property
    def is_partial(self) -> bool:
        return self._partial

    def mark_partial(self) -> "Suggestions":
        self._partial = True
        return self
