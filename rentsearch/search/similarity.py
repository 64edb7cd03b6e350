"""
Listing Similarity
Additive similarity scoring for the relational backend.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import and_, case, false, func, select
from sqlalchemy.sql.elements import ColumnElement

from ..db.models import Listing, ListingFeature
from .models import ListingDocument, ListingHit

logger = logging.getLogger(__name__)


@dataclass
class SimilarityConfig:
    """Similarity weights and candidate rules."""

    same_category_points: float = 5.0
    same_location_points: float = 3.0
    price_proximity_points: float = 2.0
    shared_feature_points: float = 0.5

    price_tolerance: float = 0.2  # +/- 20% of the reference price
    max_shared_features: int = 10  # Caps feature-overlap inflation

    # "rating" (average rating, then review count) or "score"
    sort: str = "rating"

    def __post_init__(self):
        """Validate configuration."""
        if not 0 <= self.price_tolerance < 1:
            raise ValueError(f"price_tolerance must be in [0, 1), got {self.price_tolerance}")
        if self.max_shared_features < 0:
            raise ValueError("max_shared_features must be non-negative")
        if self.sort not in ("rating", "score"):
            raise ValueError(f"Unknown similarity sort: {self.sort}")


class SimilarityScorer:
    """
    Scores candidates against a reference listing.

    +5 same category, +3 same city and state, +2 price within tolerance,
    +0.5 per shared feature up to max_shared_features.
    """

    def __init__(self, config: Optional[SimilarityConfig] = None):
        self.config = config or SimilarityConfig()

    def price_within_tolerance(self, reference: ListingDocument, candidate: ListingDocument) -> bool:
        tolerance = reference.base_price * self.config.price_tolerance
        return abs(candidate.base_price - reference.base_price) <= tolerance

    @staticmethod
    def same_location(reference: ListingDocument, candidate: ListingDocument) -> bool:
        return (
            bool(reference.city and reference.state)
            and candidate.city == reference.city
            and candidate.state == reference.state
        )

    def calculate_similarity_score(
        self, reference: ListingDocument, candidate: ListingDocument
    ) -> float:
        """
        Calculate similarity of a candidate to the reference.

        Args:
            reference: Reference listing
            candidate: Candidate listing

        Returns:
            Additive similarity score
        """
        cfg = self.config
        score = 0.0

        if candidate.category_id == reference.category_id:
            score += cfg.same_category_points

        if self.same_location(reference, candidate):
            score += cfg.same_location_points

        if self.price_within_tolerance(reference, candidate):
            score += cfg.price_proximity_points

        shared = len(set(reference.features) & set(candidate.features))
        score += min(shared, cfg.max_shared_features) * cfg.shared_feature_points

        return score

    def score_expression(self, reference: ListingDocument) -> ColumnElement:
        """
        Similarity to the reference as a SQL expression over the listings table.

        Mirrors calculate_similarity_score so the database can order by it.
        """
        cfg = self.config

        same_place = (
            and_(Listing.city == reference.city, Listing.state == reference.state)
            if reference.city and reference.state
            else false()
        )
        close_price = (
            func.abs(Listing.base_price - reference.base_price)
            <= reference.base_price * cfg.price_tolerance
        )

        if reference.features:
            shared = (
                select(func.count())
                .select_from(ListingFeature)
                .where(
                    ListingFeature.listing_id == Listing.id,
                    ListingFeature.name.in_(list(reference.features)),
                )
                .scalar_subquery()
            )
            capped = case(
                (shared > cfg.max_shared_features, cfg.max_shared_features), else_=shared
            )
            feature_points = capped * cfg.shared_feature_points
        else:
            feature_points = 0.0

        return (
            case((Listing.category_id == reference.category_id, cfg.same_category_points), else_=0.0)
            + case((same_place, cfg.same_location_points), else_=0.0)
            + case((close_price, cfg.price_proximity_points), else_=0.0)
            + feature_points
        )

    def rank(
        self,
        reference: ListingDocument,
        candidates: Sequence[ListingDocument],
        limit: int,
    ) -> List[ListingHit]:
        """
        Score and order candidates, excluding the reference.

        Candidates must arrive in base row order; sorts are stable.

        Returns:
            Up to limit hits with score set
        """
        hits = [
            ListingHit(
                **candidate.model_dump(),
                score=self.calculate_similarity_score(reference, candidate),
            )
            for candidate in candidates
            if candidate.id != reference.id
        ]

        if self.config.sort == "score":
            hits.sort(key=lambda h: -h.score)
        else:
            hits.sort(
                key=lambda h: (
                    h.average_rating is None,
                    -(h.average_rating or 0.0),
                    -h.review_count,
                )
            )

        return hits[:limit]
