"""
Relevance Ranking
Additive point scoring for the relational backend, which has no native text scoring.

Ranking Formula:
score = 10 × title_contains + 5 × title_prefix + 3 × description_contains
      + 2 × city_contains + 4 × any_feature_contains + 0.5 × average_rating

The same formula is available as a Python function (for reported scores) and
as a SQL expression, so the database orders and paginates by relevance.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.sql.elements import ColumnElement

from ..db.models import Listing, ListingFeature
from .models import ListingDocument
from .query_builder import LIKE_ESCAPE, escape_like

logger = logging.getLogger(__name__)


@dataclass
class RankingConfig:
    """Point weights for relevance signals."""

    title_contains: float = 10.0
    title_prefix_bonus: float = 5.0
    description_contains: float = 3.0
    city_contains: float = 2.0
    feature_contains: float = 4.0
    rating_multiplier: float = 0.5

    def __post_init__(self):
        """Validate configuration."""
        for name, value in vars(self).items():
            if value < 0:
                raise ValueError(f"Ranking weight {name} must be non-negative, got {value}")


def _points(condition: ColumnElement, weight: float) -> ColumnElement:
    return case((condition, weight), else_=0.0)


class RelevanceScorer:
    """
    Scores candidates against a free-text query.

    Pure and deterministic: the same listing and query always give the same
    score. All text matches are case-insensitive substring checks.
    """

    def __init__(self, config: Optional[RankingConfig] = None):
        self.config = config or RankingConfig()

    def calculate_relevance_score(self, listing: ListingDocument, query_text: Optional[str]) -> float:
        """
        Calculate relevance of one listing.

        Args:
            listing: Candidate listing
            query_text: Free-text query (None/blank scores 0)

        Returns:
            Additive relevance score
        """
        if not query_text or not query_text.strip():
            return 0.0

        needle = query_text.strip().lower()
        cfg = self.config
        score = 0.0

        title = (listing.title or "").lower()
        if needle in title:
            score += cfg.title_contains
            if title.startswith(needle):
                score += cfg.title_prefix_bonus

        if needle in (listing.description or "").lower():
            score += cfg.description_contains

        if needle in (listing.city or "").lower():
            score += cfg.city_contains

        if any(needle in feature.lower() for feature in listing.features):
            score += cfg.feature_contains

        score += (listing.average_rating or 0.0) * cfg.rating_multiplier

        return score

    def score_expression(self, query_text: str) -> ColumnElement:
        """
        Relevance score as a SQL expression over the listings table.

        Args:
            query_text: Free-text query (must not be blank)

        Returns:
            Numeric expression suitable for ORDER BY
        """
        escaped = escape_like(query_text.strip())
        contains = f"%{escaped}%"
        cfg = self.config

        # A prefix match is always a contains match, so the bonus stacks on top
        return (
            _points(Listing.title.ilike(contains, escape=LIKE_ESCAPE), cfg.title_contains)
            + _points(Listing.title.ilike(f"{escaped}%", escape=LIKE_ESCAPE), cfg.title_prefix_bonus)
            + _points(Listing.description.ilike(contains, escape=LIKE_ESCAPE), cfg.description_contains)
            + _points(Listing.city.ilike(contains, escape=LIKE_ESCAPE), cfg.city_contains)
            + _points(
                Listing.features.any(ListingFeature.name.ilike(contains, escape=LIKE_ESCAPE)),
                cfg.feature_contains,
            )
            + func.coalesce(Listing.average_rating, 0.0) * cfg.rating_multiplier
        )
