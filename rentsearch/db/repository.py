"""
Listing Repository
Async read access to listings for the relational backend and the indexer.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from sqlalchemy import and_, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.elements import ColumnElement

from ..search.errors import BackendUnavailableError, bounded
from ..search.models import ListingDocument, ListingStatus, VerificationStatus
from .models import Category, Listing

logger = logging.getLogger(__name__)

T = TypeVar("T")

Predicate = Sequence[ColumnElement]

# Fields that can be grouped for facets
GROUP_FIELDS = {
    "category_id": Listing.category_id,
    "category_name": Category.name,
    "city": Listing.city,
    "state": Listing.state,
    "condition": Listing.condition,
    "booking_mode": Listing.booking_mode,
}

_AGGREGATES = {
    "min": func.min,
    "max": func.max,
    "avg": func.avg,
    "sum": func.sum,
    "count": func.count,
}


def _where(predicate: Predicate):
    return and_(*predicate) if predicate else None


def _to_document(row: Listing) -> ListingDocument:
    """Convert ORM row to a projection; relations that were not loaded are left empty."""
    unloaded = inspect(row).unloaded
    category = row.category if "category" not in unloaded else None
    owner = row.owner if "owner" not in unloaded else None
    return ListingDocument(
        id=row.id,
        title=row.title,
        description=row.description,
        slug=row.slug,
        category_id=row.category_id,
        category_name=category.name if category is not None else None,
        category_slug=category.slug if category is not None else None,
        city=row.city,
        state=row.state,
        country=row.country,
        latitude=row.latitude,
        longitude=row.longitude,
        base_price=float(row.base_price),
        currency=row.currency or "USD",
        status=row.status,
        verification_status=row.verification_status,
        average_rating=row.average_rating,
        review_count=row.review_count or 0,
        booking_mode=row.booking_mode,
        condition=row.condition,
        features=row.feature_names,
        owner_id=row.owner_id,
        owner_name=owner.display_name if owner is not None else None,
        owner_rating=owner.average_rating if owner is not None else None,
        created_at=row.created_at,
    )


class ListingRepository:
    """
    Listing queries over an async SQLAlchemy session factory.

    A predicate is a list of boolean clauses combined with AND. Every call is
    bounded by io_timeout; driver errors surface as BackendUnavailableError.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        io_timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.session_factory = session_factory
        self.io_timeout = io_timeout
        self.logger = logger or logging.getLogger(__name__)

    async def _run(self, operation: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def call() -> T:
            async with self.session_factory() as session:
                return await fn(session)

        try:
            return await bounded(call(), self.io_timeout, f"repository.{operation}")
        except SQLAlchemyError as e:
            self.logger.error(f"Repository {operation} failed: {e}")
            raise BackendUnavailableError(
                f"Relational store error during {operation}",
                details={"operation": operation},
            ) from e

    @staticmethod
    def _with_relations(stmt):
        return stmt.options(
            selectinload(Listing.category),
            selectinload(Listing.owner),
            selectinload(Listing.features),
        )

    async def count(self, predicate: Predicate) -> int:
        """Count listings matching predicate."""
        stmt = select(func.count()).select_from(Listing)
        where = _where(predicate)
        if where is not None:
            stmt = stmt.where(where)

        async def fn(session: AsyncSession) -> int:
            return int((await session.execute(stmt)).scalar_one())

        return await self._run("count", fn)

    async def find_many(
        self,
        predicate: Predicate,
        order_by: Optional[Sequence[ColumnElement]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        include_owner_and_category: bool = True,
    ) -> List[ListingDocument]:
        """
        Fetch listings matching predicate.

        Args:
            predicate: AND-combined clauses
            order_by: SQL ordering
            limit: Maximum rows (None = no limit)
            offset: Rows to skip
            include_owner_and_category: Eager-load related rows

        Returns:
            Listing projections in SQL order
        """
        stmt = select(Listing)
        where = _where(predicate)
        if where is not None:
            stmt = stmt.where(where)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        if include_owner_and_category:
            stmt = self._with_relations(stmt)
        else:
            stmt = stmt.options(selectinload(Listing.features))

        async def fn(session: AsyncSession) -> List[ListingDocument]:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_document(row) for row in rows]

        return await self._run("find_many", fn)

    async def find_coordinates(self, predicate: Predicate) -> List[Tuple[str, float, float]]:
        """Fetch (id, latitude, longitude) for matching listings that have coordinates."""
        stmt = select(Listing.id, Listing.latitude, Listing.longitude).where(
            Listing.latitude.is_not(None), Listing.longitude.is_not(None)
        )
        where = _where(predicate)
        if where is not None:
            stmt = stmt.where(where)

        async def fn(session: AsyncSession) -> List[Tuple[str, float, float]]:
            result = await session.execute(stmt)
            return [(row[0], float(row[1]), float(row[2])) for row in result.all()]

        return await self._run("find_coordinates", fn)

    async def group_by(
        self,
        field: str,
        predicate: Predicate,
        order: str = "count",
        limit: Optional[int] = None,
        exclude_null: bool = True,
    ) -> List[Tuple[Any, int]]:
        """
        Count matching listings per value of field.

        Args:
            field: One of GROUP_FIELDS
            predicate: AND-combined clauses
            order: "count" (descending count, then key) or "key" (ascending key)
            limit: Maximum buckets
            exclude_null: Drop the NULL bucket

        Returns:
            List of (key, count)
        """
        if field not in GROUP_FIELDS:
            raise ValueError(f"Unsupported group field: {field}")

        column = GROUP_FIELDS[field]
        count_col = func.count(Listing.id).label("doc_count")

        stmt = select(column, count_col).select_from(Listing)
        if field == "category_name":
            stmt = stmt.join(Category, Category.id == Listing.category_id)

        where = _where(predicate)
        if where is not None:
            stmt = stmt.where(where)
        if exclude_null:
            stmt = stmt.where(column.is_not(None))

        stmt = stmt.group_by(column)
        if order == "key":
            stmt = stmt.order_by(column.asc())
        else:
            stmt = stmt.order_by(count_col.desc(), column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        async def fn(session: AsyncSession) -> List[Tuple[Any, int]]:
            result = await session.execute(stmt)
            return [(row[0], int(row[1])) for row in result.all()]

        return await self._run(f"group_by.{field}", fn)

    async def aggregate(
        self, predicate: Predicate, ops: Sequence[str] = ("min", "max", "avg"), field: str = "base_price"
    ) -> Dict[str, Optional[float]]:
        """
        Compute aggregate functions over a numeric column.

        Returns:
            Dict op -> value (None when nothing matches)
        """
        column = getattr(Listing, field)
        columns = [_AGGREGATES[op](column).label(op) for op in ops]

        stmt = select(*columns).select_from(Listing)
        where = _where(predicate)
        if where is not None:
            stmt = stmt.where(where)

        async def fn(session: AsyncSession) -> Dict[str, Optional[float]]:
            row = (await session.execute(stmt)).one()
            return {op: (float(value) if value is not None else None) for op, value in zip(ops, row)}

        return await self._run("aggregate", fn)

    async def get(self, listing_id: str) -> Optional[ListingDocument]:
        """Fetch one listing by id regardless of status."""
        stmt = self._with_relations(select(Listing).where(Listing.id == listing_id))

        async def fn(session: AsyncSession) -> Optional[ListingDocument]:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_document(row) if row is not None else None

        return await self._run("get", fn)

    async def get_many(self, listing_ids: Sequence[str]) -> List[ListingDocument]:
        """Fetch listings by id; missing ids are skipped."""
        if not listing_ids:
            return []
        stmt = self._with_relations(select(Listing).where(Listing.id.in_(list(listing_ids))))

        async def fn(session: AsyncSession) -> List[ListingDocument]:
            rows = (await session.execute(stmt)).scalars().all()
            by_id = {row.id: _to_document(row) for row in rows}
            return [by_id[i] for i in listing_ids if i in by_id]

        return await self._run("get_many", fn)

    async def distinct_titles(self, predicate: Predicate, limit: int) -> List[str]:
        """Distinct titles of matching listings, alphabetically."""
        stmt = select(Listing.title).distinct()
        where = _where(predicate)
        if where is not None:
            stmt = stmt.where(where)
        stmt = stmt.order_by(Listing.title.asc()).limit(limit)

        async def fn(session: AsyncSession) -> List[str]:
            return list((await session.execute(stmt)).scalars().all())

        return await self._run("distinct_titles", fn)

    async def eligible_ids(self, after_id: Optional[str] = None, batch_size: int = 500) -> List[str]:
        """
        One batch of search-eligible listing ids, in id order (keyset pagination).

        Args:
            after_id: Last id of the previous batch
            batch_size: Batch size
        """
        stmt = select(Listing.id).where(
            Listing.status == ListingStatus.AVAILABLE,
            Listing.verification_status == VerificationStatus.VERIFIED,
        )
        if after_id is not None:
            stmt = stmt.where(Listing.id > after_id)
        stmt = stmt.order_by(Listing.id.asc()).limit(batch_size)

        async def fn(session: AsyncSession) -> List[str]:
            return list((await session.execute(stmt)).scalars().all())

        return await self._run("eligible_ids", fn)

    async def ping(self) -> bool:
        """Check the relational store is reachable."""
        try:
            await self._run("ping", lambda session: session.execute(select(1)))
            return True
        except BackendUnavailableError:
            return False


