"""
Database Session
Async engine and session factory for the relational backend and indexing tasks.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from ..config import SearchSettings, get_settings


def create_engine_from_settings(settings: Optional[SearchSettings] = None) -> AsyncEngine:
    """Create the async engine described by settings."""
    settings = settings or get_settings()

    kwargs = {"echo": settings.db_echo, "pool_pre_ping": True}
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow

    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create the session factory bound to an engine."""
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
