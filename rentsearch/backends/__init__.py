"""
Search Backends
Relational and index variants of the SearchBackend capability.
"""

import logging
from typing import Optional

from elasticsearch import AsyncElasticsearch
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..config import SearchSettings, get_settings
from ..db.repository import ListingRepository
from ..search.models import BackendMode
from .base import SearchBackend
from .index import IndexBackend, create_es_client
from .relational import RelationalBackend

logger = logging.getLogger(__name__)


def create_backend(
    settings: Optional[SearchSettings] = None,
    session_factory: Optional[async_sessionmaker] = None,
    es_client: Optional[AsyncElasticsearch] = None,
    logger: Optional[logging.Logger] = None,
) -> SearchBackend:
    """
    Build the backend selected by settings.search_backend.

    Args:
        settings: Search settings
        session_factory: Async session factory (relational mode)
        es_client: Elasticsearch client (index mode; built from settings if omitted)
        logger: Logger passed to the backend

    Returns:
        Configured SearchBackend
    """
    settings = settings or get_settings()
    mode = BackendMode(settings.search_backend)

    if mode == BackendMode.INDEX:
        return IndexBackend(es_client or create_es_client(settings), settings=settings, logger=logger)

    if session_factory is None:
        raise ValueError("Relational backend requires a session factory")

    repository = ListingRepository(session_factory, settings.io_timeout_seconds, logger=logger)
    return RelationalBackend(repository, settings=settings, logger=logger)


__all__ = [
    "SearchBackend",
    "IndexBackend",
    "RelationalBackend",
    "create_backend",
    "create_es_client",
]
