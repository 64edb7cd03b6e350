"""
Index Sync Tasks
Background tasks keeping the listings index in sync with the relational store.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

from ..backends.index import create_es_client
from ..config import get_settings
from ..db.repository import ListingRepository
from ..db.session import create_engine_from_settings, create_session_factory
from ..indexing.indexer import ListingIndexer
from .celery_app import app

logger = logging.getLogger(__name__)


@asynccontextmanager
async def indexer_session() -> AsyncIterator[ListingIndexer]:
    """Indexer with its own engine and client, disposed on exit."""
    settings = get_settings()
    engine = create_engine_from_settings(settings)
    client = create_es_client(settings)
    try:
        repository = ListingRepository(
            create_session_factory(engine), settings.io_timeout_seconds
        )
        yield ListingIndexer(client, repository, settings=settings)
    finally:
        await client.close()
        await engine.dispose()


async def _index_listing(listing_id: str) -> bool:
    async with indexer_session() as indexer:
        return await indexer.index_listing(listing_id)


async def _remove_listing(listing_id: str) -> bool:
    async with indexer_session() as indexer:
        return await indexer.remove_listing(listing_id)


async def _bulk_index_listings(listing_ids: List[str]) -> Dict[str, int]:
    async with indexer_session() as indexer:
        return await indexer.bulk_index_listings(listing_ids)


async def _reindex_all() -> Dict[str, Any]:
    async with indexer_session() as indexer:
        return await indexer.reindex_all()


@app.task(bind=True, name="tasks.index_listing")
def index_listing(self, listing_id: str) -> Dict[str, Any]:
    """
    Index (or re-index) one listing after it changed.

    Args:
        listing_id: Listing ID

    Returns:
        Dictionary with task status
    """
    try:
        indexed = asyncio.run(_index_listing(listing_id))
        return {
            "status": "success" if indexed else "skipped",
            "listing_id": listing_id,
        }

    except Exception as e:
        logger.error(f"Error indexing listing {listing_id}: {e}", exc_info=True)
        return {
            "status": "error",
            "listing_id": listing_id,
            "error": str(e),
        }


@app.task(bind=True, name="tasks.remove_listing")
def remove_listing(self, listing_id: str) -> Dict[str, Any]:
    """
    Remove a deleted or deactivated listing from the index.

    Args:
        listing_id: Listing ID
    """
    try:
        removed = asyncio.run(_remove_listing(listing_id))
        return {
            "status": "success" if removed else "skipped",
            "listing_id": listing_id,
        }

    except Exception as e:
        logger.error(f"Error removing listing {listing_id}: {e}", exc_info=True)
        return {
            "status": "error",
            "listing_id": listing_id,
            "error": str(e),
        }


@app.task(bind=True, name="tasks.bulk_index_listings")
def bulk_index_listings(self, listing_ids: List[str]) -> Dict[str, Any]:
    """
    Bulk index listings by id.

    Args:
        listing_ids: Listing IDs

    Returns:
        Dictionary with indexing counts
    """
    try:
        logger.info(f"Starting bulk indexing for {len(listing_ids)} listings")
        result = asyncio.run(_bulk_index_listings(listing_ids))
        return {"status": "success", **result}

    except Exception as e:
        logger.error(f"Error during bulk indexing: {e}", exc_info=True)
        return {
            "status": "error",
            "requested": len(listing_ids),
            "error": str(e),
        }


@app.task(bind=True, name="tasks.reindex_all")
def reindex_all(self) -> Dict[str, Any]:
    """
    Rebuild the listings index from scratch.

    Returns:
        Dictionary with reindex counts
    """
    try:
        logger.info("Starting full reindex")
        result = asyncio.run(_reindex_all())
        logger.info(f"Reindex completed: {result}")
        return {"status": "success", **result}

    except Exception as e:
        logger.error(f"Error during reindex: {e}", exc_info=True)
        return {
            "status": "error",
            "error": str(e),
        }
