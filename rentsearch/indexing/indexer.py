"""
Listing Indexer
Keeps the search index in sync with the relational listing store.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from elasticsearch import AsyncElasticsearch, NotFoundError

from ..backends.index import call_index, response_body
from ..config import SearchSettings, get_settings
from ..db.repository import ListingRepository
from ..search.models import ListingDocument

logger = logging.getLogger(__name__)

BULK_BATCH_SIZE = 500

INDEX_SETTINGS: Dict[str, Any] = {
    "number_of_shards": 2,
    "number_of_replicas": 1,
    "analysis": {
        "analyzer": {
            "autocomplete": {
                "type": "custom",
                "tokenizer": "autocomplete",
                "filter": ["lowercase"],
            },
            "autocomplete_search": {
                "type": "custom",
                "tokenizer": "lowercase",
            },
        },
        "tokenizer": {
            "autocomplete": {
                "type": "edge_ngram",
                "min_gram": 2,
                "max_gram": 10,
                "token_chars": ["letter", "digit"],
            }
        },
    },
}

INDEX_MAPPINGS: Dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "title": {
            "type": "text",
            "analyzer": "autocomplete",
            "search_analyzer": "autocomplete_search",
            "fields": {"keyword": {"type": "keyword"}},
        },
        "description": {"type": "text"},
        "slug": {"type": "keyword"},
        "category_id": {"type": "keyword"},
        "category_name": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
        "category_slug": {"type": "keyword"},
        "city": {"type": "keyword"},
        "state": {"type": "keyword"},
        "country": {"type": "keyword"},
        "location": {"type": "geo_point"},
        "base_price": {"type": "float"},
        "currency": {"type": "keyword"},
        "status": {"type": "keyword"},
        "verification_status": {"type": "keyword"},
        "average_rating": {"type": "float"},
        "review_count": {"type": "integer"},
        "booking_mode": {"type": "keyword"},
        "condition": {"type": "keyword"},
        "features": {"type": "keyword"},
        "owner_id": {"type": "keyword"},
        "owner_name": {"type": "text"},
        "owner_rating": {"type": "float"},
        "created_at": {"type": "date"},
    }
}


class ListingIndexer:
    """
    Write path for the listings index.

    Listing projections are read from the repository and upserted by id;
    eligibility is enforced at query time, so every listing may be indexed.
    """

    def __init__(
        self,
        client: AsyncElasticsearch,
        repository: ListingRepository,
        settings: Optional[SearchSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize indexer.

        Args:
            client: Async Elasticsearch client
            repository: Listing repository (source of truth)
            settings: Search settings
            logger: Logger (defaults to module logger)
        """
        self.settings = settings or get_settings()
        self.client = client
        self.repository = repository
        self.index_name = self.settings.elasticsearch_index
        self.logger = logger or logging.getLogger(__name__)

    async def _call(self, operation: str, awaitable):
        return await call_index(
            operation, awaitable, self.settings.io_timeout_seconds, self.logger
        )

    async def create_index(self) -> None:
        await self._call(
            "create_index",
            self.client.indices.create(
                index=self.index_name, settings=INDEX_SETTINGS, mappings=INDEX_MAPPINGS
            ),
        )
        self.logger.info(f"Created index: {self.index_name}")

    async def ensure_index(self) -> bool:
        """
        Create the index if it does not exist.

        Returns:
            True if the index was created
        """
        exists = await self._call("index_exists", self.client.indices.exists(index=self.index_name))
        if exists:
            return False
        await self.create_index()
        return True

    async def index_document(self, listing: ListingDocument) -> None:
        await self._call(
            "index",
            self.client.index(
                index=self.index_name,
                id=listing.id,
                document=listing.to_index_document(),
                refresh="wait_for",
            ),
        )
        self.logger.info(f"Indexed listing: {listing.id}")

    async def index_listing(self, listing_id: str) -> bool:
        """
        Fetch a listing from the store and upsert it.

        Listings that are no longer search-eligible are removed from the index
        instead, so the index only ever holds eligible listings.

        Returns:
            False if the listing does not exist or is not eligible
        """
        listing = await self.repository.get(listing_id)
        if listing is None:
            self.logger.warning(f"Listing {listing_id} not found for indexing")
            return False

        if not listing.is_search_eligible:
            self.logger.info(f"Listing {listing_id} is not search-eligible, removing from index")
            await self.remove_listing(listing_id)
            return False

        await self.index_document(listing)
        return True

    async def remove_listing(self, listing_id: str) -> bool:
        """
        Delete a listing from the index.

        Returns:
            False if the document was not indexed
        """
        try:
            await self._call("delete", self.client.delete(index=self.index_name, id=listing_id))
        except NotFoundError:
            self.logger.debug(f"Listing {listing_id} was not indexed")
            return False

        self.logger.info(f"Removed listing from index: {listing_id}")
        return True

    async def bulk_index(self, listings: Sequence[ListingDocument]) -> Dict[str, int]:
        """
        Bulk upsert listing projections in one request.

        Returns:
            {"indexed": n, "failed": m}
        """
        if not listings:
            return {"indexed": 0, "failed": 0}

        operations: List[Dict[str, Any]] = []
        for listing in listings:
            operations.append({"index": {"_index": self.index_name, "_id": listing.id}})
            operations.append(listing.to_index_document())

        response = response_body(
            await self._call("bulk", self.client.bulk(operations=operations, refresh="wait_for"))
        )

        failed = 0
        if response.get("errors"):
            errors = [
                item["index"]["error"]
                for item in response.get("items", [])
                if item.get("index", {}).get("error")
            ]
            failed = len(errors)
            self.logger.error(f"Bulk indexing errors ({failed}): {errors[:5]}")

        return {"indexed": len(listings) - failed, "failed": failed}

    async def bulk_index_listings(self, listing_ids: Sequence[str]) -> Dict[str, int]:
        """
        Fetch and bulk index listings by id, in batches.

        Args:
            listing_ids: Listing ids

        Returns:
            {"requested", "indexed", "failed", "missing", "ineligible"}; ineligible
            listings are removed from the index rather than indexed
        """
        totals = {
            "requested": len(listing_ids),
            "indexed": 0,
            "failed": 0,
            "missing": 0,
            "ineligible": 0,
        }

        for start in range(0, len(listing_ids), BULK_BATCH_SIZE):
            batch_ids = list(listing_ids[start:start + BULK_BATCH_SIZE])
            listings = await self.repository.get_many(batch_ids)
            totals["missing"] += len(batch_ids) - len(listings)

            eligible = [listing for listing in listings if listing.is_search_eligible]
            for listing in listings:
                if not listing.is_search_eligible:
                    await self.remove_listing(listing.id)
                    totals["ineligible"] += 1

            result = await self.bulk_index(eligible)
            totals["indexed"] += result["indexed"]
            totals["failed"] += result["failed"]

        self.logger.info(
            f"Bulk indexed {totals['indexed']}/{totals['requested']} listings "
            f"({totals['failed']} failed, {totals['missing']} missing, "
            f"{totals['ineligible']} ineligible)"
        )
        return totals

    async def reindex_all(self) -> Dict[str, Any]:
        """
        Drop and recreate the index, then index every search-eligible listing.

        Returns:
            Counts and elapsed time
        """
        start_time = time.time()
        self.logger.info("Starting full reindex...")

        exists = await self._call("index_exists", self.client.indices.exists(index=self.index_name))
        if exists:
            await self._call("delete_index", self.client.indices.delete(index=self.index_name))
        await self.create_index()

        totals = {"indexed": 0, "failed": 0, "batches": 0}
        after_id: Optional[str] = None
        while True:
            batch_ids = await self.repository.eligible_ids(after_id, BULK_BATCH_SIZE)
            if not batch_ids:
                break

            listings = await self.repository.get_many(batch_ids)
            result = await self.bulk_index(listings)
            totals["indexed"] += result["indexed"]
            totals["failed"] += result["failed"]
            totals["batches"] += 1
            self.logger.info(f"Indexed batch {totals['batches']} ({len(listings)} listings)")

            if len(batch_ids) < BULK_BATCH_SIZE:
                break
            after_id = batch_ids[-1]

        totals["elapsed_seconds"] = time.time() - start_time
        self.logger.info(f"Reindex completed. Total: {totals['indexed']} listings")
        return totals

    async def get_index_stats(self) -> Dict[str, Any]:
        """Document count and store size of the index."""
        data = response_body(
            await self._call("stats", self.client.indices.stats(index=self.index_name))
        )
        primaries = data.get("_all", {}).get("primaries", {})
        return {
            "index": self.index_name,
            "document_count": primaries.get("docs", {}).get("count", 0),
            "size_in_bytes": primaries.get("store", {}).get("size_in_bytes", 0),
        }
