"""
Indexing Module
Index write path: mapping, single and bulk upserts, full reindex.
"""

from .indexer import ListingIndexer, INDEX_MAPPINGS, INDEX_SETTINGS

__all__ = [
    "ListingIndexer",
    "INDEX_MAPPINGS",
    "INDEX_SETTINGS",
]
