"""
Test index sync tasks run synchronously with the async work patched out.
"""

from rentsearch.search.errors import BackendUnavailableError
from rentsearch.tasks import indexing


def test_index_listing_task(monkeypatch):
    """Test a successful index returns a success status."""

    async def fake_index(listing_id):
        return True

    monkeypatch.setattr(indexing, "_index_listing", fake_index)

    assert indexing.index_listing("l1") == {"status": "success", "listing_id": "l1"}


def test_remove_listing_task_skipped(monkeypatch):
    """Test removing an unindexed listing reports skipped."""

    async def fake_remove(listing_id):
        return False

    monkeypatch.setattr(indexing, "_remove_listing", fake_remove)

    assert indexing.remove_listing("l1")["status"] == "skipped"


def test_bulk_index_task_reports_counts(monkeypatch):
    """Test bulk results are passed through."""

    async def fake_bulk(listing_ids):
        return {"requested": len(listing_ids), "indexed": 2, "failed": 0, "missing": 0}

    monkeypatch.setattr(indexing, "_bulk_index_listings", fake_bulk)

    result = indexing.bulk_index_listings(["a", "b"])

    assert result["status"] == "success"
    assert result["indexed"] == 2


def test_reindex_task_error(monkeypatch):
    """Test failures are reported in the task result."""

    async def failing():
        raise BackendUnavailableError("index down")

    monkeypatch.setattr(indexing, "_reindex_all", failing)

    result = indexing.reindex_all()

    assert result["status"] == "error"
    assert "index down" in result["error"]


def test_weekly_reindex_scheduled():
    """Test the beat schedule runs the full reindex task."""
    schedule = indexing.app.conf.beat_schedule

    assert schedule["reindex-listings-weekly"]["task"] == "tasks.reindex_all"
