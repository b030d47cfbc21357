# tests/test_stores_sqlite.py
import contextlib
from datetime import datetime, timezone

import pytest

from modules.job_harvest.lib.models import ListingItem, ListingSummary, Statistics
from modules.job_harvest.lib.stores import SqliteDatabase, open_stores


def _item(url="https://x/companies/acme/jobs/a", **kw):
    base = dict(url=url, position_name="Engineer", organization_title="Acme", logo_url="logo")
    base.update(kw)
    return ListingItem(**base)


def _summary(job_function="Design", detail_url="https://x/companies/acme/jobs/a", count_jobs=10):
    return ListingSummary(job_function=job_function, url="api", count_jobs=count_jobs, tags="Design", detail_url=detail_url)


def test_item_save_is_upsert_by_url(tmp_path):
    summaries, items, _stats = open_stores(str(tmp_path / "h.db"))
    items.save(_item(description=None))
    items.save(_item(description="now with text", posted_date=datetime(2025, 1, 1, tzinfo=timezone.utc)))

    db = items.db
    assert db.count_rows("listing_items") == 1
    with contextlib.closing(db.connect()) as conn:
        (desc, posted) = conn.execute("SELECT description, posted_date FROM listing_items").fetchone()
    assert desc == "now with text"
    assert posted.startswith("2025-01-01")


def test_summary_upsert_key_includes_job_function(tmp_path):
    summaries, _items, _stats = open_stores(str(tmp_path / "h.db"))
    summaries.save(_summary("Design", count_jobs=10))
    summaries.save(_summary("Design", count_jobs=12))
    summaries.save(_summary("Product"))
    assert summaries.db.count_rows("listing_summaries") == 2


def test_delete_all_clears_listing_tables_only(tmp_path):
    summaries, items, stats = open_stores(str(tmp_path / "h.db"))
    summaries.save(_summary())
    items.save(_item())
    stats.save(Statistics(1, 10, datetime(2025, 1, 1, tzinfo=timezone.utc)))

    items.delete_all()
    summaries.delete_all()

    db = items.db
    assert db.count_rows("listing_items") == 0
    assert db.count_rows("listing_summaries") == 0
    assert db.count_rows("statistics") == 1


def test_statistics_append_only_and_readback(tmp_path):
    _s, _i, stats = open_stores(str(tmp_path / "h.db"))
    stats.save(Statistics(5, 1000, datetime(2025, 1, 1, tzinfo=timezone.utc)))
    stats.save(Statistics(7, 2000, datetime(2025, 1, 2, tzinfo=timezone.utc), enrichment_attempted=False))

    latest = stats.db.latest_statistics()
    assert stats.db.count_rows("statistics") == 2
    assert latest == Statistics(7, 2000, datetime(2025, 1, 2, tzinfo=timezone.utc), enrichment_attempted=False)


def test_count_rows_rejects_unknown_table(tmp_path):
    db = SqliteDatabase(str(tmp_path / "h.db"))
    with pytest.raises(ValueError):
        db.count_rows("sqlite_master; DROP TABLE statistics")


def test_reset_removes_file(tmp_path):
    path = tmp_path / "nested" / "h.db"
    db = SqliteDatabase(str(path))
    assert path.exists()
    db.reset()
    assert not path.exists()
    db.init_db()
    assert db.latest_statistics() is None
