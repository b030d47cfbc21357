from __future__ import annotations

import contextlib
import os
import sqlite3
from datetime import datetime

from ..logging_bridge import error as log_error
from ..models import ListingItem, ListingSummary, Statistics
from ..utils import now_iso
from .base import ItemStore, StatisticsStore, SummaryStore

_TABLES = ("listing_summaries", "listing_items", "statistics")


class SqliteDatabase:
    """
    Thin handle on the harvest SQLite file.

    Every operation opens its own short-lived connection, so the stores built on
    top of it can be shared by any number of worker threads. WAL mode plus a
    30s busy timeout absorbs concurrent writers.
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        self.init_db()

    def init_db(self) -> None:
        """
        Ensure the SQLite database and schema exist.
        Safe to call multiple times.
        """
        _ensure_dir(self.sqlite_path)
        with contextlib.closing(self.connect()) as conn:
            _ensure_schema(conn)

    def connect(self) -> sqlite3.Connection:
        # isolation_level=None gives autocommit mode; we'll manage transactions explicitly.
        conn = sqlite3.connect(self.sqlite_path, timeout=30.0, isolation_level=None)
        _apply_pragmas(conn)
        return conn

    def execute(self, op: str, sql: str, params: tuple = ()) -> None:
        """Run one write statement in its own transaction; log and re-raise on failure."""
        try:
            with contextlib.closing(self.connect()) as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute(sql, params)
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
        except Exception as e:
            log_error({
                "component": "job_harvest.stores.sqlite",
                "op": op,
                "sqlite_path": self.sqlite_path,
                "error": repr(e),
            })
            raise

    # ---- Nice-to-have helpers for tests & diagnostics -------------------

    def count_rows(self, table: str) -> int:
        """Return total rows in one of the harvest tables."""
        if table not in _TABLES:
            raise ValueError(f"unknown table {table!r}")
        with contextlib.closing(self.connect()) as conn:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return int(n or 0)

    def latest_statistics(self) -> Statistics | None:
        with contextlib.closing(self.connect()) as conn:
            row = conn.execute(
                """
                SELECT total_jobs_parsed, total_time_ms, last_fetch, enrichment_attempted
                FROM statistics ORDER BY id DESC LIMIT 1
                """
            ).fetchone()
        if row is None:
            return None
        parsed, time_ms, last_fetch, enriched = row
        return Statistics(
            total_jobs_parsed=int(parsed),
            total_time_ms=int(time_ms),
            last_fetch=datetime.fromisoformat(last_fetch),
            enrichment_attempted=bool(enriched),
        )

    def reset(self) -> None:
        """
        Remove the DB file entirely (for pytest fixtures).
        Safe if it doesn't exist.
        """
        for suffix in ("", "-wal", "-shm"):
            with contextlib.suppress(FileNotFoundError):
                os.remove(self.sqlite_path + suffix)


class SqliteSummaryStore(SummaryStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self.db = db

    def delete_all(self) -> None:
        self.db.execute("summaries.delete_all", "DELETE FROM listing_summaries")

    def save(self, summary: ListingSummary) -> None:
        self.db.execute(
            "summaries.save",
            """
            INSERT INTO listing_summaries (job_function, url, count_jobs, tags, detail_url, created_utc)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (job_function, detail_url) DO UPDATE SET
              url = excluded.url,
              count_jobs = excluded.count_jobs,
              tags = excluded.tags,
              created_utc = excluded.created_utc
            """,
            (summary.job_function, summary.url, summary.count_jobs, summary.tags, summary.detail_url, now_iso()),
        )


class SqliteItemStore(ItemStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self.db = db

    def delete_all(self) -> None:
        self.db.execute("items.delete_all", "DELETE FROM listing_items")

    def save(self, item: ListingItem) -> None:
        posted = item.posted_date.isoformat() if item.posted_date else None
        self.db.execute(
            "items.save",
            """
            INSERT INTO listing_items (
              url, position_name, organization_title, logo_url, address,
              posted_date, labor_function, description, created_utc
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (url) DO UPDATE SET
              position_name = excluded.position_name,
              organization_title = excluded.organization_title,
              logo_url = excluded.logo_url,
              address = excluded.address,
              posted_date = excluded.posted_date,
              labor_function = excluded.labor_function,
              description = excluded.description,
              created_utc = excluded.created_utc
            """,
            (
                item.url,
                item.position_name,
                item.organization_title,
                item.logo_url,
                item.address,
                posted,
                item.labor_function,
                item.description,
                now_iso(),
            ),
        )


class SqliteStatisticsStore(StatisticsStore):
    def __init__(self, db: SqliteDatabase) -> None:
        self.db = db

    def save(self, stats: Statistics) -> None:
        self.db.execute(
            "statistics.save",
            """
            INSERT INTO statistics (total_jobs_parsed, total_time_ms, last_fetch, enrichment_attempted)
            VALUES (?, ?, ?, ?)
            """,
            (
                stats.total_jobs_parsed,
                stats.total_time_ms,
                stats.last_fetch.isoformat(),
                1 if stats.enrichment_attempted else 0,
            ),
        )


def open_stores(sqlite_path: str) -> tuple[SqliteSummaryStore, SqliteItemStore, SqliteStatisticsStore]:
    """Build the three stores over one database file."""
    db = SqliteDatabase(sqlite_path)
    return SqliteSummaryStore(db), SqliteItemStore(db), SqliteStatisticsStore(db)


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-8000;")  # approx 8MB cache


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS listing_summaries (
          id INTEGER PRIMARY KEY,
          job_function TEXT NOT NULL,
          url          TEXT NOT NULL,
          count_jobs   INTEGER NOT NULL DEFAULT 0,
          tags         TEXT NOT NULL,
          detail_url   TEXT NOT NULL,
          created_utc  TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_summaries_function_detail
          ON listing_summaries (job_function, detail_url);
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS listing_items (
          id INTEGER PRIMARY KEY,
          url                TEXT NOT NULL UNIQUE,
          position_name      TEXT NOT NULL,
          organization_title TEXT NOT NULL,
          logo_url           TEXT NOT NULL,
          address            TEXT,
          posted_date        TEXT,
          labor_function     TEXT,
          description        TEXT,
          created_utc        TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS statistics (
          id INTEGER PRIMARY KEY,
          total_jobs_parsed    INTEGER NOT NULL,
          total_time_ms        INTEGER NOT NULL,
          last_fetch           TEXT NOT NULL,
          enrichment_attempted INTEGER NOT NULL DEFAULT 1
        );
        """
    )
