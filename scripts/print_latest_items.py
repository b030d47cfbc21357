#!/usr/bin/env python3
"""
Print the most recent harvest statistics and a sample of stored listing items.

Usage:
    python scripts/print_latest_items.py [LIMIT] [--db PATH]

PATH defaults to $HARVEST_SQLITE_PATH, else ./local/state/harvest.db.
"""

from __future__ import annotations

import argparse
import contextlib
import os
import sqlite3
import sys
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DB = PROJECT_ROOT / "local" / "state" / "harvest.db"


def get_latest_items(db_path: str, limit: int = 15) -> list[tuple[str, str, str, str | None]]:
    """(position_name, organization_title, url, labor_function), newest first."""
    with contextlib.closing(sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)) as conn:
        return conn.execute(
            """
            SELECT position_name, organization_title, url, labor_function
            FROM listing_items
            ORDER BY created_utc DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()


def get_statistics(db_path: str, limit: int = 5) -> list[tuple[int, int, str]]:
    with contextlib.closing(sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)) as conn:
        return conn.execute(
            "SELECT total_jobs_parsed, total_time_ms, last_fetch FROM statistics ORDER BY id DESC LIMIT ?",
            (limit,),
        ).fetchall()


def format_timestamp(iso_str: str) -> str:
    """Convert ISO timestamp to readable local format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except ValueError:
        return iso_str
    return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    p.add_argument("limit", nargs="?", type=int, default=15)
    p.add_argument("--db", default=os.getenv("HARVEST_SQLITE_PATH") or str(DEFAULT_DB))
    args = p.parse_args(argv)

    if not os.path.exists(args.db):
        print(f"Database not found: {args.db}", file=sys.stderr)
        return 1

    try:
        stats = get_statistics(args.db)
        items = get_latest_items(args.db, max(args.limit, 1))
    except sqlite3.Error as e:
        print(f"Error reading {args.db}: {e}", file=sys.stderr)
        return 1

    print("=" * 80)
    print(f"DATABASE: {args.db}")
    print("-" * 80)
    for parsed, time_ms, last_fetch in stats:
        print(f"  run at {format_timestamp(last_fetch)}: {parsed} jobs in {time_ms} ms")
    if not stats:
        print("  No runs recorded yet.")
    print("-" * 80)

    for i, (title, org, url, labor) in enumerate(items, 1):
        print(f"{i:2d}. {title} @ {org}")
        print(f"     Function: {labor or '-'}")
        print(f"     URL:      {url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
