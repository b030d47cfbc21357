from __future__ import annotations

from .base import ItemStore, StatisticsStore, SummaryStore
from .sqlite import (
    SqliteDatabase,
    SqliteItemStore,
    SqliteStatisticsStore,
    SqliteSummaryStore,
    open_stores,
)

__all__ = [
    "ItemStore",
    "SqliteDatabase",
    "SqliteItemStore",
    "SqliteStatisticsStore",
    "SqliteSummaryStore",
    "StatisticsStore",
    "SummaryStore",
    "open_stores",
]
