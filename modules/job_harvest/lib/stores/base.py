from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import ListingItem, ListingSummary, Statistics


class SummaryStore(ABC):
    """
    Where ListingSummary rows go.

    Contract:
      - save() may be called concurrently from many worker threads, in any order.
      - save() is an idempotent upsert keyed by (job_function, detail_url).
      - delete_all() is only called by the run setup, never concurrently with save().
    """

    @abstractmethod
    def delete_all(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def save(self, summary: ListingSummary) -> None:
        raise NotImplementedError


class ItemStore(ABC):
    """Where ListingItem rows go. Same threading contract as SummaryStore; upsert keyed by item.url."""

    @abstractmethod
    def delete_all(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def save(self, item: ListingItem) -> None:
        raise NotImplementedError


class StatisticsStore(ABC):
    """Append-only: one row per run, never updated."""

    @abstractmethod
    def save(self, stats: Statistics) -> None:
        raise NotImplementedError
