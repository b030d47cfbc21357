"""
Engine for harvesting job listings from the search API into the listing stores.

Features:
  - Industry fan-out on a small pool (default 3), one sequential page walk per industry
  - Job fan-out on a bounded shared pool with an in-flight cap
  - Full refresh: items and summaries are cleared before every run
  - One Statistics row per run with the processed-job count and wall-clock duration
  - Dependency injection for testability (stores, HTTP client, sleep)
  - Comprehensive logging via `logging_bridge`
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone

from . import logging_bridge
from .concurrency import JobPool, JobTally
from .config import Settings
from .detail import DetailPageFetcher
from .errors import HarvestError
from .http_client import HttpClient
from .models import RunOutcome, Statistics
from .pages import PageFetcher
from .stores.base import ItemStore, StatisticsStore, SummaryStore
from .utils import format_duration
from .walker import IndustryWalker

log = logging.getLogger(__name__)


class Harvester:
    """
    Owns the worker pools and the run counter for a sequence of harvest runs.

    Runs must not overlap: call run_once() again only after the previous call
    returned. close() releases the pools and the HTTP session and is idempotent.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        summaries: SummaryStore,
        items: ItemStore,
        statistics: StatisticsStore,
        client: HttpClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._summaries = summaries
        self._items = items
        self._statistics = statistics

        self._owns_client = client is None
        self._client = client or HttpClient(
            timeout=settings.detail_timeout,
            user_agent=settings.user_agent,
            pool_maxsize=max(settings.job_workers, settings.industry_workers) + 4,
        )

        self.tally = JobTally()
        self._job_pool = JobPool(settings.job_workers, settings.max_in_flight_jobs)
        self._industry_pool = ThreadPoolExecutor(
            max_workers=settings.industry_workers, thread_name_prefix="harvest-industry"
        )

        detail = None
        if settings.enrich_details:
            detail = DetailPageFetcher(
                self._client,
                settings.selectors,
                timeout=settings.detail_timeout,
                attempts=settings.detail_attempts,
                retry_delay=settings.detail_retry_delay,
                sleep=sleep,
            )

        self.pages = PageFetcher(
            self._client,
            summaries=summaries,
            items=items,
            pool=self._job_pool,
            tally=self.tally,
            detail=detail,
            search_url=settings.search_url,
            detail_base_url=settings.detail_base_url,
            hits_per_page=settings.hits_per_page,
            timeout=settings.search_timeout,
        )
        self.walker = IndustryWalker(self.pages)

        self._close_lock = threading.Lock()
        self._closed = False

    # =========================================================================
    # ONE RUN
    # =========================================================================
    def run_once(self) -> RunOutcome:
        """
        Clear -> walk every industry -> record Statistics.

        Failures while clearing the stores are fatal and propagate before any
        fetching starts. Failures inside one industry never stop the others.
        """
        if self._closed:
            raise HarvestError("harvester is closed")

        t0 = time.monotonic()
        industries = list(self.settings.industries)

        logging_bridge.activity({
            "component": "job_harvest.engine",
            "op": "run_start",
            "industries": industries,
            "enrich_details": self.settings.enrich_details,
        })

        # ---------------------------------------------------------------------
        # SETUP: full refresh of the listing tables
        # ---------------------------------------------------------------------
        self._items.delete_all()
        self._summaries.delete_all()
        self.tally.reset()

        # ---------------------------------------------------------------------
        # FAN OUT: one walk per industry, bounded by industry_workers
        # ---------------------------------------------------------------------
        failed: list[str] = []
        futures = {self._industry_pool.submit(self.walker.walk, ind): ind for ind in industries}
        for fut in as_completed(futures):
            industry = futures[fut]
            try:
                fut.result()
            except Exception as e:
                failed.append(industry)
                log.error("industry %s failed: %r", industry, e)
                logging_bridge.error({
                    "component": "job_harvest.engine",
                    "op": "industry",
                    "industry": industry,
                    "error": repr(e),
                })

        # ---------------------------------------------------------------------
        # FINALIZE: every job task has been joined by now
        # ---------------------------------------------------------------------
        jobs_processed = self.tally.count
        _total, jobs_failed = self.tally.drain()
        duration_ms = int((time.monotonic() - t0) * 1000)

        self._statistics.save(Statistics(
            total_jobs_parsed=jobs_processed,
            total_time_ms=duration_ms,
            last_fetch=datetime.now(timezone.utc),
            enrichment_attempted=self.settings.enrich_details,
        ))

        log.info("Total time: %s", format_duration(duration_ms))
        log.info("Total jobs parsed: %d", jobs_processed)
        logging_bridge.activity({
            "component": "job_harvest.engine",
            "op": "summary",
            "jobs_processed": jobs_processed,
            "jobs_failed": jobs_failed,
            "failed_industries": sorted(failed),
            "duration_ms": duration_ms,
        })

        return RunOutcome(
            jobs_processed=jobs_processed,
            duration_ms=duration_ms,
            failed_industries=tuple(sorted(failed)),
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================
    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._industry_pool.shutdown(wait=True)
        self._job_pool.shutdown()
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> Harvester:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_harvests(
    settings: Settings,
    *,
    stores: tuple[SummaryStore, ItemStore, StatisticsStore] | None = None,
    client: HttpClient | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[RunOutcome]:
    """
    Execute `settings.runs` harvests back-to-back on one set of pools, then release them.

    Args:
        settings: Validated harvest settings.
        stores: (summaries, items, statistics) override; defaults to SQLite at settings.sqlite_path.
        client: Optional HTTP client override (tests).
        sleep: Sleep used between detail-page attempts (tests pass a no-op).
    """
    if stores is None:
        from .stores.sqlite import open_stores

        stores = open_stores(settings.sqlite_path)
    summaries, items, statistics = stores

    outcomes: list[RunOutcome] = []
    with Harvester(
        settings,
        summaries=summaries,
        items=items,
        statistics=statistics,
        client=client,
        sleep=sleep,
    ) as harvester:
        for i in range(settings.runs):
            log.info("harvest run %d/%d", i + 1, settings.runs)
            outcomes.append(harvester.run_once())
    return outcomes
