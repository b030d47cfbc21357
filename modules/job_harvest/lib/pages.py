# job_harvest/pages.py
"""
PageFetcher: one (industry, page) search request, fanned out into one job task
per returned job. A page reports "has more" only after every one of its job
tasks, persistence included, has finished.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from concurrent.futures import wait
from typing import Any

import requests

from . import logging_bridge
from .concurrency import JobPool, JobTally
from .detail import DetailPageFetcher
from .errors import MappingError, PersistenceError
from .http_client import HttpClient
from .mapper import build_detail_url, has_description, map_item, map_summary
from .models import ListingItem, ListingSummary
from .stores.base import ItemStore, SummaryStore
from .utils import format_duration

log = logging.getLogger(__name__)


class PageFetcher:
    def __init__(
        self,
        client: HttpClient,
        *,
        summaries: SummaryStore,
        items: ItemStore,
        pool: JobPool,
        tally: JobTally,
        detail: DetailPageFetcher | None,
        search_url: str,
        detail_base_url: str,
        hits_per_page: int = 12,
        timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._summaries = summaries
        self._items = items
        self._pool = pool
        self.tally = tally
        self._detail = detail
        self.search_url = search_url
        self.detail_base_url = detail_base_url
        self.hits_per_page = hits_per_page
        self.timeout = timeout

    def build_payload(self, industry: str, page: int) -> dict[str, Any]:
        return {
            "hitsPerPage": self.hits_per_page,
            "page": page,
            "query": "",
            "filters": {"job_functions": [industry]},
        }

    # ------------------------------------------------------------------ #
    #  One search page
    # ------------------------------------------------------------------ #
    def fetch_page(self, industry: str, page: int) -> bool:
        """
        Returns True when the page held jobs (all of them processed), else False.
        Transport errors, non-200, empty body and undecodable JSON all mean False.
        """
        try:
            resp = self._client.post_json(self.search_url, self.build_payload(industry, page), timeout=self.timeout)
        except requests.RequestException as e:
            log.error("search request failed (%s, page %d): %r", industry, page, e)
            self._page_error(industry, page, "transport", repr(e))
            return False

        if resp.status_code != 200:
            log.error("search request failed (%s, page %d): HTTP %s", industry, page, resp.status_code)
            self._page_error(industry, page, "http_status", str(resp.status_code))
            return False

        body = resp.text
        if not body:
            log.error("empty search response (%s, page %d)", industry, page)
            self._page_error(industry, page, "empty_body", "")
            return False

        try:
            jobs, count_jobs = self._decode(body)
        except (ValueError, KeyError, TypeError) as e:
            log.error("could not decode search response (%s, page %d): %s", industry, page, e)
            self._page_error(industry, page, "decode", f"{e!r}; body starts: {body[:200]!r}")
            return False

        if not jobs:
            return False

        futures = [self._pool.submit(self.process_job, job, industry, count_jobs) for job in jobs]
        wait(futures)

        failures = 0
        for fut in futures:
            exc = fut.exception()
            if exc is not None:
                failures += 1
                log.error("job task failed (%s, page %d): %r", industry, page, exc, exc_info=exc)
                logging_bridge.error({
                    "component": "job_harvest.pages",
                    "op": "job_task",
                    "industry": industry,
                    "page": page,
                    "error": repr(exc),
                })

        log.info("%s: page %d done (%d jobs, %d failed)", industry, page, len(jobs), failures)
        return True

    @staticmethod
    def _decode(body: str) -> tuple[list[Any], int]:
        data = json.loads(body)
        results = data["results"]
        jobs = results["jobs"]
        if not isinstance(jobs, list):
            raise TypeError(f"results.jobs is {type(jobs).__name__}, expected list")
        try:
            count_jobs = int(results.get("count") or 0)
        except (TypeError, ValueError, OverflowError):
            count_jobs = 0
        return jobs, count_jobs

    def _page_error(self, industry: str, page: int, reason: str, detail: str) -> None:
        logging_bridge.error({
            "component": "job_harvest.pages",
            "op": "fetch_page",
            "industry": industry,
            "page": page,
            "reason": reason,
            "detail": detail,
        })

    # ------------------------------------------------------------------ #
    #  One job
    # ------------------------------------------------------------------ #
    def process_job(self, job: Any, industry: str, count_jobs: int = 0) -> None:
        """
        Map, enrich and persist one job record.

        Always counted in the tally, whatever happens. Shape problems are logged and
        swallowed here; persistence failures propagate to the page join as PersistenceError.
        """
        t0 = time.monotonic()
        ok = False
        title = ""
        try:
            if not isinstance(job, Mapping):
                raise MappingError(f"job record is {type(job).__name__}, expected object")
            title = str(job.get("title") or "")

            detail_url = build_detail_url(job, self.detail_base_url)
            summary = map_summary(job, industry, detail_url=detail_url, count_jobs=count_jobs)

            detail = None
            if self._detail is not None:
                want_description = has_description(job)
                detail = self._detail.fetch(detail_url, industry=industry, want_description=want_description)
                if detail is not None and want_description and detail.description is None:
                    log.info("no description found - %s - %s (industry: %s)", title, detail_url, industry)

            item = map_item(job, detail_url=detail_url, detail=detail)
            self._persist(summary, item)
            ok = True
        except MappingError as e:
            log.warning("skipping job %r (%s): %s", title, industry, e)
            logging_bridge.error({
                "component": "job_harvest.pages",
                "op": "map_job",
                "industry": industry,
                "title": title,
                "error": repr(e),
            })
        finally:
            self.tally.record(ok=ok)
            elapsed_ms = int((time.monotonic() - t0) * 1000)
            log.info("%s - %s", format_duration(elapsed_ms), title)

    def _persist(self, summary: ListingSummary, item: ListingItem) -> None:
        """Two independent writes: the second is attempted even if the first fails."""
        errors: list[BaseException] = []
        for write, record in ((self._summaries.save, summary), (self._items.save, item)):
            try:
                write(record)
            except Exception as e:
                errors.append(e)
        if errors:
            raise PersistenceError(f"{len(errors)} write(s) failed for {item.url}", errors) from errors[0]
