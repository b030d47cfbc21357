from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ListingSummary:
    """
    Raw search-result record written once per harvested job.

    tags: comma-joined labels (industry, org tags, employee band, stage, seniority).
    count_jobs: total reported by the search API for the (industry, page) query.
    detail_url: canonical detail URL; together with job_function it keys upserts.
    """

    job_function: str
    url: str
    count_jobs: int
    tags: str
    detail_url: str


@dataclass(frozen=True)
class ListingItem:
    """
    Normalized job record, enriched from the detail page when it could be fetched.
    `url` is the canonical detail URL: .../companies/{org-slug}/jobs/{job-slug}
    """

    url: str
    position_name: str
    organization_title: str
    logo_url: str
    address: str | None = None
    posted_date: datetime | None = None
    labor_function: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class DetailFields:
    """Fields scraped from a job's detail page."""

    labor_function: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class Statistics:
    """One row per harvest run (append-only)."""

    total_jobs_parsed: int
    total_time_ms: int
    last_fetch: datetime
    enrichment_attempted: bool = True


@dataclass(frozen=True)
class RunOutcome:
    jobs_processed: int
    duration_ms: int
    failed_industries: tuple[str, ...] = ()
