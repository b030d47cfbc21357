"""
ListingMapper: pure transforms from one raw search-API job record into the two
persisted shapes (ListingSummary, ListingItem), plus the tag-string helpers.

Raw job shape (subset):
  {
    "title": str, "url": str, "slug": str, "has_description": bool,
    "seniority": str, "created_at": int (unix seconds),
    "searchable_locations": [str, ...],
    "organization": {"slug", "name", "logo_url", "industryTags": [...],
                     "headCount": 1..6, "stage": "series_a_plus"}
  }
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from .errors import MappingError
from .models import DetailFields, ListingItem, ListingSummary

EMPLOYEE_BANDS: dict[int, str] = {
    1: "1-10 employees",
    2: "11-50 employees",
    3: "51-200 employees",
    4: "201-1000 employees",
    5: "1000-5000 employees",
    6: "5001+ employees",
}


def format_tag(tag: str | None) -> str:
    """
    Turn an upstream snake_case token into a label:
        "series_a_plus" -> "Series A+"
        "seed"          -> "Seed"
        "" / None       -> ""
    """
    if tag is None or not str(tag).strip():
        return ""
    tag = str(tag).replace("_plus", "+")

    words: list[str] = []
    for part in tag.split("_"):
        if not part:
            continue
        if part == "+":
            words.append("+")
            continue
        words.append(part[:1].upper() + part[1:].lower())

    return " ".join(words).replace(" +", "+").strip()


def employee_band(head_count: Any) -> str | None:
    """headCount code (1..6) -> label; anything else -> None."""
    try:
        code = int(head_count)
    except (TypeError, ValueError):
        return None
    return EMPLOYEE_BANDS.get(code)


def get_tags(industry: str | None, job: Mapping[str, Any]) -> str:
    """
    Order-preserving, comma-joined tag string:
      industry, org industry tags..., employee band, formatted stage, seniority
    Blank components are dropped.
    """
    tags: list[str] = []

    if industry and industry.strip():
        tags.append(industry)

    org = job.get("organization")
    if isinstance(org, Mapping):
        industry_tags = org.get("industryTags")
        if isinstance(industry_tags, list):
            tags.extend(str(t) for t in industry_tags if t is not None and str(t).strip())

        band = employee_band(org.get("headCount"))
        if band:
            tags.append(band)

        stage = format_tag(_opt_str(org, "stage"))
        if stage:
            tags.append(stage)

    seniority = _opt_str(job, "seniority")
    if seniority.strip():
        tags.append(seniority)

    return ", ".join(tags)


def build_detail_url(job: Mapping[str, Any], base_url: str) -> str:
    """
    Canonical detail URL: {base_url}/{org-slug}/jobs/{job-slug}
    Raises MappingError when either slug is missing.
    """
    org = job.get("organization")
    if not isinstance(org, Mapping):
        raise MappingError("job record has no organization")
    org_slug = _opt_str(org, "slug").strip()
    job_slug = _opt_str(job, "slug").strip()
    if not org_slug or not job_slug:
        raise MappingError(f"missing slug (organization={org_slug!r}, job={job_slug!r})")
    return f"{base_url.rstrip('/')}/{org_slug}/jobs/{job_slug}"


def posted_date(job: Mapping[str, Any]) -> datetime | None:
    """created_at (unix seconds) -> aware UTC datetime; None when absent, <= 0 or out of range."""
    raw = job.get("created_at")
    try:
        seconds = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return None
    if seconds <= 0:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        # outside the platform's range, e.g. a millisecond epoch
        return None


def has_description(job: Mapping[str, Any]) -> bool:
    flag = job.get("has_description")
    return flag is True or (isinstance(flag, str) and flag.strip().lower() == "true")


def map_summary(job: Mapping[str, Any], industry: str, *, detail_url: str, count_jobs: int = 0) -> ListingSummary:
    return ListingSummary(
        job_function=industry,
        url=_opt_str(job, "url"),
        count_jobs=int(count_jobs or 0),
        tags=get_tags(industry, job),
        detail_url=detail_url,
    )


def map_item(job: Mapping[str, Any], *, detail_url: str, detail: DetailFields | None = None) -> ListingItem:
    org = job.get("organization")
    org = org if isinstance(org, Mapping) else {}

    locations = job.get("searchable_locations")
    address = None
    if isinstance(locations, list):
        address = ", ".join("" if loc is None else str(loc) for loc in locations)

    detail = detail or DetailFields()
    return ListingItem(
        url=detail_url,
        position_name=_opt_str(job, "title"),
        organization_title=_opt_str(org, "name"),
        logo_url=_opt_str(org, "logo_url"),
        address=address,
        posted_date=posted_date(job),
        labor_function=detail.labor_function,
        description=detail.description,
    )


def _opt_str(obj: Mapping[str, Any], key: str, default: str = "") -> str:
    v = obj.get(key)
    if v is None:
        return default
    if isinstance(v, (dict, list)):
        raise MappingError(f"field {key!r} has unexpected type {type(v).__name__}")
    return str(v)
