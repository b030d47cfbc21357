from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .utils import truthy


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Static data
# -----------------------------
# Upstream job-function filters, walked in this order.
INDUSTRIES: tuple[str, ...] = (
    "Accounting & Finance",
    "Administration",
    "Compliance / Regulatory",
    "Customer Service",
    "Data Science",
    "Design",
    "IT",
    "Legal",
    "Marketing & Communications",
    "Operations",
    "Other Engineering",
    "People & HR",
    "Product",
    "Quality Assurance",
    "Sales & Business Development",
    "Software Engineering",
)

SEARCH_URL = "https://api.getro.com/api/v2/collections/89/search/jobs"
DETAIL_BASE_URL = "https://jobs.techstars.com/companies"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/138.0.0.0 Safari/537.36"
)

DEFAULT_SQLITE_PATH = "/app/local/state/harvest.db"


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class Selectors:
    """
    Detail-page selector strategy.

    - labor_function: CSS selector for the labor-function containers; the node at
      `labor_function_index` is used (the first match is the company line).
    - description: CSS selector for the description container (first match).

    The class names are generated by the detail site's build, so they live here
    as configuration instead of inside the parser.
    """

    labor_function: str = "div.sc-beqWaB.bpXRKw"
    labor_function_index: int = 1
    description: str = "div.sc-beqWaB.fmCCHr"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> Selectors:
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ConfigError("'selectors' must be an object.")
        unknown = set(raw) - {"labor_function", "labor_function_index", "description"}
        if unknown:
            raise ConfigError(f"'selectors' has unknown field(s): {sorted(unknown)}")
        base = cls()
        try:
            index = int(raw.get("labor_function_index", base.labor_function_index))
        except (TypeError, ValueError) as err:
            raise ConfigError("'selectors.labor_function_index' must be an integer.") from err
        return cls(
            labor_function=str(raw.get("labor_function") or base.labor_function).strip(),
            labor_function_index=index,
            description=str(raw.get("description") or base.description).strip(),
        )


@dataclass
class Settings:
    """
    Canonical configuration for a 'job_harvest' run.

    Concurrency:
      - industry_workers bounds how many industries are walked at once.
      - job_workers sizes the shared job pool; max_in_flight_jobs bounds how many
        job tasks may be queued or running at any time across all pages.
    """

    # Persistence
    sqlite_path: str = DEFAULT_SQLITE_PATH

    # Upstream endpoints
    search_url: str = SEARCH_URL
    detail_base_url: str = DETAIL_BASE_URL
    hits_per_page: int = 12
    industries: list[str] = field(default_factory=lambda: list(INDUSTRIES))

    # Concurrency
    industry_workers: int = 3
    job_workers: int = 16
    max_in_flight_jobs: int = 64

    # Network policy
    search_timeout: float = 10.0
    detail_timeout: float = 15.0
    detail_attempts: int = 2
    detail_retry_delay: float = 2.0
    user_agent: str = DEFAULT_USER_AGENT

    # Enrichment
    enrich_details: bool = True
    selectors: Selectors = field(default_factory=Selectors)

    # Harvests executed back-to-back per module invocation
    runs: int = 1

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional):

            sqlite_path: str          # else sqlite_path_env (resolved by the runner), else $HARVEST_SQLITE_PATH, else /app/local/state/harvest.db
            user_agent: str           # else $HARVEST_USER_AGENT, else desktop Chrome
            search_url / detail_base_url: str
            hits_per_page: int = 12
            industries: list[str]     # defaults to the 16 upstream job functions
            industry_workers: int = 3
            job_workers: int = 16
            max_in_flight_jobs: int = 64
            search_timeout: float = 10
            detail_timeout: float = 15
            detail_attempts: int = 2
            detail_retry_delay: float = 2
            enrich_details: bool = true
            selectors: {labor_function, labor_function_index, description}
            runs: int = 1
        """
        kw = dict(kwargs or {})
        base = cls()

        sqlite_path = str(
            kw.get("sqlite_path") or kw.get("sqlite_path_env") or os.getenv("HARVEST_SQLITE_PATH") or base.sqlite_path
        )
        user_agent = str(kw.get("user_agent") or os.getenv("HARVEST_USER_AGENT") or base.user_agent)

        industries_raw = kw.get("industries")
        if industries_raw is None:
            industries = list(INDUSTRIES)
        elif isinstance(industries_raw, str):
            industries = [s.strip() for s in industries_raw.split(",") if s.strip()]
        elif isinstance(industries_raw, (list, tuple)):
            industries = [str(s).strip() for s in industries_raw if str(s).strip()]
        else:
            raise ConfigError("'industries' must be a list of strings or a comma-separated string.")

        settings = cls(
            sqlite_path=sqlite_path,
            search_url=str(kw.get("search_url") or base.search_url),
            detail_base_url=str(kw.get("detail_base_url") or base.detail_base_url).rstrip("/"),
            hits_per_page=_int(kw, "hits_per_page", base.hits_per_page),
            industries=industries,
            industry_workers=_int(kw, "industry_workers", base.industry_workers),
            job_workers=_int(kw, "job_workers", base.job_workers),
            max_in_flight_jobs=_int(kw, "max_in_flight_jobs", base.max_in_flight_jobs),
            search_timeout=_float(kw, "search_timeout", base.search_timeout),
            detail_timeout=_float(kw, "detail_timeout", base.detail_timeout),
            detail_attempts=_int(kw, "detail_attempts", base.detail_attempts),
            detail_retry_delay=_float(kw, "detail_retry_delay", base.detail_retry_delay),
            user_agent=user_agent,
            enrich_details=truthy(kw["enrich_details"]) if "enrich_details" in kw else base.enrich_details,
            selectors=Selectors.from_mapping(kw.get("selectors")),
            runs=_int(kw, "runs", base.runs),
        )
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _int(kw: Mapping[str, Any], key: str, default: int) -> int:
    if kw.get(key) is None:
        return default
    try:
        return int(kw[key])
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{key}' must be an integer (got {kw[key]!r}).") from err


def _float(kw: Mapping[str, Any], key: str, default: float) -> float:
    if kw.get(key) is None:
        return default
    try:
        return float(kw[key])
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{key}' must be a number (got {kw[key]!r}).") from err


def _validate_settings(s: Settings) -> None:
    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if not s.search_url.strip() or not s.detail_base_url.strip():
        raise ConfigError("'search_url' and 'detail_base_url' cannot be empty.")

    for name in ("hits_per_page", "industry_workers", "job_workers", "max_in_flight_jobs", "detail_attempts", "runs"):
        if getattr(s, name) < 1:
            raise ConfigError(f"'{name}' must be >= 1.")
    for name in ("search_timeout", "detail_timeout", "detail_retry_delay"):
        if getattr(s, name) < 0:
            raise ConfigError(f"'{name}' must be >= 0.")

    if not s.industries:
        raise ConfigError("No industries to harvest.")
    if len(set(s.industries)) != len(s.industries):
        raise ConfigError("'industries' must not contain duplicates.")

    sel = s.selectors
    if not sel.labor_function or not sel.description:
        raise ConfigError("Selectors must be non-empty CSS selectors.")
    if sel.labor_function_index < 0:
        raise ConfigError("'selectors.labor_function_index' must be >= 0.")
