from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_harvests
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict[str, Any]:
    """
    Entry point for the 'job_harvest' module.

    Accepts kwargs (from scheduler/runner/CLI), including:
      sqlite_path: str = "/app/local/state/harvest.db"
      industries: list[str] | "A,B,C"   # defaults to all 16 job functions
      industry_workers: int = 3
      job_workers: int = 16
      max_in_flight_jobs: int = 64
      enrich_details: bool = True
      runs: int = 1                      # harvests back-to-back, then pools are released

    Returns a meta dict; the runner records it in the activity log.
    """
    settings = Settings.from_env_and_kwargs(kwargs)

    log_activity({
        "component": "job_harvest.main",
        "op": "start",
        "sqlite_path": settings.sqlite_path,
        "industries": len(settings.industries),
        "runs": settings.runs,
        "workers": {
            "industry": settings.industry_workers,
            "job": settings.job_workers,
            "max_in_flight": settings.max_in_flight_jobs,
        },
    })

    outcomes = run_harvests(settings)
    last = outcomes[-1]
    return {
        "message": f"Harvested {last.jobs_processed} jobs in {last.duration_ms} ms",
        "jobs_processed": last.jobs_processed,
        "duration_ms": last.duration_ms,
        "failed_industries": list(last.failed_industries),
        "runs": [
            {
                "jobs_processed": o.jobs_processed,
                "duration_ms": o.duration_ms,
                "failed_industries": list(o.failed_industries),
            }
            for o in outcomes
        ],
    }
