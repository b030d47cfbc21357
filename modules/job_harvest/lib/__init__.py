# modules/job_harvest/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience
from .config import INDUSTRIES, ConfigError, Selectors, Settings
from .engine import Harvester, run_harvests
from .errors import HarvestError, MappingError, PersistenceError
from .models import DetailFields, ListingItem, ListingSummary, RunOutcome, Statistics

__all__ = [
    "INDUSTRIES",
    "ConfigError",
    "DetailFields",
    "HarvestError",
    "Harvester",
    "ListingItem",
    "ListingSummary",
    "MappingError",
    "PersistenceError",
    "RunOutcome",
    "Selectors",
    "Settings",
    "Statistics",
    "run_harvests",
]
