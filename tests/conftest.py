# tests/conftest.py
import json
import os
import tempfile
import threading
import time
import types

import pytest
import requests
from freezegun import freeze_time

from modules.job_harvest.lib import config as jh_config
from modules.job_harvest.lib.stores.base import ItemStore, StatisticsStore, SummaryStore


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls or external services).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls or hit external services (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="jh-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.delenv("HARVEST_SQLITE_PATH", raising=False)
    monkeypatch.delenv("HARVEST_USER_AGENT", raising=False)
    yield


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-01-01T00:00:00Z"):
        yield


@pytest.fixture
def write_min_config(tmp_path, monkeypatch):
    cfg = {
        "timezone": "UTC",
        "jobs": [
            {
                "id": "harvest-nightly",
                "module": "modules.job_harvest",
                "trigger": {"daily_time": {"time": "02:30"}},
                "kwargs": {"sqlite_path": str(tmp_path / "harvest.db"), "runs": 1},
                "timeout_sec": 3600,
                "summary": "pytest config",
            }
        ],
    }
    p = tmp_path / "config.json"
    p.write_text(json.dumps(cfg), encoding="utf-8")
    monkeypatch.setenv("CONFIG_PATH", str(p))
    return p


# ---------------------------------------------------------------------
# Raw upstream records
# ---------------------------------------------------------------------
def make_job(n: int = 1, *, org: str = "acme", **overrides) -> dict:
    job = {
        "title": f"Engineer {n}",
        "url": f"https://api.example/jobs/{n}",
        "slug": f"engineer-{n}",
        "has_description": True,
        "seniority": "senior",
        "created_at": 1735689600,  # 2025-01-01T00:00:00Z
        "searchable_locations": ["Berlin", "Remote"],
        "organization": {
            "slug": org,
            "name": org.title(),
            "logo_url": f"https://cdn.example/{org}.png",
            "industryTags": ["Fintech"],
            "headCount": 3,
            "stage": "series_b",
        },
    }
    job.update(overrides)
    return job


DETAIL_HTML = """
<html><body>
  <div class="sc-beqWaB bpXRKw">Acme Inc</div>
  <div class="sc-beqWaB bpXRKw">  Software   Engineering </div>
  <div class="sc-beqWaB fmCCHr"><p>Build things.</p><p>Ship them.</p></div>
</body></html>
"""


@pytest.fixture
def job_factory():
    return make_job


# ---------------------------------------------------------------------
# Fakes for the collaborator interfaces
# ---------------------------------------------------------------------
class MemorySummaryStore(SummaryStore):
    def __init__(self):
        self._lock = threading.Lock()
        self.rows = {}
        self.fail_with = None
        self.delete_calls = 0

    def delete_all(self):
        with self._lock:
            self.delete_calls += 1
            self.rows.clear()

    def save(self, summary):
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.rows[(summary.job_function, summary.detail_url)] = summary


class MemoryItemStore(ItemStore):
    def __init__(self):
        self._lock = threading.Lock()
        self.rows = {}
        self.fail_with = None
        self.delete_calls = 0

    def delete_all(self):
        with self._lock:
            self.delete_calls += 1
            self.rows.clear()

    def save(self, item):
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.rows[item.url] = item


class MemoryStatisticsStore(StatisticsStore):
    def __init__(self):
        self.rows = []

    def save(self, stats):
        self.rows.append(stats)


@pytest.fixture
def stores():
    return types.SimpleNamespace(
        summaries=MemorySummaryStore(),
        items=MemoryItemStore(),
        statistics=MemoryStatisticsStore(),
    )


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text


class FakeHttpClient:
    """
    Scripted stand-in for HttpClient.

    pages:   {(industry, page): FakeResponse | Exception}; missing pages return an empty jobs list.
    details: {url: html | Exception | [html-or-exception per attempt]}; missing urls raise ConnectionError.
    delay:   seconds each search call sleeps (to create overlap for concurrency checks).
    """

    def __init__(self, pages=None, details=None, *, delay=0.0):
        self.pages = dict(pages or {})
        self.details = dict(details or {})
        self.delay = delay
        self.search_calls = []
        self.detail_calls = []
        self._lock = threading.Lock()
        self._active = 0
        self.max_active_search = 0
        self.closed = False

    def post_json(self, url, payload, *, timeout=None, **kwargs):
        industry = payload["filters"]["job_functions"][0]
        page = payload["page"]
        with self._lock:
            self.search_calls.append((industry, page, payload, timeout))
            self._active += 1
            self.max_active_search = max(self.max_active_search, self._active)
        try:
            if self.delay:
                time.sleep(self.delay)
            resp = self.pages.get((industry, page))
            if resp is None:
                return FakeResponse(200, json.dumps({"results": {"jobs": [], "count": 0}}))
            if isinstance(resp, Exception):
                raise resp
            return resp
        finally:
            with self._lock:
                self._active -= 1

    def get_text(self, url, *, headers=None, timeout=None, **kwargs):
        with self._lock:
            attempt = sum(1 for u, _ in self.detail_calls if u == url)
            self.detail_calls.append((url, timeout))
        scripted = self.details.get(url, requests.ConnectionError(f"no route to {url}"))
        if isinstance(scripted, list):
            scripted = scripted[min(attempt, len(scripted) - 1)]
        if isinstance(scripted, Exception):
            raise scripted
        return scripted

    def close(self):
        self.closed = True


def page_response(jobs, count=None):
    body = {"results": {"jobs": jobs, "count": len(jobs) if count is None else count}}
    return FakeResponse(200, json.dumps(body))


@pytest.fixture
def fake_client_factory():
    return FakeHttpClient


@pytest.fixture
def harvest_settings(tmp_path):
    """Small, fast settings: two industries, no retry sleep."""
    return jh_config.Settings.from_env_and_kwargs({
        "sqlite_path": str(tmp_path / "harvest.db"),
        "industries": ["Design", "Legal"],
        "industry_workers": 3,
        "job_workers": 4,
        "max_in_flight_jobs": 8,
        "detail_retry_delay": 0,
    })


@pytest.fixture
def page_resp():
    return page_response


@pytest.fixture
def detail_html():
    return DETAIL_HTML


@pytest.fixture
def fake_response():
    return FakeResponse
