# tests/test_pages.py
import json
import sqlite3

import pytest
import requests

from modules.job_harvest.lib import logging_bridge
from modules.job_harvest.lib.concurrency import JobPool, JobTally
from modules.job_harvest.lib.config import Selectors
from modules.job_harvest.lib.detail import DetailPageFetcher
from modules.job_harvest.lib.pages import PageFetcher

BASE = "https://jobs.techstars.com/companies"


@pytest.fixture
def make_pages(stores):
    pools = []

    def _make(client, *, enrich=True):
        pool = JobPool(4, 8)
        pools.append(pool)
        detail = DetailPageFetcher(client, Selectors(), attempts=2, retry_delay=0) if enrich else None
        return PageFetcher(
            client,
            summaries=stores.summaries,
            items=stores.items,
            pool=pool,
            tally=JobTally(),
            detail=detail,
            search_url="https://api.example/search",
            detail_base_url=BASE,
            hits_per_page=12,
            timeout=10.0,
        )

    yield _make
    for p in pools:
        p.shutdown()


def test_payload_shape(make_pages, fake_client_factory):
    client = fake_client_factory()
    pages = make_pages(client)
    assert pages.fetch_page("Design", 3) is False
    (_industry, _page, payload, timeout) = client.search_calls[0]
    assert payload == {"hitsPerPage": 12, "page": 3, "query": "", "filters": {"job_functions": ["Design"]}}
    assert timeout == 10.0


def test_empty_jobs_array_returns_false_and_dispatches_nothing(make_pages, fake_client_factory, page_resp, stores):
    client = fake_client_factory(pages={("Design", 0): page_resp([])})
    pages = make_pages(client)
    assert pages.fetch_page("Design", 0) is False
    assert pages.tally.count == 0
    assert client.detail_calls == []
    assert stores.items.rows == {}


@pytest.mark.parametrize(
    "scripted",
    [
        requests.ConnectionError("boom"),
        pytest.param("status", id="non-200"),
        pytest.param("empty", id="empty-body"),
        pytest.param("{not json", id="bad-json"),
        pytest.param(json.dumps({"results": {}}), id="missing-jobs"),
        pytest.param(json.dumps({"hits": []}), id="missing-results"),
    ],
)
def test_page_failures_mean_no_more(make_pages, fake_client_factory, fake_response, scripted):
    if isinstance(scripted, Exception):
        resp = scripted
    elif scripted == "status":
        resp = fake_response(503, "oops")
    elif scripted == "empty":
        resp = fake_response(200, "")
    else:
        resp = fake_response(200, scripted)

    pages = make_pages(fake_client_factory(pages={("Design", 0): resp}))
    assert pages.fetch_page("Design", 0) is False
    assert pages.tally.count == 0


def test_page_with_jobs_processes_all_before_returning(
    make_pages, fake_client_factory, page_resp, job_factory, detail_html, stores
):
    jobs = [job_factory(i) for i in range(5)]
    details = {f"{BASE}/acme/jobs/engineer-{i}": detail_html for i in range(5)}
    client = fake_client_factory(pages={("Design", 0): page_resp(jobs, count=120)}, details=details)
    pages = make_pages(client)

    assert pages.fetch_page("Design", 0) is True
    # every task, persistence included, finished before fetch_page returned
    assert pages.tally.count == 5
    assert len(stores.items.rows) == 5
    assert len(stores.summaries.rows) == 5
    summary = stores.summaries.rows[("Design", f"{BASE}/acme/jobs/engineer-0")]
    assert summary.count_jobs == 120
    item = stores.items.rows[f"{BASE}/acme/jobs/engineer-0"]
    assert item.labor_function == "Software Engineering"
    assert item.description == "Build things. Ship them."


def test_bad_job_entry_does_not_abort_siblings(make_pages, fake_client_factory, page_resp, job_factory, stores):
    jobs = [job_factory(1), job_factory(2, slug=""), "not-an-object", job_factory(3, organization=None)]
    client = fake_client_factory(pages={("Legal", 0): page_resp(jobs)})
    pages = make_pages(client, enrich=False)

    assert pages.fetch_page("Legal", 0) is True
    # all four attempted, only the well-formed one persisted
    assert pages.tally.count == 4
    assert list(stores.items.rows) == [f"{BASE}/acme/jobs/engineer-1"]


def test_job_without_description_flag_persists_null_description(
    make_pages, fake_client_factory, page_resp, job_factory, detail_html, stores
):
    job = job_factory(1, has_description=False)
    client = fake_client_factory(
        pages={("IT", 0): page_resp([job])},
        details={f"{BASE}/acme/jobs/engineer-1": detail_html},
    )
    make_pages(client).fetch_page("IT", 0)
    item = stores.items.rows[f"{BASE}/acme/jobs/engineer-1"]
    assert item.description is None
    assert item.labor_function == "Software Engineering"


def test_detail_failure_still_persists_without_enrichment(
    make_pages, fake_client_factory, page_resp, job_factory, stores
):
    client = fake_client_factory(pages={("IT", 0): page_resp([job_factory(1)])})  # every detail GET fails
    pages = make_pages(client)

    assert pages.fetch_page("IT", 0) is True
    assert pages.tally.count == 1
    item = stores.items.rows[f"{BASE}/acme/jobs/engineer-1"]
    assert item.labor_function is None
    assert item.description is None
    assert len(client.detail_calls) == 2


def test_persistence_failure_is_isolated_and_both_writes_attempted(
    make_pages, fake_client_factory, page_resp, job_factory, stores, monkeypatch
):
    errors = []
    monkeypatch.setattr(logging_bridge, "error", errors.append)
    stores.summaries.fail_with = sqlite3.OperationalError("database is locked")

    client = fake_client_factory(pages={("IT", 0): page_resp([job_factory(1), job_factory(2)])})
    pages = make_pages(client, enrich=False)

    assert pages.fetch_page("IT", 0) is True
    assert pages.tally.count == 2
    # item write still happened although the summary write failed
    assert len(stores.items.rows) == 2
    task_errors = [e for e in errors if e.get("op") == "job_task"]
    assert len(task_errors) == 2
    assert "PersistenceError" in task_errors[0]["error"]


def test_millisecond_created_at_still_persists_both_records(make_pages, fake_client_factory, page_resp, job_factory, stores):
    client = fake_client_factory(pages={("Design", 0): page_resp([job_factory(1, created_at=1_700_000_000_000)])})
    pages = make_pages(client, enrich=False)

    assert pages.fetch_page("Design", 0) is True
    item = stores.items.rows[f"{BASE}/acme/jobs/engineer-1"]
    assert item.posted_date is None
    assert len(stores.summaries.rows) == 1


def test_unrepresentable_count_defaults_to_zero(make_pages, fake_client_factory, fake_response, job_factory, stores):
    body = '{"results": {"jobs": [%s], "count": 1e400}}' % json.dumps(job_factory(1))
    pages = make_pages(fake_client_factory(pages={("Design", 0): fake_response(200, body)}), enrich=False)

    assert pages.fetch_page("Design", 0) is True
    (summary,) = stores.summaries.rows.values()
    assert summary.count_jobs == 0
