# tests/test_detail.py
import requests
from bs4 import BeautifulSoup

from modules.job_harvest.lib.config import Selectors
from modules.job_harvest.lib.detail import DetailPageFetcher

URL = "https://jobs.techstars.com/companies/acme/jobs/engineer-1"


def _fetcher(client, sleeps, **kw):
    return DetailPageFetcher(client, Selectors(), timeout=15.0, attempts=2, retry_delay=2.0, sleep=sleeps.append, **kw)


def test_fetch_extracts_labor_function_and_description(fake_client_factory, detail_html):
    client = fake_client_factory(details={URL: detail_html})
    sleeps = []
    fields = _fetcher(client, sleeps).fetch(URL, industry="IT", want_description=True)

    assert fields.labor_function == "Software Engineering"
    assert fields.description == "Build things. Ship them."
    assert sleeps == []
    assert client.detail_calls == [(URL, 15.0)]


def test_description_skipped_when_not_flagged(fake_client_factory, detail_html):
    client = fake_client_factory(details={URL: detail_html})
    fields = _fetcher(client, []).fetch(URL, industry="IT", want_description=False)
    assert fields.description is None
    assert fields.labor_function == "Software Engineering"


def test_labor_function_falls_back_to_industry():
    doc = BeautifulSoup('<div class="sc-beqWaB bpXRKw">only one</div>', "html5lib")
    fields = DetailPageFetcher(client=None).extract(doc, industry="Legal", want_description=True)
    assert fields.labor_function == "Legal"
    # flagged but missing node -> absent, never ""
    assert fields.description is None


def test_empty_description_node_is_absent():
    html = '<div class="sc-beqWaB bpXRKw">a</div><div class="sc-beqWaB bpXRKw">b</div><div class="sc-beqWaB fmCCHr">  </div>'
    fields = DetailPageFetcher(client=None).extract(BeautifulSoup(html, "html5lib"), industry="X", want_description=True)
    assert fields.labor_function == "b"
    assert fields.description is None


def test_retry_once_then_succeed(fake_client_factory, detail_html):
    client = fake_client_factory(details={URL: [requests.Timeout("slow"), detail_html]})
    sleeps = []
    fields = _fetcher(client, sleeps).fetch(URL, industry="IT", want_description=True)

    assert fields is not None
    assert len(client.detail_calls) == 2
    assert sleeps == [2.0]


def test_two_failures_give_up_without_raising(fake_client_factory):
    client = fake_client_factory(details={URL: requests.ConnectionError("down")})
    sleeps = []
    assert _fetcher(client, sleeps).fetch(URL, industry="IT", want_description=True) is None
    # exactly two attempts, one sleep between them and none after the last
    assert len(client.detail_calls) == 2
    assert sleeps == [2.0]


def test_http_error_status_counts_as_failed_attempt(fake_client_factory):
    client = fake_client_factory(details={URL: requests.HTTPError("503 Server Error")})
    assert _fetcher(client, []).fetch_detail(URL) is None
    assert len(client.detail_calls) == 2


def test_custom_selectors():
    html = '<section class="role">Data</section><article class="desc">Text</article>'
    sel = Selectors(labor_function="section.role", labor_function_index=0, description="article.desc")
    fields = DetailPageFetcher(client=None, selectors=sel).extract(
        BeautifulSoup(html, "html5lib"), industry="X", want_description=True
    )
    assert fields.labor_function == "Data"
    assert fields.description == "Text"
