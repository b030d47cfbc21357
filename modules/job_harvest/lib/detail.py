# job_harvest/detail.py
"""
DetailPageFetcher: GET a job's detail page (bounded retry) and extract the
labor function and description with the configured selector strategy.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import requests
from bs4 import BeautifulSoup

from .config import Selectors
from .http_client import HttpClient
from .models import DetailFields

log = logging.getLogger(__name__)


class DetailPageFetcher:
    """
    Policy:
      - up to `attempts` GETs (default 2: one try plus one retry)
      - `retry_delay` seconds of sleep between attempts, none after the last
      - any requests.RequestException (timeout, connection, HTTP status) counts as a failed attempt
      - all attempts failed -> fetch_detail() returns None; the caller skips enrichment
    """

    def __init__(
        self,
        client: HttpClient,
        selectors: Selectors | None = None,
        *,
        timeout: float = 15.0,
        attempts: int = 2,
        retry_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self.selectors = selectors or Selectors()
        self.timeout = float(timeout)
        self.attempts = max(int(attempts), 1)
        self.retry_delay = float(retry_delay)
        self._sleep = sleep

    def fetch_detail(self, url: str) -> BeautifulSoup | None:
        for attempt in range(1, self.attempts + 1):
            try:
                html = self._client.get_text(url, timeout=self.timeout)
                return BeautifulSoup(html, "html5lib")
            except requests.RequestException as e:
                log.debug("detail GET failed (%d/%d) %s: %r", attempt, self.attempts, url, e)
                if attempt < self.attempts and self.retry_delay > 0:
                    self._sleep(self.retry_delay)

        log.warning("detail page unavailable after %d attempt(s): %s", self.attempts, url)
        return None

    def extract(self, doc: BeautifulSoup, *, industry: str, want_description: bool) -> DetailFields:
        """
        labor_function: text of the node at selectors.labor_function_index, else the industry.
        description: first description node's text, only when the record flags one;
                     empty or missing -> None (never "").
        """
        sel = self.selectors

        nodes = doc.select(sel.labor_function)
        if len(nodes) > sel.labor_function_index:
            labor_function = _text(nodes[sel.labor_function_index]) or industry
        else:
            labor_function = industry

        description = None
        if want_description:
            node = doc.select_one(sel.description)
            if node is not None:
                description = _text(node) or None
            else:
                log.debug("description node not found (industry=%s)", industry)

        return DetailFields(labor_function=labor_function, description=description)

    def fetch(self, url: str, *, industry: str, want_description: bool) -> DetailFields | None:
        doc = self.fetch_detail(url)
        if doc is None:
            return None
        return self.extract(doc, industry=industry, want_description=want_description)


def _text(node) -> str:
    # Collapse runs of whitespace the way a browser renders text
    return " ".join(node.get_text(" ").split())
