# job_harvest/http_client.py
from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)


class HttpClient:
    """
    Shared HTTP client for the harvest (one Session, used from many worker threads).

    Transport-level retries are off by default: the harvest owns its retry policy
    (detail pages retry in DetailPageFetcher; search pages do not retry at all).
    """

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "JobHarvest/0.1 (+https://example.invalid)",
        *,
        max_retries: int = 0,
        pool_maxsize: int = 20,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=max_retries,
            backoff_factor=0.5,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "POST", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=pool_maxsize)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def get_text(
        self,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> str:
        """GET and return decoded text. Raises requests.RequestException on transport or HTTP errors."""
        resp = self.session.get(url, headers=headers, timeout=timeout or self.timeout, **kwargs)
        resp.raise_for_status()
        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def post_json(
        self,
        url: str,
        payload: Any,
        *,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """
        POST a JSON body and return the raw response WITHOUT raising on status;
        callers decide what a non-200 means.
        """
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        return self.session.post(url, json=payload, headers=headers, timeout=timeout or self.timeout, **kwargs)

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)
