from __future__ import annotations

import logging

from . import logging_bridge
from .pages import PageFetcher

log = logging.getLogger(__name__)


class IndustryWalker:
    """Walks one industry's search pages sequentially, starting at page 0."""

    def __init__(self, pages: PageFetcher) -> None:
        self._pages = pages

    def walk(self, industry: str) -> int:
        """
        Fetch pages 0, 1, 2, ... until one reports no more results.

        Any exception escaping a page ends this industry's walk only; it is logged
        and the walk returns normally. Returns the number of pages that held jobs.
        """
        page = 0
        while True:
            try:
                has_more = self._pages.fetch_page(industry, page)
            except Exception as e:
                log.exception("page %d of %s failed; stopping this industry", page, industry)
                logging_bridge.error({
                    "component": "job_harvest.walker",
                    "op": "walk",
                    "industry": industry,
                    "page": page,
                    "error": repr(e),
                })
                has_more = False
            if not has_more:
                break
            page += 1

        log.info("%s: walked %d page(s)", industry, page)
        return page
