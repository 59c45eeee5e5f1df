"""Test utilities for driver and evaluator tests.

This module provides an in-memory fetch backend so orchestration can be
tested without a network, plus small builders for documents and sitemaps.
"""

import asyncio
import logging
from typing import Any

from arbor.common.document import Document
from arbor.common.exceptions import FetchError
from arbor.sitemap import Selector, SiteMap

logger = logging.getLogger(__name__)


class StubFetchBackend:
    """Fetch backend serving pages from a dict of URL -> HTML.

    Unknown URLs raise FetchError. Every call is recorded, and the highest
    number of fetches running at once is tracked.

    Example:
        backend = StubFetchBackend({"https://x/": "<p>hi</p>"})
        document = await backend.fetch("https://x/", "")
        assert backend.calls == [("https://x/", "")]
    """

    def __init__(self, pages: dict[str, str], delay: float = 0.0) -> None:
        self.pages = pages
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    @property
    def fetched_urls(self) -> list[str]:
        return [url for url, _ in self.calls]

    async def fetch(self, url: str, user_agent: str) -> Document:
        self.calls.append((url, user_agent))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if url not in self.pages:
                raise FetchError(url, "HTTP 404")
            return Document.from_html(self.pages[url], url)
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True


class FailingSink:
    """Export sink whose every write fails."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.writes = 0

    def reset(self) -> None:
        pass

    def write(self, key: str, record: dict[str, Any]) -> None:
        self.writes += 1
        raise self.error


class MemorySink:
    """Export sink that keeps records in a dict."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}

    def reset(self) -> None:
        self.records.clear()

    def write(self, key: str, record: dict[str, Any]) -> None:
        self.records[key] = record


def make_document(body: str, url: str = "https://example.com/") -> Document:
    """Parse an HTML body fragment into a Document."""
    return Document.from_html(f"<html><body>{body}</body></html>", url)


def make_selector(**fields: Any) -> Selector:
    """Build a selector from keyword fields, defaulting the parent to _root."""
    fields.setdefault("parentSelectors", ["_root"])
    return Selector.model_validate(fields)


def make_sitemap(start_urls: list[str], *selectors: dict[str, Any]) -> SiteMap:
    """Build a sitemap from start URLs and raw selector dicts."""
    return SiteMap.model_validate(
        {"_id": "test", "startUrl": start_urls, "selectors": list(selectors)}
    )
