"""Fetch backends: turn a URL into a parsed Document.

The driver only depends on the :class:`FetchBackend` protocol::

    document = await backend.fetch(url, user_agent)

Two backends are provided:

- :class:`HttpFetchBackend` issues a plain GET with ``httpx.AsyncClient``.
- :class:`BrowserFetchBackend` renders the page in headless Chromium with
  Playwright and parses the rendered ``<body>``. The Selector Evaluator
  can't tell the two apart.

Any failure is reported as :class:`~arbor.common.exceptions.FetchError`;
the driver drops the job. Neither backend retries.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx
from lxml import etree

from arbor.common.document import Document
from arbor.common.exceptions import FetchError

if TYPE_CHECKING:
    from playwright.async_api import Browser, Playwright

    from arbor.config import Settings

logger = logging.getLogger(__name__)


class FetchBackend(Protocol):
    """Anything that can fetch a page for the driver."""

    async def fetch(self, url: str, user_agent: str) -> Document: ...

    async def close(self) -> None: ...


class HttpFetchBackend:
    """Fetches pages with a shared ``httpx.AsyncClient``.

    Example::

        async with HttpFetchBackend(proxy="http://127.0.0.1:3128") as backend:
            document = await backend.fetch("https://example.com/", "")
    """

    def __init__(
        self,
        proxy: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            proxy: Optional proxy URL applied to every request.
            timeout: Request timeout in seconds. None means no timeout.
        """
        self.proxy = proxy
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            proxy=proxy, timeout=timeout, follow_redirects=True
        )

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpFetchBackend:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def fetch(self, url: str, user_agent: str) -> Document:
        """GET ``url`` and parse the body.

        Args:
            url: Absolute URL to fetch.
            user_agent: Sent as the User-Agent header when non-empty.

        Returns:
            The parsed Document, based at the final (post-redirect) URL.

        Raises:
            FetchError: On transport errors, 5xx responses, or markup lxml
                can't parse.
        """
        headers = {"User-Agent": user_agent} if user_agent else None
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise FetchError(url, f"{type(e).__name__}: {e}") from e

        if response.status_code >= 500:
            raise FetchError(url, f"HTTP {response.status_code}")

        try:
            return Document.from_html(
                response.content, str(response.url), encoding=response.encoding
            )
        except (etree.ParserError, ValueError) as e:
            raise FetchError(url, f"unparseable body: {e}") from e


class BrowserFetchBackend:
    """Renders pages with Playwright before parsing them.

    The browser is started lazily on the first fetch and shared by every
    worker; each fetch gets its own browser context so user agent, cookies
    and proxy don't leak between pages. When ``devtools_ws_url`` is given
    the backend attaches to an already running Chromium over CDP instead of
    launching one.
    """

    def __init__(
        self,
        proxy: str | None = None,
        devtools_ws_url: str | None = None,
        headless: bool = True,
        navigation_timeout_ms: float | None = None,
    ) -> None:
        self.proxy = proxy
        self.devtools_ws_url = devtools_ws_url
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._start_lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        async with self._start_lock:
            if self._browser is not None:
                return self._browser

            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            if self.devtools_ws_url:
                logger.info(
                    f"Connecting to browser at {self.devtools_ws_url}"
                )
                self._browser = (
                    await self._playwright.chromium.connect_over_cdp(
                        self.devtools_ws_url
                    )
                )
            else:
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless
                )
            return self._browser

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        try:
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def __aenter__(self) -> BrowserFetchBackend:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def fetch(self, url: str, user_agent: str) -> Document:
        """Navigate to ``url`` and parse the rendered body.

        Raises:
            FetchError: If the browser can't start, navigate, or find a body.
        """
        from playwright.async_api import Error as PlaywrightError

        try:
            browser = await self._ensure_browser()
        except PlaywrightError as e:
            raise FetchError(url, f"browser unavailable: {e}") from e

        context_kwargs: dict[str, Any] = {}
        if user_agent:
            context_kwargs["user_agent"] = user_agent
        if self.proxy:
            context_kwargs["proxy"] = {"server": self.proxy}

        try:
            context = await browser.new_context(**context_kwargs)
        except PlaywrightError as e:
            raise FetchError(url, f"browser context failed: {e}") from e

        try:
            page = await context.new_page()
            if self.navigation_timeout_ms is not None:
                page.set_default_timeout(self.navigation_timeout_ms)
            await page.goto(url, wait_until="domcontentloaded")
            body = await page.inner_html("body")
            final_url = page.url
        except PlaywrightError as e:
            raise FetchError(url, f"{type(e).__name__}: {e}") from e
        finally:
            await context.close()

        try:
            return Document.from_html(body, final_url)
        except (etree.ParserError, ValueError) as e:
            raise FetchError(url, f"unparseable body: {e}") from e


def create_fetch_backend(
    settings: Settings, devtools_ws_url: str | None = None
) -> FetchBackend:
    """Pick the backend the settings ask for.

    Args:
        settings: Run settings. ``javascript`` selects the browser backend;
            only the first proxy is used.
        devtools_ws_url: Optional remote debugger address for the browser
            backend.
    """
    if settings.javascript:
        timeout_ms = (
            settings.timeout * 1000 if settings.timeout is not None else None
        )
        return BrowserFetchBackend(
            proxy=settings.primary_proxy,
            devtools_ws_url=devtools_ws_url,
            navigation_timeout_ms=timeout_ms,
        )
    return HttpFetchBackend(
        proxy=settings.primary_proxy, timeout=settings.timeout
    )
