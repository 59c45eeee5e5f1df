"""Tests for the HTTP fetch backend against the mock docket server."""

import pytest

from arbor.common.document import Document
from arbor.common.exceptions import FetchError
from arbor.common.fetch_backend import (
    BrowserFetchBackend,
    HttpFetchBackend,
    create_fetch_backend,
)
from arbor.config import Settings


class TestHttpFetchBackend:
    """Tests for plain HTTP fetching."""

    @pytest.mark.asyncio
    async def test_fetches_and_parses(self, server_url: str) -> None:
        """A page shall come back parsed and based at its URL."""
        async with HttpFetchBackend() as backend:
            document = await backend.fetch(f"{server_url}/cases/page/1", "")

        assert document.url == f"{server_url}/cases/page/1"
        assert len(document.select("a.case-link")) == 3

    @pytest.mark.asyncio
    async def test_sends_user_agent(self, server_url: str) -> None:
        """A non-empty user agent shall be sent as the User-Agent header."""
        async with HttpFetchBackend() as backend:
            document = await backend.fetch(f"{server_url}/echo", "arbor-test/1.0")

        assert Document.text(document.select("#ua")[0]) == "arbor-test/1.0"

    @pytest.mark.asyncio
    async def test_follows_redirects(self, server_url: str) -> None:
        """Redirects shall be followed and the final URL used as base."""
        async with HttpFetchBackend() as backend:
            document = await backend.fetch(f"{server_url}/redirect", "")

        assert document.url == f"{server_url}/cases/page/1"

    @pytest.mark.asyncio
    async def test_server_error_raises(self, server_url: str) -> None:
        """A 5xx response shall raise FetchError."""
        async with HttpFetchBackend() as backend:
            with pytest.raises(FetchError) as exc_info:
                await backend.fetch(f"{server_url}/error", "")

        assert exc_info.value.url == f"{server_url}/error"
        assert exc_info.value.reason == "HTTP 500"

    @pytest.mark.asyncio
    async def test_xml_declared_page_parses(self, server_url: str) -> None:
        """A page opening with an XML encoding declaration shall parse."""
        async with HttpFetchBackend() as backend:
            document = await backend.fetch(f"{server_url}/notice", "")

        assert Document.text(document.select("h1")[0]) == "Notice of Recess"
        assert Document.text(document.select("p.room")[0]) == "Salle Caf\u00e9"

    @pytest.mark.asyncio
    async def test_not_found_is_still_parsed(self, server_url: str) -> None:
        """A 404 body shall be returned as a document like any other."""
        async with HttpFetchBackend() as backend:
            document = await backend.fetch(f"{server_url}/cases/BCC-0000-000", "")

        assert document.select("a.case-link") == []

    @pytest.mark.asyncio
    async def test_connection_error_raises(self) -> None:
        """An unreachable host shall raise FetchError."""
        async with HttpFetchBackend(timeout=2.0) as backend:
            with pytest.raises(FetchError):
                await backend.fetch("http://127.0.0.1:9/", "")


class TestCreateFetchBackend:
    """Tests for backend selection from settings."""

    @pytest.mark.asyncio
    async def test_plain_http_by_default(self) -> None:
        """Settings without javascript shall select the HTTP backend."""
        backend = create_fetch_backend(
            Settings(proxy=["http://127.0.0.1:3128"], timeout=5.0)
        )
        assert isinstance(backend, HttpFetchBackend)
        assert backend.proxy == "http://127.0.0.1:3128"
        assert backend.timeout == 5.0
        await backend.close()

    def test_javascript_selects_browser(self) -> None:
        """Settings with javascript shall select the rendering backend."""
        backend = create_fetch_backend(
            Settings(javascript=True, timeout=2.5),
            devtools_ws_url="ws://127.0.0.1:9222/devtools/browser/x",
        )
        assert isinstance(backend, BrowserFetchBackend)
        assert backend.devtools_ws_url == "ws://127.0.0.1:9222/devtools/browser/x"
        assert backend.navigation_timeout_ms == 2500
        assert backend.proxy is None
