"""Shared fixtures for the arbor test suite."""

import asyncio
import socket
import threading
import time
from collections.abc import Generator
from contextlib import closing
from pathlib import Path

import pytest
from aiohttp import web

from arbor.config import Settings
from arbor.sitemap import SiteMap
from tests.mock_server import CASES, create_app


@pytest.fixture
def expected_case_count() -> int:
    """The number of cases on the mock docket."""
    return len(CASES)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings exporting JSON into a temporary directory."""
    return Settings(
        workers=2,
        export="json",
        output_file=str(tmp_path / "output.json"),
    )


@pytest.fixture
def docket_sitemap() -> SiteMap:
    """Sitemap that follows docket pagination into every case page."""
    return SiteMap.model_validate(
        {
            "_id": "bug-court",
            "startUrl": [],
            "selectors": [
                {
                    "id": "next",
                    "type": "SelectorLink",
                    "parentSelectors": ["_root", "next"],
                    "selector": "a.next",
                },
                {
                    "id": "case",
                    "type": "SelectorLink",
                    "parentSelectors": ["_root"],
                    "selector": "a.case-link",
                    "multiple": True,
                },
                {
                    "id": "name",
                    "type": "SelectorText",
                    "parentSelectors": ["case"],
                    "selector": "h1",
                },
                {
                    "id": "docket",
                    "type": "SelectorText",
                    "parentSelectors": ["case"],
                    "selector": "span.docket",
                    "regex": "BCC-\\d{4}-\\d{3}",
                },
            ],
        }
    )


# =============================================================================
# aiohttp test server fixtures
# =============================================================================


def find_free_port() -> int:
    """Find a free port on localhost.

    Returns:
        An available port number.
    """
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


class AioHttpTestServer:
    """Wrapper to run aiohttp server in a background thread."""

    def __init__(self, app: web.Application, port: int) -> None:
        self.app = app
        self.port = port
        self.host = "127.0.0.1"
        self._loop: asyncio.AbstractEventLoop | None = None
        self._runner: web.AppRunner | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()

    @property
    def url(self) -> str:
        """Get the base URL of the server."""
        return f"http://{self.host}:{self.port}"

    def start(self) -> None:
        """Start the server in a background thread and wait until it listens."""
        self._thread = threading.Thread(target=self._run_server, daemon=True)
        self._thread.start()
        if not self._started.wait(timeout=5.0):
            raise RuntimeError("Test server did not start")

    def _run_server(self) -> None:
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        async def start() -> None:
            self._runner = web.AppRunner(self.app)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self.host, self.port)
            await site.start()

        self._loop.run_until_complete(start())
        self._started.set()
        self._loop.run_forever()

    def stop(self) -> None:
        """Stop the server and clean up resources."""
        if self._loop and self._runner:
            runner = self._runner
            future = asyncio.run_coroutine_threadsafe(
                runner.cleanup(), self._loop
            )
            future.result(timeout=2.0)

        if self._loop:
            self._loop.call_soon_threadsafe(self._loop.stop)

        if self._thread:
            self._thread.join(timeout=2.0)


@pytest.fixture
def bug_court_server() -> Generator[AioHttpTestServer, None, None]:
    """Start an aiohttp server serving the Bug Court docket.

    Yields:
        AioHttpTestServer instance with the docket app running.
    """
    server = AioHttpTestServer(create_app(), find_free_port())
    server.start()
    # Let the listener settle before the first request
    time.sleep(0.05)
    yield server
    server.stop()


@pytest.fixture
def server_url(bug_court_server: AioHttpTestServer) -> str:
    """Get the base URL of the test server.

    Returns:
        The base URL string (e.g., "http://127.0.0.1:8080").
    """
    return bug_court_server.url
