"""Top-level entry point for a scrape run."""

from __future__ import annotations

import logging

from arbor.common.fetch_backend import FetchBackend, create_fetch_backend
from arbor.config import Settings
from arbor.driver.orchestrator import Orchestrator, ScrapeContext
from arbor.export import ExportSink, create_export_sink
from arbor.sitemap import SiteMap

logger = logging.getLogger(__name__)


async def run_scrape(
    settings: Settings,
    sitemap: SiteMap,
    backend: FetchBackend | None = None,
    devtools_ws_url: str | None = None,
) -> ExportSink:
    """Run a complete scrape and export the root records.

    The export sink is created and truncated before any page is fetched, so
    an unsupported format or an unwritable output file stops the run with
    no network traffic.

    Args:
        settings: Run settings.
        sitemap: Seed URLs and selector tree.
        backend: Fetch backend to use. When omitted one is built from the
            settings and closed when the run ends.
        devtools_ws_url: Remote browser address for the rendering backend.

    Returns:
        The export sink the records were written to.

    Raises:
        UnsupportedExportFormatError: If ``settings.export`` has no sink.
        ExportSinkError: If the export file can't be written.
    """
    sink = create_export_sink(settings.export, settings.output_file)
    sink.reset()

    owns_backend = backend is None
    if backend is None:
        backend = create_fetch_backend(settings, devtools_ws_url)

    context = ScrapeContext.create(settings, backend, sink)
    logger.info(
        f"Scraping sitemap '{sitemap.id}' into {sink.path} "
        f"({settings.export_format})"
    )
    try:
        await Orchestrator(context, sitemap).run()
    finally:
        if owns_backend:
            await backend.close()

    logger.info(f"Scrape of '{sitemap.id}' complete")
    return sink
