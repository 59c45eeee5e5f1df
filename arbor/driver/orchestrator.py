"""Scrape orchestrator.

One :class:`Orchestrator` runs one scope of the selector tree: the root
scope over the sitemap's seed URLs, or a nested scope over the links a
Link selector found. Each run owns:

- a feeder task that expands the scope's seed list into jobs;
- ``settings.workers`` worker tasks that fetch pages and evaluate the
  scope's selectors;
- one aggregator task that consumes finished records.

The three communicate only through two bounded queues sized to the worker
count. At the root the aggregator hands each record to the export sink; in
a nested scope it collects them and :meth:`Orchestrator.run` returns the
map, which becomes the value of the Link field that started it.

Example::

    context = ScrapeContext.create(settings, backend, sink)
    await Orchestrator(context, sitemap).run()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from arbor.common.document import Document
from arbor.common.exceptions import FetchError
from arbor.common.fetch_backend import FetchBackend
from arbor.common.url_expander import SeedList, is_valid_url
from arbor.config import Settings
from arbor.evaluator import ExtractionRecord, SelectorEvaluator
from arbor.export import ExportSink
from arbor.sitemap import ROOT_PARENT, SiteMap

logger = logging.getLogger(__name__)


@dataclass
class ScrapeContext:
    """Everything a run needs besides the sitemap, shared by every scope.

    Attributes:
        settings: Run settings.
        backend: Fetch backend used by every worker at every level.
        sink: Export sink written by the root aggregator.
        fetch_budget: Optional semaphore bounding concurrent fetches across
            all scopes. Held only for the duration of a fetch.
    """

    settings: Settings
    backend: FetchBackend
    sink: ExportSink
    fetch_budget: asyncio.Semaphore | None = None

    @classmethod
    def create(
        cls, settings: Settings, backend: FetchBackend, sink: ExportSink
    ) -> ScrapeContext:
        budget = (
            asyncio.Semaphore(settings.max_concurrent_fetches)
            if settings.max_concurrent_fetches is not None
            else None
        )
        return cls(
            settings=settings, backend=backend, sink=sink, fetch_budget=budget
        )

    @property
    def user_agent(self) -> str:
        return self.settings.primary_user_agent


@dataclass
class ScrapeJob:
    """One page to fetch and evaluate in a scope."""

    url: str
    parent_id: str
    record: ExtractionRecord = field(default_factory=dict)


class Orchestrator:
    """Runs the feeder, worker pool and aggregator for one scope.

    Args:
        context: Shared run context.
        sitemap: The scope's sitemap. Its ``start_urls`` seed the run.
        parent_id: Which selectors to evaluate on fetched pages: those whose
            first parent is this id. ``"_root"`` makes this the root run.
    """

    def __init__(
        self,
        context: ScrapeContext,
        sitemap: SiteMap,
        parent_id: str = ROOT_PARENT,
    ) -> None:
        self.context = context
        self.sitemap = sitemap
        self.parent_id = parent_id
        self.num_workers = context.settings.workers

        self.seeds = SeedList(sitemap.start_urls)
        self.evaluator = SelectorEvaluator(sitemap, self.seeds, self._run_nested)

        self.job_queue: asyncio.Queue[ScrapeJob | None] = asyncio.Queue(
            maxsize=self.num_workers
        )
        self.result_queue: asyncio.Queue[ScrapeJob | None] = asyncio.Queue(
            maxsize=self.num_workers
        )
        self.results: dict[str, ExtractionRecord] = {}

        self.fetched = 0
        self.dropped = 0

    @property
    def is_root(self) -> bool:
        return self.parent_id == ROOT_PARENT

    async def run(self) -> dict[str, ExtractionRecord]:
        """Scrape the scope to completion.

        Returns:
            URL -> record for every page that produced a non-empty record.
            Always empty at the root, where records go to the export sink.

        Raises:
            ExportSinkError: If the root sink fails. Any exception from a
                task cancels the other tasks and is re-raised here.
        """
        logger.info(
            f"Starting scope '{self.parent_id}' with {len(self.seeds)} seed "
            f"pattern(s) and {self.num_workers} worker(s)"
        )

        feeder = asyncio.create_task(self._feed())
        workers = [
            asyncio.create_task(self._worker(i))
            for i in range(self.num_workers)
        ]
        aggregator = asyncio.create_task(self._aggregate())
        drain = asyncio.create_task(self._drain(feeder, workers))
        tasks = [feeder, *workers, aggregator, drain]

        try:
            await asyncio.gather(drain, aggregator)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        logger.info(
            f"Finished scope '{self.parent_id}': {self.fetched} fetched, "
            f"{self.dropped} dropped, {len(self.seeds)} seed pattern(s)"
        )
        return self.results

    async def _drain(
        self, feeder: asyncio.Task[None], workers: list[asyncio.Task[None]]
    ) -> None:
        # Close the result stream once every worker has exited
        await asyncio.gather(feeder, *workers)
        await self.result_queue.put(None)

    async def _feed(self) -> None:
        """Turn seed patterns into jobs until the scope runs dry."""
        async for url in self.seeds.expand():
            if not is_valid_url(url):
                logger.warning(f"Skipping invalid URL {url!r}")
                continue
            # Counted before it is queued so the seed list can't look idle
            await self.seeds.job_started()
            await self.job_queue.put(ScrapeJob(url, self.parent_id))

        for _ in range(self.num_workers):
            await self.job_queue.put(None)

    async def _worker(self, worker_id: int) -> None:
        """Process jobs until the feeder's stop sentinel arrives.

        Args:
            worker_id: Identifier for this worker (for debugging).
        """
        while True:
            job = await self.job_queue.get()
            if job is None:
                logger.debug(f"Worker {worker_id} in '{self.parent_id}' done")
                return
            try:
                await self._process(job)
            finally:
                await self.seeds.job_finished()

    async def _process(self, job: ScrapeJob) -> None:
        try:
            document = await self._fetch(job.url)
        except FetchError as e:
            self.dropped += 1
            logger.warning(f"Dropping {job.url}: {e.reason}")
            return

        self.fetched += 1
        job.record = await self.evaluator.evaluate_scope(document, job.parent_id)
        if not job.record:
            logger.debug(f"No data extracted from {job.url}")
            return
        await self.result_queue.put(job)

    async def _fetch(self, url: str) -> Document:
        budget = self.context.fetch_budget
        if budget is None:
            return await self.context.backend.fetch(url, self.context.user_agent)
        async with budget:
            return await self.context.backend.fetch(url, self.context.user_agent)

    async def _aggregate(self) -> None:
        """Consume finished jobs until the drain sentinel arrives."""
        while True:
            job = await self.result_queue.get()
            if job is None:
                return
            if self.is_root:
                self.context.sink.write(job.url, job.record)
                logger.info(f"Exported {job.url}")
            else:
                self.results[job.url] = job.record

    async def _run_nested(
        self, sitemap: SiteMap, parent_id: str
    ) -> dict[str, ExtractionRecord]:
        return await Orchestrator(self.context, sitemap, parent_id).run()
