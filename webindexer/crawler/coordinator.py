"""
Crawl coordinator: owns the frontier and the page index, dispatches fetch work
to workers and answers keyword queries.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .messages import (
    CoordinatorMessage,
    FetchFailure,
    FetchReport,
    FetchSuccess,
    IndexRequest,
    Query,
    QueryResult,
    StartIndexing,
)
from .url_frontier import URLFrontier
from ..storage.page_index import PageIndex
from ..utils.monitoring import CrawlerMonitor


class CrawlStateError(Exception):
    """Raised when a message is not valid in the coordinator's current state."""
    pass


class CoordinatorState(Enum):
    """Coordinator lifecycle states."""
    UNINITIALIZED = 'uninitialized'
    CRAWLING = 'crawling'
    ANSWERING = 'answering'
    TERMINATED = 'terminated'


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float
    pages_indexed: int = 0
    fetch_failures: int = 0
    links_discovered: int = 0
    queries_answered: int = 0
    errors: int = 0
    total_bytes_indexed: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.pages_indexed / elapsed_minutes if elapsed_minutes > 0 else 0


# Takes a worker id, returns an object with dispatch(IndexRequest), start() and stop()
WorkerFactory = Callable[[str], Any]


class CrawlCoordinator:
    """
    Single-writer owner of the crawl state.

    All mutations of the frontier, the visited set and the index happen in
    ``handle``, which ``run`` calls for one mailbox message at a time. Workers
    and the query session only ever talk to the coordinator through the mailbox.

    Budget: a URL is dispatched only while ``visited + in_flight < max_pages``,
    so the visited set can never grow beyond ``max_pages`` regardless of the
    order in which fetches complete.

    Workers: one worker per seed URL is spawned, capped at ``max_workers``.
    A worker that reports is handed the next frontier URL straight away. If
    none can be dispatched it joins the idle pool, and pooled workers are
    handed URLs discovered later by other workers. Workers are never given
    work that is not in the frontier.
    """

    def __init__(self, worker_factory: WorkerFactory, max_pages: int = 100,
                 max_workers: int = 10, index: Optional[PageIndex] = None,
                 monitor: Optional[CrawlerMonitor] = None, stats_interval: float = 30.0):
        if max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.worker_factory = worker_factory
        self.max_pages = max_pages
        self.max_workers = max_workers
        self.stats_interval = stats_interval
        self.logger = logging.getLogger(__name__)

        self.mailbox: asyncio.Queue = asyncio.Queue()
        self.frontier = URLFrontier()
        self.index = index or PageIndex()
        self.monitor = monitor or CrawlerMonitor()

        self.state = CoordinatorState.UNINITIALIZED
        self.stats = CrawlStats(start_time=time.time())
        self.workers: List[Any] = []
        self.idle_workers: List[Any] = []

        self.crawl_finished = asyncio.Event()
        self.terminated = asyncio.Event()
        self._start_requested = False

    # Message posting

    def start_indexing(self, urls: Iterable[str]):
        """Post the start command. May only be called once."""
        if self._start_requested or self.state is not CoordinatorState.UNINITIALIZED:
            raise CrawlStateError("Indexing has already been started")
        self._start_requested = True
        self.mailbox.put_nowait(StartIndexing(urls=tuple(urls)))

    def submit(self, message: CoordinatorMessage):
        """Post a message to the coordinator mailbox."""
        self.mailbox.put_nowait(message)

    # Mailbox loop

    async def run(self):
        """Process mailbox messages one at a time until terminated."""
        reporter = asyncio.create_task(self._stats_reporter())
        try:
            while self.state is not CoordinatorState.TERMINATED:
                message = await self.mailbox.get()
                try:
                    self.handle(message)
                except Exception as e:
                    self.stats.errors += 1
                    self.logger.error(f"Error handling {type(message).__name__}: {e}",
                                      exc_info=not isinstance(e, CrawlStateError))
        finally:
            reporter.cancel()
            self._stop_workers()

    def handle(self, message: CoordinatorMessage):
        """Apply one message to the crawl state."""
        if isinstance(message, StartIndexing):
            self._handle_start(message)
        elif isinstance(message, FetchReport):
            self._handle_report(message)
        elif isinstance(message, Query):
            self._handle_query(message)
        else:
            raise TypeError(f"Unexpected coordinator message: {message!r}")

    # Start

    def _handle_start(self, message: StartIndexing):
        if self.state is not CoordinatorState.UNINITIALIZED:
            raise CrawlStateError(f"StartIndexing received in state {self.state.value}")

        self.state = CoordinatorState.CRAWLING
        self.stats = CrawlStats(start_time=time.time())

        added_count = self.frontier.add_urls(message.urls)
        self.logger.info(f"Added {added_count} seed URLs to frontier")

        num_workers = min(len(self.frontier), self.max_workers, self.max_pages)
        for i in range(num_workers):
            worker = self.worker_factory(f"worker-{i}")
            self.workers.append(worker)
            worker.start()
            if not self._dispatch_next(worker):
                self.idle_workers.append(worker)

        self.logger.info(f"Started crawling with {num_workers} workers, budget {self.max_pages} pages")
        self._update_monitor()
        self._check_finished()

    # Fetch completion

    def _handle_report(self, report: FetchReport):
        if self.state is CoordinatorState.TERMINATED:
            self.logger.debug(f"Ignoring fetch report after termination: {report.outcome.url}")
            return
        if self.state is CoordinatorState.UNINITIALIZED:
            raise CrawlStateError("FetchReport received before StartIndexing")

        outcome = report.outcome
        url = outcome.url

        if not self.frontier.is_in_flight(url):
            self.logger.warning(f"Ignoring report for URL that is not in flight: {url}")
            return

        self.frontier.mark_visited(url)

        if isinstance(outcome, FetchSuccess):
            self._ingest(url, outcome.content)
        elif isinstance(outcome, FetchFailure):
            self.stats.fetch_failures += 1
            self.monitor.record_fetch_failure(url)
            self.logger.info(f"Fetch failed for {url}: {outcome.error}")
        else:
            raise TypeError(f"Unexpected fetch outcome: {outcome!r}")

        # The reporting worker gets the first pick, then the idle pool
        if not self._dispatch_next(report.worker):
            self.idle_workers.append(report.worker)
            if self.frontier.is_empty() and not self._budget_exhausted():
                self.logger.info(f"Frontier empty, {report.worker!r} is idle")
        self._wake_idle_workers()

        self._update_monitor()
        self._check_finished()

    def _ingest(self, url: str, content: str):
        page = self.index.add_page(url, content)
        content_size = len(content.encode('utf-8'))
        self.stats.pages_indexed += 1
        self.stats.total_bytes_indexed += content_size
        self.monitor.record_page_indexed(url, content_size)

        added_count = self.frontier.add_urls(page.links)
        self.stats.links_discovered += added_count
        self.logger.debug(f"Indexed {url}, queued {added_count} of {len(page.links)} links")

    # Dispatch

    def _budget_exhausted(self) -> bool:
        return self.frontier.visited_count + self.frontier.in_flight_count >= self.max_pages

    def _dispatch_next(self, worker) -> bool:
        """Give the worker the next frontier URL if the budget allows."""
        if self._budget_exhausted() or self.frontier.is_empty():
            return False

        url = self.frontier.pop()
        worker.dispatch(IndexRequest(url=url))
        self.logger.debug(f"Dispatched {url} to {worker!r}")
        return True

    def _wake_idle_workers(self):
        while self.idle_workers and self._dispatch_next(self.idle_workers[0]):
            self.idle_workers.pop(0)

    def _check_finished(self):
        if self.crawl_finished.is_set() or self.frontier.in_flight_count:
            return
        if self.frontier.is_empty() or self._budget_exhausted():
            self.crawl_finished.set()
            self._log_final_stats()

    # Queries

    def _handle_query(self, query: Query):
        if not query.terms:
            self.terminate()
            return

        if self.state is CoordinatorState.TERMINATED:
            self.logger.debug("Ignoring query after termination")
            return

        result = self.answer_query(query.terms)
        if query.reply_to is not None:
            query.reply_to.put_nowait(result)

    def answer_query(self, terms: Sequence[str]) -> QueryResult:
        """Fraction of indexed pages containing every term."""
        previous_state = self.state
        self.state = CoordinatorState.ANSWERING
        try:
            count = len(self.index)
            if count == 0:
                result = QueryResult(0.0, 0)
            else:
                matching = sum(1 for page in self.index.iterate() if self.index.contains_all(page, terms))
                result = QueryResult(matching / count, count)
        finally:
            self.state = previous_state

        self.stats.queries_answered += 1
        self.monitor.record_query(result.fraction_matching)
        self.logger.info(f"Query {list(terms)}: {result.fraction_matching:.3f} of "
                         f"{result.total_indexed_pages} pages")
        return result

    # Termination

    def terminate(self):
        """Stop dispatching, abandon in-flight work and end the run loop."""
        if self.state is CoordinatorState.TERMINATED:
            return
        self.logger.info("Termination requested, stopping coordinator")
        self.state = CoordinatorState.TERMINATED
        self._stop_workers()
        self.terminated.set()

    def _stop_workers(self):
        for worker in self.workers:
            worker.stop()

    # Statistics

    def _update_monitor(self):
        self.monitor.update_frontier(
            len(self.frontier), self.frontier.visited_count, self.frontier.in_flight_count
        )
        self.monitor.update_active_workers(len(self.workers) - len(self.idle_workers))

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        while True:
            await asyncio.sleep(self.stats_interval)
            if self.state is not CoordinatorState.UNINITIALIZED and not self.crawl_finished.is_set():
                self._log_current_stats()

    def _log_current_stats(self):
        self.logger.info(
            f"Crawl Progress: "
            f"Indexed={self.stats.pages_indexed}, "
            f"Failed={self.stats.fetch_failures}, "
            f"Queued={len(self.frontier)}, "
            f"InFlight={self.frontier.in_flight_count}, "
            f"Rate={self.stats.pages_per_minute:.1f} pages/min"
        )

    def _log_final_stats(self):
        frontier_stats = self.frontier.get_stats()

        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Pages indexed: {self.stats.pages_indexed}")
        self.logger.info(f"Fetch failures: {self.stats.fetch_failures}")
        self.logger.info(f"URLs visited: {frontier_stats['total_visited']} (budget {self.max_pages})")
        self.logger.info(f"URLs remaining in frontier: {frontier_stats['total_queued']}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"Index stats: {self.index.get_stats()}")

    def get_stats(self) -> Dict[str, Any]:
        """Get current crawl statistics."""
        return {
            'state': self.state.value,
            'pages_indexed': self.stats.pages_indexed,
            'fetch_failures': self.stats.fetch_failures,
            'links_discovered': self.stats.links_discovered,
            'queries_answered': self.stats.queries_answered,
            'errors': self.stats.errors,
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'workers': len(self.workers),
            'idle_workers': len(self.idle_workers),
            'crawl_finished': self.crawl_finished.is_set(),
            'frontier': self.frontier.get_stats()
        }
