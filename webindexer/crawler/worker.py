"""
Fetch worker: performs one retrieval per request and reports back.
"""

import asyncio
import logging
from typing import Optional

from .fetcher import WebFetcher
from .messages import FetchFailure, FetchOutcome, FetchReport, FetchSuccess, IndexRequest
from ..utils.logger import get_crawler_logger


class WorkerBusyError(Exception):
    """Raised when a request is dispatched to a worker that already has one."""
    pass


class FetchWorker:
    """
    Fetches URLs on behalf of the coordinator.

    A worker holds at most one request at a time. It never starts work on its
    own; between dispatches it waits idle on its inbox. Each request produces
    exactly one FetchReport on the coordinator mailbox.
    """

    def __init__(self, worker_id: str, fetcher: WebFetcher, mailbox: asyncio.Queue):
        self.worker_id = worker_id
        self.fetcher = fetcher
        self.mailbox = mailbox
        self.logger = get_crawler_logger(__name__, worker_id=worker_id)

        self._inbox: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._task: Optional[asyncio.Task] = None
        self._current: Optional[str] = None
        self.completed = 0

    @property
    def busy(self) -> bool:
        return self._current is not None

    @property
    def current_url(self) -> Optional[str]:
        return self._current

    def start(self):
        """Spawn the worker task."""
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=self.worker_id)
            self.logger.debug("Worker started")

    def stop(self):
        """Cancel the worker task. In-flight work is abandoned."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def dispatch(self, request: IndexRequest):
        """Hand the worker its next request."""
        if self.busy:
            raise WorkerBusyError(
                f"{self.worker_id} is still fetching {self._current}, cannot take {request.url}"
            )
        self._current = request.url
        self._inbox.put_nowait(request)

    async def _run(self):
        while True:
            request = await self._inbox.get()
            outcome = await self.fetch(request.url)
            self._current = None
            self.completed += 1
            await self.mailbox.put(FetchReport(worker=self, outcome=outcome))

    async def fetch(self, url: str) -> FetchOutcome:
        """Fetch one URL, turning every retrieval problem into a FetchFailure."""
        try:
            result = await self.fetcher.fetch(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.log_url_event(logging.ERROR, url, f"Unexpected error fetching {url}: {e}")
            return FetchFailure(url=url, error=f"Unexpected error: {e}")

        if result.error or result.content is None:
            self.logger.log_url_event(logging.INFO, url, f"Failed to fetch {url}: {result.error}")
            return FetchFailure(url=url, error=result.error)

        self.logger.log_url_event(logging.DEBUG, url, f"Fetched {url} in {result.fetch_time:.2f}s")
        return FetchSuccess(url=url, content=result.content)

    def __repr__(self) -> str:
        return f"FetchWorker({self.worker_id!r})"
