"""
Interactive query session: prompts for keywords and prints match statistics.
"""

import asyncio
import logging
import threading
from typing import Callable

from .crawler.messages import Query, QueryResult
from .crawler.parser import split_query_terms


DEFAULT_PROMPT = "Enter a query: "


def format_result(result: QueryResult) -> str:
    return f"{result.percentage}% of {result.total_indexed_pages} total pages matched."


class QuerySession:
    """
    Request/response loop driven by the coordinator's replies.

    Every QueryResult received prints a summary line (when any page is
    indexed) and triggers the next prompt. Empty input sends an empty query,
    which ends the session and the coordinator.
    """

    def __init__(self, mailbox: asyncio.Queue, input_func: Callable[[str], str] = input,
                 output_func: Callable[[str], None] = print, prompt: str = DEFAULT_PROMPT):
        self.mailbox = mailbox
        self.input_func = input_func
        self.output_func = output_func
        self.prompt = prompt
        self.logger = logging.getLogger(__name__)

        self.inbox: asyncio.Queue = asyncio.Queue()
        self.queries_sent = 0

    async def run(self):
        """Prime the loop with an empty result and serve queries until empty input."""
        self.inbox.put_nowait(QueryResult(0.0, 0))

        while True:
            result = await self.inbox.get()
            if result.total_indexed_pages > 0:
                self.output_func(format_result(result))

            line = await self._read_line()
            terms = split_query_terms(line)

            self.mailbox.put_nowait(Query(terms=terms, reply_to=self.inbox))
            self.queries_sent += 1

            if not terms:
                self.logger.info("Empty query entered, ending session")
                return

    async def _read_line(self) -> str:
        """
        Read one line of input without blocking the event loop.

        The read runs in a daemon thread so a pending prompt never holds up
        process exit.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def deliver(line, error):
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(line)

        def read():
            line, error = '', None
            try:
                line = self.input_func(self.prompt)
            except EOFError:
                pass
            except Exception as e:
                error = e
            try:
                loop.call_soon_threadsafe(deliver, line, error)
            except RuntimeError:
                # Event loop already closed during shutdown
                pass

        threading.Thread(target=read, name='query-prompt', daemon=True).start()
        return await future
