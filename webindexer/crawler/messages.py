"""
Messages exchanged between the coordinator, fetch workers and the query session.

Workers receive IndexRequest and answer with FetchReport; the session sends
Query and receives QueryResult. Components never share mutable state.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union


@dataclass(frozen=True)
class StartIndexing:
    """Seeds the crawl. Accepted once per coordinator."""
    urls: Tuple[str, ...]


@dataclass(frozen=True)
class IndexRequest:
    """Asks a worker to fetch a single URL."""
    url: str


@dataclass(frozen=True)
class FetchSuccess:
    """A fetched page with its text content."""
    url: str
    content: str = field(repr=False)


@dataclass(frozen=True)
class FetchFailure:
    """A fetch that produced no usable page."""
    url: str
    error: Optional[str] = None


FetchOutcome = Union[FetchSuccess, FetchFailure]


@dataclass(frozen=True)
class FetchReport:
    """Sent by a worker exactly once per dispatched request."""
    worker: Any
    outcome: FetchOutcome


@dataclass(frozen=True)
class QueryResult:
    """Aggregate answer to a keyword query."""
    fraction_matching: float
    total_indexed_pages: int

    @property
    def percentage(self) -> float:
        return self.fraction_matching * 100.0


@dataclass(frozen=True)
class Query:
    """
    Keyword query from the session.

    An empty ``terms`` tuple ends the session and terminates the coordinator.
    """
    terms: Tuple[str, ...]
    reply_to: Optional[asyncio.Queue] = field(default=None, compare=False)


CoordinatorMessage = Union[StartIndexing, FetchReport, Query]
