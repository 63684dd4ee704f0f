"""
URL frontier tracking pending, in-flight and visited URLs.
"""

import logging
from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

from .parser import normalize_url


class URLFrontier:
    """
    Manages URLs to be crawled.

    Every known URL is in exactly one of three states: pending (the frontier
    proper), in flight (dispatched to a worker) or visited (fetch completed,
    successfully or not). A URL is never enqueued twice.

    ``pop`` hands out the oldest pending URL. The order is a property of this
    implementation, not a breadth-first guarantee.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

        # dict keeps insertion order, values unused
        self._pending: Dict[str, None] = {}
        self._in_flight: Set[str] = set()
        self._visited: Set[str] = set()

        self.stats = {
            'total_added': 0,
            'total_rejected': 0
        }

    def add_url(self, url: str) -> bool:
        """
        Add a URL to the frontier, normalized the same way as extracted links.
        Returns True if URL was added, False if it is already known.
        """
        url = url.strip() if url else url
        if not url:
            return False

        url = normalize_url(url)
        if url in self:
            self.stats['total_rejected'] += 1
            return False

        self._pending[url] = None
        self.stats['total_added'] += 1
        self.logger.debug(f"Added URL to frontier: {url}")
        return True

    def add_urls(self, urls: Iterable[str]) -> int:
        """Add multiple URLs to the frontier. Returns count of added URLs."""
        added_count = 0
        for url in urls:
            if self.add_url(url):
                added_count += 1
        return added_count

    def pop(self) -> Optional[str]:
        """
        Take the next pending URL and mark it in flight.
        Returns None if the frontier is empty.
        """
        if not self._pending:
            return None

        url = next(iter(self._pending))
        del self._pending[url]
        self._in_flight.add(url)

        self.logger.debug(f"Retrieved URL from frontier: {url}")
        return url

    def mark_visited(self, url: str):
        """Mark an in-flight URL as visited."""
        self._in_flight.remove(url)
        self._visited.add(url)
        self.logger.debug(f"Marked URL as visited: {url}")

    def is_in_flight(self, url: str) -> bool:
        return url in self._in_flight

    def is_visited(self, url: str) -> bool:
        return url in self._visited

    def is_empty(self) -> bool:
        """Check if no URLs are pending."""
        return not self._pending

    @property
    def visited_count(self) -> int:
        return len(self._visited)

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def pending_urls(self) -> Tuple[str, ...]:
        """Snapshot of pending URLs, oldest first."""
        return tuple(self._pending)

    def visited_urls(self) -> FrozenSet[str]:
        """Snapshot of visited URLs."""
        return frozenset(self._visited)

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, url: object) -> bool:
        return url in self._pending or url in self._in_flight or url in self._visited

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': len(self._pending),
            'in_flight': len(self._in_flight),
            'total_visited': len(self._visited),
            'total_added': self.stats['total_added'],
            'total_rejected': self.stats['total_rejected']
        }
