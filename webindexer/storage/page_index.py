"""
In-memory page index answering term containment checks.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from ..crawler.parser import ContentParser


class DuplicatePageError(Exception):
    """Raised when a URL is indexed more than once."""
    pass


@dataclass(frozen=True)
class IndexedPage:
    """A successfully fetched page and the data derived from it."""
    url: str
    content: str = field(repr=False)
    terms: FrozenSet[str] = field(default_factory=frozenset, repr=False)
    links: Tuple[str, ...] = ()
    title: Optional[str] = None

    def contains_all(self, terms: Iterable[str]) -> bool:
        """True if every term appears in the page (case-insensitive, exact token)."""
        return all(term.lower() in self.terms for term in terms)


class PageIndex:
    """
    Stores indexed pages in insertion order.

    Pages are immutable once added and live for the lifetime of the index.
    """

    def __init__(self, parser: Optional[ContentParser] = None):
        self.parser = parser or ContentParser()
        self.logger = logging.getLogger(__name__)

        self._pages: List[IndexedPage] = []
        self._by_url: Dict[str, IndexedPage] = {}
        self.stats = {
            'total_pages': 0,
            'total_content_bytes': 0
        }

    def add_page(self, url: str, content: str) -> IndexedPage:
        """
        Parse and store a page.

        Args:
            url: The page URL
            content: Raw page content

        Returns:
            The stored IndexedPage, carrying its terms and outbound links

        Raises:
            DuplicatePageError: if the URL is already indexed
        """
        if url in self._by_url:
            raise DuplicatePageError(f"Page already indexed: {url}")

        parsed = self.parser.parse(url, content)
        page = IndexedPage(
            url=url,
            content=content,
            terms=frozenset(parsed.terms),
            links=tuple(parsed.links),
            title=parsed.title
        )

        self._pages.append(page)
        self._by_url[url] = page
        self.stats['total_pages'] += 1
        self.stats['total_content_bytes'] += len(content.encode('utf-8'))

        self.logger.debug(f"Indexed {url}: {len(page.terms)} terms, {len(page.links)} links")
        return page

    @staticmethod
    def contains_all(page: IndexedPage, terms: Iterable[str]) -> bool:
        return page.contains_all(terms)

    def iterate(self) -> Iterator[IndexedPage]:
        """Lazily yield stored pages in insertion order. Each call starts over."""
        for page in self._pages:
            yield page

    def get(self, url: str) -> Optional[IndexedPage]:
        return self._by_url.get(url)

    def __iter__(self) -> Iterator[IndexedPage]:
        return self.iterate()

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, url: object) -> bool:
        return url in self._by_url

    def get_stats(self) -> Dict[str, int]:
        """Get index statistics."""
        distinct_terms = set()
        for page in self._pages:
            distinct_terms.update(page.terms)
        return {
            'total_pages': self.stats['total_pages'],
            'distinct_terms': len(distinct_terms),
            'total_content_bytes': self.stats['total_content_bytes']
        }
