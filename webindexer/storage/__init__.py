"""
In-memory storage for indexed pages.
"""

from .page_index import PageIndex, IndexedPage, DuplicatePageError

__all__ = ['PageIndex', 'IndexedPage', 'DuplicatePageError']
