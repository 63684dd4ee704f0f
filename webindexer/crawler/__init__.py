"""
Web crawler core components.
"""

from .parser import ContentParser, ParsedContent, tokenize, split_query_terms
from .messages import (
    StartIndexing, IndexRequest, FetchSuccess, FetchFailure, FetchReport,
    Query, QueryResult
)
from .url_frontier import URLFrontier
from .fetcher import WebFetcher, FetchResult
from .worker import FetchWorker, WorkerBusyError

__all__ = [
    'ContentParser', 'ParsedContent', 'tokenize', 'split_query_terms',
    'StartIndexing', 'IndexRequest', 'FetchSuccess', 'FetchFailure', 'FetchReport',
    'Query', 'QueryResult',
    'URLFrontier',
    'WebFetcher', 'FetchResult',
    'FetchWorker', 'WorkerBusyError'
]
