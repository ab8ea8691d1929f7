"""Fetchers package for discovering Confluence pages via CQL search."""

from .base_fetcher import FetcherError, SearchQueryError, convert_search_results
from .search_fetcher import SearchFetcher

__all__ = [
    'FetcherError',
    'SearchQueryError',
    'SearchFetcher',
    'convert_search_results'
]
