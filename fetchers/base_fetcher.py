"""Common fetcher exceptions and record conversion helpers."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from models import ContentItem


class FetcherError(Exception):
    """Base exception for fetcher-related errors."""
    pass


class SearchQueryError(FetcherError):
    """A search or listing query failed; the cause is kept for reporting."""

    def __init__(self, query: str, cause: str):
        super().__init__(f"Query '{query}' failed: {cause}")
        self.query = query
        self.cause = cause


def convert_search_results(
    records: Iterable[Dict[str, Any]],
    logger: Optional[logging.Logger] = None
) -> List[ContentItem]:
    """
    Convert raw search records to content items, skipping malformed records.

    Args:
        records: Raw ``/rest/api/search`` result records
        logger: Logger instance

    Returns:
        Content items in input order
    """
    logger = logger or logging.getLogger('confluence_offline_copy.fetcher')
    items = []

    for record in records:
        try:
            items.append(ContentItem.from_search_result(record))
        except (KeyError, TypeError) as e:
            logger.warning(f"Skipping malformed search result '{record.get('title', '?')}': {e}")

    return items


__all__ = ['FetcherError', 'SearchQueryError', 'convert_search_results']
