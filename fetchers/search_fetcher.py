"""Discovery of export targets via CQL search and one-level page tree expansion."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from confluence_client import ConfluenceClient
from exporters.filename_sanitizer import sanitize_filename
from models import ContentItem, ExportTarget
from .base_fetcher import SearchQueryError, convert_search_results

DEFAULT_CHILD_QUERY = 'parent = {id}'


class SearchFetcher:
    """
    Discovers the pages of one source and resolves where each one is written.

    Tagged pages come from a flat CQL search. Tree roots come from a second
    search, and every root is followed by its direct children (one extra
    query per root). Query failures are kept in ``discovery_errors`` so the
    run report can tell a failed query apart from one with no matches.
    """

    def __init__(
        self,
        client: ConfluenceClient,
        snapshot_dir: Path,
        child_query_template: str = DEFAULT_CHILD_QUERY,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the search fetcher.

        Args:
            client: ConfluenceClient used for all queries
            snapshot_dir: Dated snapshot directory that destinations live under
            child_query_template: CQL for the children of a root, formatted with ``id``
            logger: Logger instance
        """
        self.client = client
        self.snapshot_dir = Path(snapshot_dir)
        self.child_query_template = child_query_template
        self.logger = logger or logging.getLogger('confluence_offline_copy.fetcher')
        self.discovery_errors: List[SearchQueryError] = []

    def fetch_items(self, cql: str) -> List[ContentItem]:
        """
        Run one CQL search and convert the results.

        Args:
            cql: CQL search query

        Returns:
            Content items in fetch order; empty when nothing matched or the query failed
        """
        result = self.client.search(cql)
        if not result.ok:
            error = SearchQueryError(cql, result.error)
            self.logger.error(str(error))
            self.discovery_errors.append(error)
            return []

        return convert_search_results(result.items, self.logger)

    def expand_trees(self, roots: Iterable[ContentItem]) -> List[Tuple[ContentItem, Optional[str]]]:
        """
        Expand each root into itself followed by its direct children.

        Only one level is resolved: grandchildren are not followed.

        Args:
            roots: Tree root items, processed in the order supplied

        Returns:
            ``(item, ancestor_title)`` pairs; roots carry ``None``, children their root's title
        """
        expanded = []

        for root in roots:
            expanded.append((root, None))

            children = self.fetch_items(self.child_query_template.format(id=root.id))
            self.logger.info(f"Tree root '{root.title}' has {len(children)} child page(s)")

            for child in children:
                expanded.append((child, root.title))

        return expanded

    def destination_for(self, item: ContentItem, ancestor_title: Optional[str] = None) -> Path:
        """Destination directory: ``snapshot/space/[ancestor/]title`` with sanitized segments."""
        space_dir = self.snapshot_dir / sanitize_filename(item.space_key)
        if ancestor_title is not None:
            return space_dir / sanitize_filename(ancestor_title) / sanitize_filename(item.title)
        return space_dir / sanitize_filename(item.title)

    def build_targets(self, cql_single: str, cql_tree: str) -> List[ExportTarget]:
        """
        Discover every export target of a source.

        Args:
            cql_single: CQL for individually tagged pages
            cql_tree: CQL for page tree roots

        Returns:
            Export targets: tagged pages first, then each root followed by its children
        """
        targets = [
            ExportTarget(item=item, destination=self.destination_for(item))
            for item in self.fetch_items(cql_single)
        ]
        self.logger.info(f"Found {len(targets)} single page(s) for: {cql_single}")

        roots = self.fetch_items(cql_tree)
        self.logger.info(f"Found {len(roots)} tree root(s) for: {cql_tree}")

        for item, ancestor_title in self.expand_trees(roots):
            targets.append(ExportTarget(
                item=item,
                destination=self.destination_for(item, ancestor_title),
                ancestor_title=ancestor_title
            ))

        return targets


__all__ = ['SearchFetcher', 'DEFAULT_CHILD_QUERY']
