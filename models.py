"""Data models for the Confluence offline copy pipeline."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger('confluence_offline_copy')

UNKNOWN_SPACE = 'unknown-space'


@dataclass(frozen=True)
class ContentItem:
    """A page record returned by the Confluence search API."""

    id: str
    title: str
    space_key: str
    url: str
    attachments_url: str

    @classmethod
    def from_search_result(cls, record: Dict[str, Any]) -> 'ContentItem':
        """
        Build a content item from one entry of ``/rest/api/search`` results.

        Args:
            record: Raw search result dictionary

        Returns:
            ContentItem instance

        Raises:
            KeyError: If the record has no content id
        """
        content = record.get('content') or {}
        content_id = str(content['id'])
        title = record.get('title') or content.get('title') or content_id

        return cls(
            id=content_id,
            title=title,
            space_key=_space_key_from_content(content),
            url=record.get('url') or content.get('_links', {}).get('webui', ''),
            attachments_url=f'/rest/api/content/{content_id}/child/attachment'
        )


def _space_key_from_content(content: Dict[str, Any]) -> str:
    """Resolve the space key from an expanded space or the ``_expandable`` link."""
    space = content.get('space')
    if isinstance(space, dict) and space.get('key'):
        return space['key']

    space_link = content.get('_expandable', {}).get('space')
    if space_link:
        key = space_link.rstrip('/').split('/')[-1]
        if key:
            return key

    logger.warning(f"No space found for content {content.get('id')}, using '{UNKNOWN_SPACE}'")
    return UNKNOWN_SPACE


@dataclass(frozen=True)
class AttachmentRef:
    """An attachment of one content item."""

    title: str
    download_url: str

    @classmethod
    def from_api(cls, record: Dict[str, Any]) -> 'AttachmentRef':
        """Build from a ``child/attachment`` result record."""
        return cls(
            title=record.get('title', ''),
            download_url=record['_links']['download']
        )


@dataclass(frozen=True)
class ExportTarget:
    """A content item paired with its resolved destination directory."""

    item: ContentItem
    destination: Path
    ancestor_title: Optional[str] = None

    @property
    def title(self) -> str:
        return self.item.title


@dataclass
class FetchResult:
    """Outcome of a paginated query: the accumulated records or the failure cause."""

    items: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    pages_fetched: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: str, pages_fetched: int = 0) -> 'FetchResult':
        """A failed fetch never carries partial data."""
        return cls(items=[], error=error, pages_fetched=pages_fetched)


@dataclass
class ExportResult:
    """Outcome of one export task."""

    target: ExportTarget
    success: bool
    error: Optional[str] = None
    pdf_path: Optional[Path] = None
    attachments_saved: int = 0
    attachments_failed: int = 0
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize result to dictionary."""
        return {
            'title': self.target.title,
            'content_id': self.target.item.id,
            'destination': str(self.target.destination),
            'success': self.success,
            'error': self.error,
            'pdf_path': str(self.pdf_path) if self.pdf_path else None,
            'attachments_saved': self.attachments_saved,
            'attachments_failed': self.attachments_failed,
            'duration': round(self.duration, 3)
        }


@dataclass
class SweepResult:
    """Outcome of a retention sweep over one snapshot root."""

    pruned: List[str] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pruned': list(self.pruned),
            'kept': list(self.kept),
            'skipped': list(self.skipped),
            'errors': list(self.errors)
        }


@dataclass
class SourceConfig:
    """Fully resolved settings for one configured Confluence source."""

    name: str
    base_url: str
    auth_header: str
    cql_single: str = 'label = "offline-copy"'
    cql_tree: str = 'label = "offline-copy-tree"'
    output_dir: str = './output'
    retention_days: float = 10
    concurrency: int = 2
    task_timeout: float = 120.0
    page_size: int = 25
    request_timeout: float = 30.0
    max_retries: int = 3
    retry_backoff_factor: float = 2.0
    verify_ssl: bool = True
    pdf_format: str = 'A2'
    pdf_margin: str = '10px'
    progress_bars: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize config to dictionary using the configuration file's keys."""
        return {
            'NAME': self.name,
            'BASE_URL': self.base_url,
            'AUTH_HEADER': self.auth_header,
            'CQL_SINGLE': self.cql_single,
            'CQL_TREE': self.cql_tree,
            'OUTPUT_DIR': self.output_dir,
            'RETENTION_DAYS': self.retention_days,
            'CONCURRENCY': self.concurrency,
            'TASK_TIMEOUT': self.task_timeout,
            'PAGE_SIZE': self.page_size,
            'REQUEST_TIMEOUT': self.request_timeout,
            'MAX_RETRIES': self.max_retries,
            'RETRY_BACKOFF_FACTOR': self.retry_backoff_factor,
            'VERIFY_SSL': self.verify_ssl,
            'PDF_FORMAT': self.pdf_format,
            'PDF_MARGIN': self.pdf_margin,
            'PROGRESS_BARS': self.progress_bars
        }


__all__ = [
    'AttachmentRef',
    'ContentItem',
    'ExportResult',
    'ExportTarget',
    'FetchResult',
    'SourceConfig',
    'SweepResult',
    'UNKNOWN_SPACE'
]
