"""Attachment listing and download for a single exported page."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import requests

from confluence_client import ConfluenceClient
from models import AttachmentRef, ContentItem, FetchResult
from .filename_sanitizer import MAX_NAME_BYTES, sanitize_filename, truncate_utf8


class AttachmentManager:
    """
    Downloads the attachments of one page into its destination directory.

    Attachment titles come from the remote system and are treated like page
    titles: sanitized, then de-duplicated case-insensitively against the names
    already used in the directory (including the rendered document), so an
    attachment can neither escape the directory nor overwrite a sibling.
    """

    def __init__(self, client: ConfluenceClient, logger: Optional[logging.Logger] = None):
        """
        Initialize the attachment manager.

        Args:
            client: ConfluenceClient used for listing and downloading
            logger: Logger instance
        """
        self.client = client
        self.logger = logger or logging.getLogger('confluence_offline_copy.exporters.attachment_manager')

    def list_attachments(self, item: ContentItem) -> FetchResult:
        """
        List the attachments of a content item.

        Args:
            item: Content item

        Returns:
            FetchResult with AttachmentRef items, or the listing failure
        """
        result = self.client.get_attachments(item.attachments_url)
        if not result.ok:
            return result

        attachments = []
        for record in result.items:
            try:
                attachments.append(AttachmentRef.from_api(record))
            except (KeyError, TypeError) as e:
                self.logger.warning(
                    f"Skipping attachment '{record.get('title', '?')}' of '{item.title}' without download link: {e}"
                )

        return FetchResult(items=attachments, pages_fetched=result.pages_fetched)

    @staticmethod
    def unique_name(title: str, used_names: Set[str]) -> str:
        """
        Sanitize an attachment title and make it unique among ``used_names``.

        ``used_names`` holds case-folded names and is updated with the result.

        Args:
            title: Remote attachment title
            used_names: Case-folded names already taken in the directory

        Returns:
            File name to write
        """
        name = sanitize_filename(title)
        if name.casefold() not in used_names:
            used_names.add(name.casefold())
            return name

        path = Path(name)
        suffix = path.suffix
        stem = name[:-len(suffix)] if suffix else name

        counter = 1
        while True:
            marker = f" ({counter}){suffix}"
            budget = MAX_NAME_BYTES - len(marker.encode('utf-8'))
            candidate = sanitize_filename(truncate_utf8(stem, budget) + marker)
            if candidate.casefold() not in used_names:
                used_names.add(candidate.casefold())
                return candidate
            counter += 1

    def download_all(
        self,
        item: ContentItem,
        dest_dir: Path,
        reserved_names: Optional[Set[str]] = None
    ) -> Dict[str, Any]:
        """
        Download every attachment of a page, continuing past individual failures.

        Args:
            item: Content item whose attachments are downloaded
            dest_dir: Existing destination directory
            reserved_names: File names already present (e.g., the rendered document)

        Returns:
            Statistics dictionary with total, downloaded, failed, bytes, saved and error
        """
        stats = {'total': 0, 'downloaded': 0, 'failed': 0, 'bytes': 0, 'saved': [], 'error': None}

        listing = self.list_attachments(item)
        if not listing.ok:
            stats['error'] = f"Attachment listing failed: {listing.error}"
            self.logger.error(f"Could not list attachments of '{item.title}': {listing.error}")
            return stats

        attachments: List[AttachmentRef] = listing.items
        stats['total'] = len(attachments)
        if not attachments:
            self.logger.debug(f"No attachments for '{item.title}'")
            return stats

        self.logger.info(f"Exporting {len(attachments)} attachment(s) of '{item.title}'")
        used_names = {name.casefold() for name in (reserved_names or set())}

        for attachment in attachments:
            file_name = self.unique_name(attachment.title, used_names)
            target_path = Path(dest_dir) / file_name
            if file_name != attachment.title:
                self.logger.debug(f"Attachment '{attachment.title}' saved as '{file_name}'")

            try:
                stats['bytes'] += self.client.download_attachment(attachment.download_url, target_path)
                stats['downloaded'] += 1
                stats['saved'].append(file_name)
            except (requests.exceptions.RequestException, OSError) as e:
                self.logger.error(f"Error downloading attachment '{attachment.title}' of '{item.title}': {e}")
                stats['failed'] += 1

        return stats


__all__ = ['AttachmentManager']
