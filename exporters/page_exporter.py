"""Export of a single page: rendered PDF plus its attachments."""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from confluence_client import ConfluenceClient
from models import ExportResult, ExportTarget
from .attachment_manager import AttachmentManager
from .filename_sanitizer import MAX_NAME_BYTES, sanitize_filename, truncate_utf8
from .renderer_pool import EXPAND_SCRIPT

PDF_SUFFIX = '.pdf'


class PageExporter:
    """
    Renders one export target to PDF and downloads its attachments.

    ``export_one`` never raises for ordinary failures: the error is logged and
    returned as a failed ``ExportResult`` so sibling tasks are unaffected.
    Blocking HTTP work runs in worker threads to keep the event loop free for
    the other renderer sessions.
    """

    def __init__(
        self,
        client: ConfluenceClient,
        pdf_format: str = 'A2',
        pdf_margin: str = '10px',
        attachment_manager: Optional[AttachmentManager] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the page exporter.

        Args:
            client: ConfluenceClient for URLs, attachment listing and downloads
            pdf_format: Paper format of the rendered document
            pdf_margin: Uniform margin of the rendered document
            attachment_manager: Optional AttachmentManager (created from client if omitted)
            logger: Logger instance
        """
        self.client = client
        self.pdf_format = pdf_format
        self.pdf_margin = pdf_margin
        self.logger = logger or logging.getLogger('confluence_offline_copy.exporters.page_exporter')
        self.attachment_manager = attachment_manager or AttachmentManager(client, logger=self.logger)

    @staticmethod
    def pdf_name(target: ExportTarget) -> str:
        stem = truncate_utf8(sanitize_filename(target.title), MAX_NAME_BYTES - len(PDF_SUFFIX))
        return stem + PDF_SUFFIX

    async def export_one(self, target: ExportTarget, session) -> ExportResult:
        """
        Export one page using a checked-out renderer session.

        Args:
            target: Page and destination directory
            session: Renderer session held exclusively for this call

        Returns:
            ExportResult describing success or the failure cause
        """
        start_time = time.time()
        dest_dir = Path(target.destination)
        result = ExportResult(target=target, success=False)

        self.logger.info(f"Working on page '{target.title}'. Saving to {dest_dir}.")

        try:
            dest_dir.mkdir(parents=True, exist_ok=True)

            pdf_path = dest_dir / self.pdf_name(target)
            await session.navigate(self.client.absolute_url(target.item.url))
            await session.evaluate(EXPAND_SCRIPT)
            await session.print_to_pdf(pdf_path, self.pdf_format, self.pdf_margin)
            result.pdf_path = pdf_path
            self.logger.debug(f"Rendered '{target.title}' -> {pdf_path}")

            stats = await asyncio.to_thread(
                self.attachment_manager.download_all, target.item, dest_dir, {pdf_path.name}
            )
            result.attachments_saved = stats['downloaded']
            result.attachments_failed = stats['failed']

            if stats['error']:
                result.error = stats['error']
            elif stats['failed']:
                result.error = f"{stats['failed']} of {stats['total']} attachment(s) failed"
            else:
                result.success = True

        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            self.logger.error(f"Export of page '{target.title}' failed: {result.error}", exc_info=True)

        result.duration = time.time() - start_time
        if result.success:
            self.logger.info(
                f"Exported '{target.title}' with {result.attachments_saved} attachment(s) "
                f"in {result.duration:.1f}s"
            )
        elif result.pdf_path:
            self.logger.warning(f"Exported '{target.title}' incompletely: {result.error}")

        return result


__all__ = ['PageExporter']
