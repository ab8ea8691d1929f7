"""Export package for the Confluence offline copy pipeline.

Package Structure:
- filename_sanitizer: Turns untrusted titles into safe path segments
- renderer_pool: Headless Chromium sessions and the pool they are checked out from
- page_exporter: Renders one page to PDF next to its attachments
- attachment_manager: Lists, names and downloads page attachments
- retention: Prunes dated snapshot directories past the retention window
"""

from .attachment_manager import AttachmentManager
from .filename_sanitizer import sanitize_filename
from .page_exporter import PageExporter
from .renderer_pool import PlaywrightSessionFactory, RendererPool, RendererPoolExhausted
from .retention import RetentionSweeper, snapshot_dir_name

__all__ = [
    'AttachmentManager',
    'PageExporter',
    'PlaywrightSessionFactory',
    'RendererPool',
    'RendererPoolExhausted',
    'RetentionSweeper',
    'sanitize_filename',
    'snapshot_dir_name'
]
