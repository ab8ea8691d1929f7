"""Tests for single-page export: rendering, attachments and failure reporting."""

import asyncio
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from exporters.page_exporter import PageExporter
from exporters.renderer_pool import EXPAND_SCRIPT
from models import ContentItem, ExportTarget


class RecordingSession:

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []

    async def navigate(self, url):
        self.calls.append(('navigate', url))
        if self.fail_on == 'navigate':
            raise RuntimeError('net::ERR_NAME_NOT_RESOLVED')

    async def evaluate(self, script):
        self.calls.append(('evaluate', script))

    async def print_to_pdf(self, path, pdf_format='A2', margin='10px'):
        self.calls.append(('pdf', Path(path).name, pdf_format, margin))
        Path(path).write_bytes(b'%PDF-1.4')


def stats(total=0, downloaded=0, failed=0, error=None):
    return {'total': total, 'downloaded': downloaded, 'failed': failed,
            'bytes': 0, 'saved': [], 'error': error}


class TestPageExporter(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.client = MagicMock()
        self.client.absolute_url.side_effect = lambda url: 'https://wiki.example.com' + url
        self.attachments = MagicMock()
        self.attachments.download_all.return_value = stats()
        self.exporter = PageExporter(self.client, pdf_format='A3', pdf_margin='5mm',
                                     attachment_manager=self.attachments)
        item = ContentItem(id='42', title='Design: Review?', space_key='ENG',
                           url='/display/ENG/Design', attachments_url='/rest/api/content/42/child/attachment')
        self.target = ExportTarget(item=item, destination=Path(self.tmp.name) / 'ENG' / 'Design Review')

    def test_successful_export(self):
        session = RecordingSession()

        result = asyncio.run(self.exporter.export_one(self.target, session))

        self.assertTrue(result.success)
        self.assertIsNone(result.error)
        self.assertEqual(session.calls, [
            ('navigate', 'https://wiki.example.com/display/ENG/Design'),
            ('evaluate', EXPAND_SCRIPT),
            ('pdf', 'Design Review.pdf', 'A3', '5mm'),
        ])
        self.assertTrue((self.target.destination / 'Design Review.pdf').exists())

        item, dest_dir, reserved = self.attachments.download_all.call_args.args
        self.assertEqual(item, self.target.item)
        self.assertEqual(dest_dir, self.target.destination)
        self.assertEqual(reserved, {'Design Review.pdf'})

    def test_render_failure_is_reported_not_raised(self):
        result = asyncio.run(self.exporter.export_one(self.target, RecordingSession(fail_on='navigate')))

        self.assertFalse(result.success)
        self.assertIn('ERR_NAME_NOT_RESOLVED', result.error)
        self.assertIsNone(result.pdf_path)
        self.attachments.download_all.assert_not_called()

    def test_attachment_failures_mark_task_failed(self):
        self.attachments.download_all.return_value = stats(total=3, downloaded=2, failed=1)

        result = asyncio.run(self.exporter.export_one(self.target, RecordingSession()))

        self.assertFalse(result.success)
        self.assertEqual(result.attachments_saved, 2)
        self.assertEqual(result.attachments_failed, 1)
        self.assertIn('1 of 3', result.error)
        self.assertIsNotNone(result.pdf_path)

    def test_attachment_listing_failure_marks_task_failed(self):
        self.attachments.download_all.return_value = stats(error='Attachment listing failed: HTTPError')

        result = asyncio.run(self.exporter.export_one(self.target, RecordingSession()))

        self.assertFalse(result.success)
        self.assertIn('listing failed', result.error)

    def test_pdf_name_keeps_suffix_for_long_titles(self):
        item = ContentItem(id='1', title='x' * 400, space_key='ENG', url='/x', attachments_url='/a')
        name = PageExporter.pdf_name(ExportTarget(item=item, destination=Path('/out')))

        self.assertTrue(name.endswith('.pdf'))
        self.assertEqual(len(name.encode('utf-8')), 255)


if __name__ == '__main__':
    unittest.main()
