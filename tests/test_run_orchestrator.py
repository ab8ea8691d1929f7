"""End-to-end tests for the run orchestrator with fake Confluence and renderer."""

import asyncio
import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from models import FetchResult, SourceConfig
from orchestrator import RunOrchestrator, RunReport

NOW = datetime(2024, 5, 10, 8, 0, tzinfo=timezone.utc)


def search_record(content_id, title, space):
    return {
        'title': title,
        'url': f'/display/{space}/{content_id}',
        'content': {'id': content_id, '_expandable': {'space': f'/rest/api/space/{space}'}}
    }


class FakeClient:

    def __init__(self, answers, attachments=None):
        self.answers = answers
        self.attachments = attachments or {}
        self.closed = False

    def search(self, cql):
        answer = self.answers.get(cql, [])
        return answer if isinstance(answer, FetchResult) else FetchResult(items=answer)

    def get_attachments(self, attachments_url):
        return FetchResult(items=self.attachments.get(attachments_url, []))

    def download_attachment(self, download_url, dest_path):
        Path(dest_path).write_bytes(b'data')
        return 4

    def absolute_url(self, url):
        return 'https://wiki.example.com' + url

    def close(self):
        self.closed = True


class FakeSession:

    def __init__(self, factory):
        self.factory = factory

    async def navigate(self, url):
        self.factory.visited.append(url)

    async def evaluate(self, script):
        pass

    async def print_to_pdf(self, path, pdf_format='A2', margin='10px'):
        Path(path).write_bytes(b'%PDF-1.4')

    async def close(self):
        pass


class FakeSessionFactory:

    def __init__(self, extra_headers, logger):
        self.extra_headers = extra_headers
        self.started = False
        self.stopped = False
        self.sessions = 0
        self.visited = []

    async def start(self):
        self.started = True
        return self

    async def create_session(self):
        self.sessions += 1
        return FakeSession(self)

    async def stop(self):
        self.stopped = True


class TestRunOrchestrator(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.output = Path(self.tmp.name) / 'output'
        self.clients = []
        self.factories = []

        self.answers = {
            'label = "offline-copy"': [search_record('1', 'Single A', 'ENG'), search_record('2', 'Single B', 'ENG')],
            'label = "offline-copy-tree"': [search_record('10', 'Root', 'DOC')],
            'parent = 10': [search_record('11', 'Child 1', 'DOC'), search_record('12', 'Child 2', 'DOC')],
        }

    def client_factory(self, source, logger=None):
        if 'broken' in source.base_url:
            raise RuntimeError('cannot reach server')
        client = FakeClient(self.answers, {
            '/rest/api/content/1/child/attachment': [
                {'title': 'diagram.png', '_links': {'download': '/download/attachments/1/diagram.png'}}
            ]
        })
        self.clients.append(client)
        return client

    def session_factory(self, extra_headers, logger):
        factory = FakeSessionFactory(extra_headers, logger)
        self.factories.append(factory)
        return factory

    def make_orchestrator(self):
        return RunOrchestrator(client_factory=self.client_factory, session_factory=self.session_factory,
                               clock=lambda: NOW)

    def make_source(self, **overrides):
        values = dict(name='wiki', base_url='https://wiki.example.com', auth_header='Bearer abc',
                      output_dir=str(self.output), concurrency=2, progress_bars=False)
        values.update(overrides)
        return SourceConfig(**values)

    def test_end_to_end_export(self):
        """2 single pages and 1 root with 2 children give 5 exported directories."""
        report = asyncio.run(self.make_orchestrator().run_source(self.make_source()))

        snapshot = self.output / '2024-05-10'
        expected_dirs = [
            snapshot / 'ENG' / 'Single A',
            snapshot / 'ENG' / 'Single B',
            snapshot / 'DOC' / 'Root',
            snapshot / 'DOC' / 'Root' / 'Child 1',
            snapshot / 'DOC' / 'Root' / 'Child 2',
        ]
        for directory in expected_dirs:
            pdfs = list(directory.glob('*.pdf'))
            self.assertEqual(len(pdfs), 1, directory)
            self.assertEqual(pdfs[0].name, directory.name + '.pdf')
        self.assertTrue((snapshot / 'ENG' / 'Single A' / 'diagram.png').exists())

        self.assertEqual(report['discovered'], 5)
        self.assertEqual(report['succeeded'], 5)
        self.assertEqual(report['failed'], 0)
        self.assertEqual(report['failed_targets'], [])
        self.assertEqual(report['discovery_errors'], [])
        self.assertEqual(report['snapshot_dir'], str(snapshot))
        self.assertEqual(report['sweep']['kept'], ['2024-05-10'])
        self.assertEqual(report['attachments_saved'], 1)

        factory = self.factories[0]
        self.assertEqual(factory.extra_headers, {'Authorization': 'Bearer abc'})
        self.assertEqual(factory.sessions, 2)
        self.assertTrue(factory.started and factory.stopped)
        self.assertEqual(len(factory.visited), 5)
        self.assertTrue(self.clients[0].closed)

    def test_sweep_runs_on_absent_root(self):
        self.answers = {}

        report = asyncio.run(self.make_orchestrator().run_source(self.make_source()))

        self.assertEqual(report['discovered'], 0)
        self.assertEqual(report['sweep'], {'pruned': [], 'kept': [], 'skipped': [], 'errors': []})
        self.assertFalse(self.output.exists())
        self.assertEqual(self.factories, [])

    def test_old_snapshots_pruned_after_export(self):
        (self.output / '2024-04-01' / 'ENG').mkdir(parents=True)
        (self.output / 'archive').mkdir()

        report = asyncio.run(self.make_orchestrator().run_source(self.make_source(retention_days=10)))

        self.assertEqual(report['sweep']['pruned'], ['2024-04-01'])
        self.assertEqual(report['sweep']['skipped'], ['archive'])
        self.assertFalse((self.output / '2024-04-01').exists())
        self.assertTrue((self.output / '2024-05-10').exists())

    def test_dry_run_renders_nothing(self):
        report = asyncio.run(self.make_orchestrator().run_source(self.make_source(), dry_run=True))

        self.assertTrue(report['dry_run'])
        self.assertEqual(report['discovered'], 5)
        self.assertIsNone(report['sweep'])
        self.assertEqual(report['spaces'], {'ENG': ['Single A', 'Single B'],
                                            'DOC': ['Root', 'Child 1', 'Child 2']})
        self.assertEqual(self.factories, [])
        self.assertFalse(self.output.exists())

    def test_discovery_error_reported(self):
        self.answers['label = "offline-copy"'] = FetchResult.failure('HTTPError: 401 Unauthorized')

        report = asyncio.run(self.make_orchestrator().run_source(self.make_source()))

        self.assertEqual(report['discovered'], 3)
        self.assertEqual(len(report['discovery_errors']), 1)
        self.assertIn('401', report['discovery_errors'][0])

    def test_failing_source_does_not_stop_later_sources(self):
        sources = [
            self.make_source(name='broken', base_url='https://broken.example.com'),
            self.make_source(name='wiki'),
        ]

        report = asyncio.run(self.make_orchestrator().run_all(sources))

        first, second = report['sources']
        self.assertIn('cannot reach server', first['error'])
        self.assertEqual(second['succeeded'], 5)
        self.assertEqual(report['totals']['source_errors'], 1)
        self.assertEqual(report['totals']['succeeded'], 5)

        console = RunReport().format_console_report(report)
        self.assertIn('Source: broken', console)
        self.assertIn('FAILED', console)

        report_path = Path(self.tmp.name) / 'report.json'
        RunReport().export_json_report(report, str(report_path))
        self.assertEqual(json.loads(report_path.read_text())['totals']['discovered'], 5)


if __name__ == '__main__':
    unittest.main()
