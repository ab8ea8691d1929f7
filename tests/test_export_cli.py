"""Tests for the command-line entry point."""

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

import export


def run_report(failed=0):
    return {
        'sources': [{'name': 'wiki', 'snapshot_dir': 'out/2024-05-10', 'discovered': 1,
                     'succeeded': 1 - failed, 'failed': failed, 'failed_targets': [],
                     'discovery_errors': [], 'sweep': None, 'duration_seconds': 0.1}],
        'totals': {'sources': 1, 'discovered': 1, 'succeeded': 1 - failed, 'failed': failed,
                   'source_errors': 0},
        'duration_seconds': 0.1,
    }


class TestMain(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.log_file = str(Path(self.tmp.name) / 'run.log')
        self.config_path = Path(self.tmp.name) / 'config.json'
        self.config_path.write_text(json.dumps({
            'configs': [{'BASE_URL': 'https://wiki.example.com', 'AUTH_HEADER': 'Bearer abc'}]
        }))

    def main(self, *args):
        return export.main(['--log-file', self.log_file, *args])

    def test_missing_config_exits_2(self):
        self.assertEqual(self.main('--config', str(Path(self.tmp.name) / 'missing.json')), 2)

    def test_invalid_config_exits_2(self):
        self.config_path.write_text(json.dumps({'configs': [{'BASE_URL': 'not a url', 'AUTH_HEADER': 'x'}]}))
        self.assertEqual(self.main('--config', str(self.config_path)), 2)

    def test_failed_pages_still_exit_0_and_write_report(self):
        report_path = Path(self.tmp.name) / 'report.json'

        with patch('export.RunOrchestrator') as orchestrator_cls:
            orchestrator_cls.return_value.run_all = AsyncMock(return_value=run_report(failed=1))
            code = self.main('--config', str(self.config_path), '--report-path', str(report_path))

        self.assertEqual(code, 0)
        self.assertEqual(json.loads(report_path.read_text())['totals']['failed'], 1)

        sources = orchestrator_cls.return_value.run_all.call_args.args[0]
        self.assertEqual(sources[0].name, 'wiki.example.com')
        self.assertFalse(orchestrator_cls.return_value.run_all.call_args.kwargs['dry_run'])

    def test_dry_run_flag_passed_through(self):
        with patch('export.RunOrchestrator') as orchestrator_cls:
            orchestrator_cls.return_value.run_all = AsyncMock(return_value=run_report())
            code = self.main('--config', str(self.config_path), '--dry-run')

        self.assertEqual(code, 0)
        self.assertTrue(orchestrator_cls.return_value.run_all.call_args.kwargs['dry_run'])

    def test_keyboard_interrupt_exits_130(self):
        with patch('export.RunOrchestrator') as orchestrator_cls:
            orchestrator_cls.return_value.run_all = AsyncMock(side_effect=KeyboardInterrupt)
            self.assertEqual(self.main('--config', str(self.config_path)), 130)

    def test_errors_after_loading_are_not_config_errors(self):
        for error in (ValueError('bad page'), FileNotFoundError('gone')):
            with patch('export.RunOrchestrator') as orchestrator_cls:
                orchestrator_cls.return_value.run_all = AsyncMock(side_effect=error)
                self.assertEqual(self.main('--config', str(self.config_path)), 1, repr(error))

    def test_tab_indented_json_config(self):
        self.config_path.write_text(json.dumps({
            'configs': [{'BASE_URL': 'https://wiki.example.com', 'AUTH_HEADER': 'Bearer abc'}]
        }, indent='\t'))

        with patch('export.RunOrchestrator') as orchestrator_cls:
            orchestrator_cls.return_value.run_all = AsyncMock(return_value=run_report())
            self.assertEqual(self.main('--config', str(self.config_path)), 0)

    def test_version(self):
        with self.assertRaises(SystemExit) as ctx:
            export.main(['--version'])
        self.assertEqual(ctx.exception.code, 0)


if __name__ == '__main__':
    unittest.main()
