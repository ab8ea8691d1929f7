"""
Run report generator for aggregating per-source export statistics.

Builds one report dictionary per configured source, formats the collected
reports for console display and exports them to JSON.
"""

import json
import logging
from collections import OrderedDict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from logger import format_elapsed
from models import ExportResult, ExportTarget, SweepResult


class RunReport:
    """Generates run reports from discovery, export and retention results."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize run report generator.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger('confluence_offline_copy.report')

    def generate_source_report(
        self,
        name: str,
        snapshot_dir: Path,
        targets: List[ExportTarget],
        results: List[ExportResult],
        discovery_errors: List[Any],
        sweep: Optional[SweepResult],
        duration: float,
        dry_run: bool = False
    ) -> Dict[str, Any]:
        """
        Generate the report of one source.

        Args:
            name: Source name
            snapshot_dir: Dated snapshot directory of this run
            targets: Every discovered export target
            results: Settled export results (empty on a dry run)
            discovery_errors: Search queries that failed
            sweep: Retention sweep outcome, None when the sweep did not run
            duration: Source run duration in seconds
            dry_run: Whether exports were skipped

        Returns:
            Source report dictionary
        """
        failed = [r for r in results if not r.success]

        report = {
            'name': name,
            'snapshot_dir': str(snapshot_dir),
            'dry_run': dry_run,
            'discovered': len(targets),
            'succeeded': len(results) - len(failed),
            'failed': len(failed),
            'failed_targets': [
                {
                    'title': r.target.title,
                    'destination': str(r.target.destination),
                    'error': r.error
                }
                for r in failed
            ],
            'attachments_saved': sum(r.attachments_saved for r in results),
            'attachments_failed': sum(r.attachments_failed for r in results),
            'discovery_errors': [str(e) for e in discovery_errors],
            'sweep': sweep.to_dict() if sweep is not None else None,
            'duration_seconds': round(duration, 3),
            'spaces': self._build_space_breakdown(targets)
        }

        self.logger.info(
            f"Source '{name}': {report['discovered']} discovered, "
            f"{report['succeeded']} succeeded, {report['failed']} failed"
        )

        return report

    def _build_space_breakdown(self, targets: List[ExportTarget]) -> Dict[str, List[str]]:
        """Group target destinations by space key, in discovery order."""
        spaces: Dict[str, List[str]] = OrderedDict()
        for target in targets:
            spaces.setdefault(target.item.space_key, []).append(target.title)
        return dict(spaces)

    def combine(self, source_reports: List[Dict[str, Any]], duration: float) -> Dict[str, Any]:
        """Wrap the source reports in a run-level report with totals."""
        return {
            'sources': source_reports,
            'totals': {
                'sources': len(source_reports),
                'discovered': sum(r.get('discovered', 0) for r in source_reports),
                'succeeded': sum(r.get('succeeded', 0) for r in source_reports),
                'failed': sum(r.get('failed', 0) for r in source_reports),
                'source_errors': sum(1 for r in source_reports if r.get('error'))
            },
            'duration_seconds': round(duration, 3),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """
        Format a run report for console display.

        Args:
            report: Run report dictionary (see ``combine``)

        Returns:
            Formatted console string
        """
        sections = []

        sections.append("=" * 60)
        sections.append("OFFLINE COPY REPORT")
        sections.append("=" * 60)

        for source in report.get('sources', []):
            sections.append("")
            sections.append(f"Source: {source.get('name')}")
            sections.append("-" * 60)

            if source.get('error'):
                sections.append(f"  Status:      FAILED ({source['error']})")
                continue

            sections.append(f"  Snapshot:    {source.get('snapshot_dir')}")
            sections.append(f"  Discovered:  {source.get('discovered', 0)}")

            if source.get('dry_run'):
                sections.append("  Mode:        dry run, nothing exported")
                for space_key, titles in source.get('spaces', {}).items():
                    sections.append(f"    {space_key}: {len(titles)} page(s)")
                    for title in titles:
                        sections.append(f"      - {title}")
            else:
                sections.append(f"  Succeeded:   {source.get('succeeded', 0)}")
                sections.append(f"  Failed:      {source.get('failed', 0)}")
                sections.append(f"  Attachments: {source.get('attachments_saved', 0)} saved, "
                                f"{source.get('attachments_failed', 0)} failed")

            sections.append(f"  Duration:    {format_elapsed(source.get('duration_seconds', 0))}")

            if source.get('failed_targets'):
                sections.append("  Failed pages:")
                for failure in source['failed_targets']:
                    sections.append(f"    - {failure['title']}: {failure['error']}")

            if source.get('discovery_errors'):
                sections.append("  Discovery errors:")
                for error in source['discovery_errors']:
                    sections.append(f"    - {error}")

            sweep = source.get('sweep')
            if sweep:
                sections.append(f"  Retention:   {len(sweep['pruned'])} pruned, {len(sweep['kept'])} kept")
                for error in sweep['errors']:
                    sections.append(f"    - {error}")

        totals = report.get('totals', {})
        sections.append("")
        sections.append("=" * 60)
        sections.append(
            f"Total: {totals.get('discovered', 0)} discovered, {totals.get('succeeded', 0)} succeeded, "
            f"{totals.get('failed', 0)} failed in {format_elapsed(report.get('duration_seconds', 0))}"
        )
        sections.append("=" * 60)

        return "\n".join(sections)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export report to JSON file.

        Args:
            report: Run report dictionary
            filepath: Output file path
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)

            self.logger.info(f"JSON report exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {str(e)}")


__all__ = ['RunReport']
