"""
Orchestration package for coordinating the offline copy pipeline.

This package sequences discovery, bounded-concurrency export and the
retention sweep for every configured source, and reports on the outcome.
"""

from .export_scheduler import ExportScheduler
from .run_orchestrator import RunOrchestrator
from .run_report import RunReport

__all__ = [
    'ExportScheduler',
    'RunOrchestrator',
    'RunReport'
]
