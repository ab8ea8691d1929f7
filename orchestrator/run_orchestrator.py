"""
Run orchestrator sequencing discovery, export and retention for each configured source.

Per source: discover targets, export them through a bounded renderer pool,
wait for the queue to drain, then prune expired snapshots. Sources run one
after another in configuration order; a failing source is recorded in the
report and the next source still runs.
"""

import asyncio
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from confluence_client import ConfluenceClient
from exporters.page_exporter import PageExporter
from exporters.renderer_pool import PlaywrightSessionFactory, RendererPool
from exporters.retention import RetentionSweeper, snapshot_dir_name, utc_now
from fetchers.search_fetcher import SearchFetcher
from logger import format_elapsed, log_section
from models import ExportResult, ExportTarget, SourceConfig
from .export_scheduler import ExportScheduler
from .run_report import RunReport


def default_session_factory(extra_headers: Dict[str, str], logger: logging.Logger) -> PlaywrightSessionFactory:
    return PlaywrightSessionFactory(extra_headers=extra_headers, logger=logger)


class RunOrchestrator:
    """Coordinates the offline copy of every configured source."""

    def __init__(
        self,
        client_factory: Callable[..., ConfluenceClient] = ConfluenceClient.from_source_config,
        session_factory: Callable[..., Any] = default_session_factory,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            client_factory: Builds a client from ``(source, logger=...)``
            session_factory: Builds a renderer session factory from ``(extra_headers, logger)``;
                the result must provide async ``start``, ``create_session`` and ``stop``
            clock: Returns the current timezone-aware time (snapshot naming and retention)
            logger: Logger instance
        """
        self.client_factory = client_factory
        self.session_factory = session_factory
        self.clock = clock
        self.logger = logger or logging.getLogger('confluence_offline_copy.orchestrator')
        self.report = RunReport(logger=self.logger)

    async def run_all(self, sources: List[SourceConfig], dry_run: bool = False) -> Dict[str, Any]:
        """
        Run every source sequentially.

        Args:
            sources: Resolved source configurations, in file order
            dry_run: Discover only; no rendering and no sweep

        Returns:
            Run report with one entry per source
        """
        start_time = time.time()
        source_reports = []

        for source in sources:
            try:
                source_reports.append(await self.run_source(source, dry_run=dry_run))
            except Exception as e:
                self.logger.error(f"Source '{source.name}' failed: {e}", exc_info=True)
                source_reports.append({'name': source.name, 'error': f"{type(e).__name__}: {e}"})

        duration = time.time() - start_time
        self.logger.info(f"Export finished, duration: {format_elapsed(duration)}")

        return self.report.combine(source_reports, duration)

    async def run_source(self, source: SourceConfig, dry_run: bool = False) -> Dict[str, Any]:
        """
        Discover, export and sweep one source.

        Args:
            source: Resolved source configuration
            dry_run: Discover only; no rendering and no sweep

        Returns:
            Source report dictionary
        """
        start_time = time.time()
        output_root = Path(source.output_dir)
        snapshot_dir = output_root / snapshot_dir_name(self.clock())

        log_section(f"Source: {source.name}")
        self.logger.info(f"Writing snapshot to {snapshot_dir}")

        client = self.client_factory(source, logger=self.logger.getChild('client'))
        sweep = None

        try:
            fetcher = SearchFetcher(client, snapshot_dir, logger=self.logger.getChild('fetcher'))
            targets = await asyncio.to_thread(fetcher.build_targets, source.cql_single, source.cql_tree)
            self.logger.info(f"Discovered {len(targets)} page(s) to export")

            if dry_run:
                self.logger.info("Dry-run mode: skipping rendering and retention sweep")
                results: List[ExportResult] = []
            else:
                results = await self._export_targets(source, client, targets)
                sweeper = RetentionSweeper(clock=self.clock, logger=self.logger.getChild('retention'))
                sweep = sweeper.prune(output_root, source.retention_days, protected=[snapshot_dir.name])
        finally:
            client.close()

        duration = time.time() - start_time
        self.logger.info(f"Source '{source.name}' finished, duration: {format_elapsed(duration)}")

        return self.report.generate_source_report(
            name=source.name,
            snapshot_dir=snapshot_dir,
            targets=targets,
            results=results,
            discovery_errors=fetcher.discovery_errors,
            sweep=sweep,
            duration=duration,
            dry_run=dry_run
        )

    async def _export_targets(
        self,
        source: SourceConfig,
        client: ConfluenceClient,
        targets: List[ExportTarget]
    ) -> List[ExportResult]:
        if not targets:
            self.logger.info("Nothing to export")
            return []

        factory = self.session_factory({'Authorization': source.auth_header},
                                       self.logger.getChild('renderer'))
        await factory.start()

        try:
            pool = RendererPool(factory.create_session, source.concurrency,
                                logger=self.logger.getChild('renderer'))
            try:
                await pool.open()

                exporter = PageExporter(
                    client,
                    pdf_format=source.pdf_format,
                    pdf_margin=source.pdf_margin,
                    logger=self.logger.getChild('exporter')
                )
                scheduler = ExportScheduler(
                    pool,
                    exporter.export_one,
                    concurrency=source.concurrency,
                    task_timeout=source.task_timeout,
                    show_progress=source.progress_bars,
                    logger=self.logger.getChild('scheduler')
                )
                return await scheduler.run(targets)
            finally:
                await pool.close()
        finally:
            await factory.stop()


__all__ = ['RunOrchestrator', 'default_session_factory']
