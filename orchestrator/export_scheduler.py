"""
Bounded-concurrency scheduler for export tasks.

Targets are queued without blocking and picked up in arrival order by a fixed
number of worker coroutines. A worker only runs a task while holding a
renderer session from the pool, so at most ``concurrency`` renders are in
flight. Every task has a wall-clock ceiling; a task that exceeds it is
cancelled and its session replaced rather than returned.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterable, List, Optional

try:
    from tqdm import tqdm
    HAS_TQDM = True
except ImportError:
    HAS_TQDM = False

from exporters.renderer_pool import RendererPool, RendererPoolExhausted
from logger import ProgressTracker
from models import ExportResult, ExportTarget

ExportTask = Callable[[ExportTarget, object], Awaitable[ExportResult]]


class ExportScheduler:
    """Runs export tasks with at most ``concurrency`` in flight."""

    def __init__(
        self,
        pool: RendererPool,
        task: ExportTask,
        concurrency: int,
        task_timeout: Optional[float] = 120.0,
        show_progress: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the scheduler.

        Args:
            pool: Renderer session pool (at least ``concurrency`` sessions)
            task: Coroutine function ``(target, session) -> ExportResult``
            concurrency: Maximum number of tasks running at once
            task_timeout: Per-task ceiling in seconds (None disables it)
            show_progress: Draw a tqdm progress bar over settled tasks
            logger: Logger instance
        """
        if concurrency < 1:
            raise ValueError("concurrency must be a positive integer")

        self.pool = pool
        self.task = task
        self.concurrency = concurrency
        self.task_timeout = task_timeout
        self.show_progress = show_progress and HAS_TQDM
        self.logger = logger or logging.getLogger('confluence_offline_copy.scheduler')

        self.results: List[ExportResult] = []
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._tracker: Optional[ProgressTracker] = None
        self._progress_bar = None

    def _ensure_started(self) -> None:
        if self._queue is not None:
            return

        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"export-worker-{index}")
            for index in range(self.concurrency)
        ]
        self.logger.debug(f"Started {self.concurrency} export worker(s)")

    def queue(self, target: ExportTarget) -> None:
        """Enqueue a target; returns immediately. Must be called from the running event loop."""
        self._ensure_started()
        self._queue.put_nowait(target)
        self.logger.debug(f"Queued '{target.title}' ({self._queue.qsize()} waiting)")

    async def idle(self) -> None:
        """Wait until the queue is empty and every in-flight task has settled."""
        if self._queue is None:
            return
        await self._queue.join()

    async def close(self) -> None:
        """Stop the idle workers."""
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None

    async def run(self, targets: Iterable[ExportTarget]) -> List[ExportResult]:
        """
        Queue every target and return once all of them have settled.

        Args:
            targets: Export targets in arrival order

        Returns:
            One ExportResult per target, in completion order
        """
        targets = list(targets)
        self.logger.info(f"Scheduling {len(targets)} export task(s) with concurrency {self.concurrency}")

        if HAS_TQDM:
            self._progress_bar = tqdm(total=len(targets), desc="Exporting pages", unit="page",
                                      disable=not self.show_progress)

        try:
            with ProgressTracker(len(targets), "pages") as tracker:
                self._tracker = tracker
                for target in targets:
                    self.queue(target)
                await self.idle()
        finally:
            self._tracker = None
            if self._progress_bar is not None:
                self._progress_bar.close()
                self._progress_bar = None
            await self.close()

        return list(self.results)

    async def _worker(self, index: int) -> None:
        while True:
            target = await self._queue.get()
            try:
                result = await self._run_one(target)
                self._settle(result)
            finally:
                self._queue.task_done()

    async def _run_one(self, target: ExportTarget) -> ExportResult:
        start_time = time.time()

        try:
            session = await self.pool.acquire()
        except RendererPoolExhausted as e:
            self.logger.error(f"Cannot export '{target.title}': {e}")
            return ExportResult(target=target, success=False, error=str(e))

        try:
            if self.task_timeout:
                result = await asyncio.wait_for(self.task(target, session), timeout=self.task_timeout)
            else:
                result = await self.task(target, session)
        except asyncio.TimeoutError:
            self.logger.error(f"Export of '{target.title}' timed out after {self.task_timeout}s, "
                              f"replacing renderer session")
            await self.pool.replace(session)
            return ExportResult(target=target, success=False,
                                error=f"timed out after {self.task_timeout}s",
                                duration=time.time() - start_time)
        except Exception as e:
            # Tasks are expected to report their own failures; this guards the worker
            self.logger.error(f"Export task for '{target.title}' raised: {e}", exc_info=True)
            self.pool.release(session)
            return ExportResult(target=target, success=False, error=f"{type(e).__name__}: {e}",
                                duration=time.time() - start_time)

        self.pool.release(session)
        return result

    def _settle(self, result: ExportResult) -> None:
        self.results.append(result)
        if self._tracker is not None:
            self._tracker.increment(success=result.success)
        if self._progress_bar is not None:
            self._progress_bar.update(1)


__all__ = ['ExportScheduler', 'ExportTask']
