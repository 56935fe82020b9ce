"""Polling workers that run screening batches."""

import asyncio
from datetime import timedelta
from typing import Callable, List, Optional

from ..compliance.models import BatchReport
from ..compliance.orchestrator import ScreeningOrchestrator
from ..utils.logging import get_logger

logger = get_logger(__name__)


class ScreeningWorker:
    """
    Single worker that periodically processes pending screenings.
    
    Each tick the worker expires stale locks, then runs one batch
    through its orchestrator.  When a batch claimed jobs the next tick
    starts immediately; an empty queue makes the worker sleep for
    ``poll_interval`` seconds.  Workers keep no job state of their own:
    the job store is the single source of truth.
    
    Attributes:
        worker_id: Identity recorded as ``locked_by`` on claimed jobs
        orchestrator: Orchestrator that claims and processes jobs
        batch_limit: Jobs claimed per batch (at most five)
        poll_interval: Seconds to sleep when the queue is empty
        lock_timeout: Age after which a processing lock is expired
        batches_run: Number of batches executed so far
    """
    
    def __init__(
        self,
        orchestrator: ScreeningOrchestrator,
        batch_limit: int = 5,
        poll_interval: float = 30.0,
        lock_timeout: Optional[timedelta] = None,
    ):
        self.orchestrator = orchestrator
        self.worker_id = orchestrator.worker_id
        self.batch_limit = batch_limit
        self.poll_interval = poll_interval
        self.lock_timeout = lock_timeout
        self.batches_run = 0
        self.last_report: Optional[BatchReport] = None
        self._stop_event = asyncio.Event()
    
    async def run_once(self) -> BatchReport:
        """Run a single batch."""
        if self.lock_timeout is not None:
            await asyncio.to_thread(self.orchestrator.expire_stale_locks, self.lock_timeout)
        report = await self.orchestrator.process_pending_screenings(self.batch_limit)
        self.batches_run += 1
        self.last_report = report
        if report.claimed:
            logger.info(
                f"Worker {self.worker_id} batch: claimed={report.claimed} "
                f"completed={report.completed} failed={report.failed}"
            )
        return report
    
    async def run(self, max_batches: Optional[int] = None):
        """Worker main loop."""
        logger.info(f"Worker {self.worker_id} started")
        
        while not self._stop_event.is_set():
            if max_batches is not None and self.batches_run >= max_batches:
                break
            try:
                report = await self.run_once()
            except asyncio.CancelledError:
                logger.info(f"Worker {self.worker_id} cancelled")
                break
            except Exception as e:
                # Store unavailable; try again next tick.
                logger.error(f"Worker {self.worker_id} error: {e}", exc_info=True)
                report = None
            
            if report is None or report.claimed == 0:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        
        logger.info(f"Worker {self.worker_id} stopped")
    
    def stop(self):
        """Signal worker to stop."""
        self._stop_event.set()


class WorkerPool:
    """
    Pool of workers sharing one job database.
    
    Every worker gets its own orchestrator (and so its own store
    connection and ``worker_id``) from ``orchestrator_factory``, which
    mirrors running the same number of separate worker processes.
    
    Example:
        >>> pool = WorkerPool(make_orchestrator, num_workers=3)
        >>> await pool.start()
        >>> ...
        >>> await pool.stop()
    """
    
    def __init__(
        self,
        orchestrator_factory: Callable[[int], ScreeningOrchestrator],
        num_workers: int = 1,
        batch_limit: int = 5,
        poll_interval: float = 30.0,
        lock_timeout: Optional[timedelta] = None,
    ):
        self.orchestrator_factory = orchestrator_factory
        self.num_workers = num_workers
        self.batch_limit = batch_limit
        self.poll_interval = poll_interval
        self.lock_timeout = lock_timeout
        
        self.workers: List[ScreeningWorker] = []
        self.worker_tasks: List[asyncio.Task] = []
        self._running = False
    
    async def start(self, max_batches: Optional[int] = None):
        """Start all workers."""
        if self._running:
            logger.warning("Worker pool already running")
            return
        
        logger.info(f"Starting worker pool with {self.num_workers} workers")
        
        for i in range(self.num_workers):
            worker = ScreeningWorker(
                orchestrator=self.orchestrator_factory(i),
                batch_limit=self.batch_limit,
                poll_interval=self.poll_interval,
                lock_timeout=self.lock_timeout,
            )
            self.workers.append(worker)
            self.worker_tasks.append(asyncio.create_task(worker.run(max_batches=max_batches)))
        
        self._running = True
    
    async def wait(self):
        """Wait for every worker loop to finish."""
        await asyncio.gather(*self.worker_tasks, return_exceptions=True)
        self._running = False
    
    async def stop(self, timeout: float = 30.0):
        """
        Stop all workers gracefully.
        
        Args:
            timeout: Max seconds to wait for in-flight batches to finish
        """
        if not self._running:
            return
        
        logger.info("Stopping worker pool...")
        for worker in self.workers:
            worker.stop()
        
        try:
            await asyncio.wait_for(
                asyncio.gather(*self.worker_tasks, return_exceptions=True),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Worker pool stop timed out, cancelling tasks")
            for task in self.worker_tasks:
                task.cancel()
        
        self._running = False
        logger.info("Worker pool stopped")
    
    def is_running(self) -> bool:
        return self._running
