"""
Durable job queue for the asynchronous screening phase.

Jobs are rows in a shared SQLite database, so any number of worker
processes can poll the same queue.  Claiming is a compare-and-swap on
the job's status column; the loser of a race simply skips the job.

Basic Usage:
    >>> from csp.async_queue import ScreeningJobStore
    >>> from csp.async_queue.worker import WorkerPool
    >>>
    >>> store = ScreeningJobStore(Path(".data/screening.db"))
    >>> job = store.enqueue(campaign_id, sync_result)
    >>> claimed = store.claim_pending(limit=5, worker_id="worker-1")

``WorkerPool`` (in :mod:`csp.async_queue.worker`) runs several polling
workers in one process; see ``csp worker`` on the command line.
"""

from .job_store import ScreeningJobStore, ScreeningJob, JobStatus, InvalidTransitionError
from .progress import QueueStats
from .error_handler import ErrorHandler, ErrorType, CircuitBreaker, CircuitState, CircuitOpenError

__all__ = [
    "ScreeningJobStore",
    "ScreeningJob",
    "JobStatus",
    "InvalidTransitionError",
    "QueueStats",
    "ErrorHandler",
    "ErrorType",
    "CircuitBreaker",
    "CircuitState",
    "CircuitOpenError",
]
