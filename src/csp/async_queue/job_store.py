"""Durable screening job queue with compare-and-swap claiming.

Jobs live in the ``campaign_screenings`` table.  Any number of worker
processes may share the database file; the only thing standing
between two workers and the same job is the conditional UPDATE in
:meth:`ScreeningJobStore.claim_pending`, whose affected-row count
tells a worker whether it won the claim.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List

from ..compliance.constants import MAX_CLAIM_BATCH
from ..compliance.models import AsyncCheckResult, ScreeningOutcome, SyncCheckResult
from ..core.models import utcnow
from ..io.database import connect
from ..utils.logging import get_logger

logger = get_logger(__name__)


class JobStatus(Enum):
    """Job lifecycle states. Transitions only move forward."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class InvalidTransitionError(RuntimeError):
    """A terminal update targeted a job that is not ``processing``."""


@dataclass
class ScreeningJob:
    """One campaign's asynchronous screening pass."""
    
    # Identity
    job_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    campaign_id: str = ""
    job_type: str = "initial"
    
    # State
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    
    # Findings
    sync_findings: Optional[SyncCheckResult] = None
    async_findings: Optional[AsyncCheckResult] = None
    decision: Optional[str] = None
    risk_score: float = 0.0
    failure_reason: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-friendly dict."""
        return {
            "job_id": self.job_id,
            "campaign_id": self.campaign_id,
            "job_type": self.job_type,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "locked_by": self.locked_by,
            "sync_findings": self.sync_findings.model_dump(mode="json") if self.sync_findings else None,
            "async_findings": self.async_findings.model_dump(mode="json") if self.async_findings else None,
            "decision": self.decision,
            "risk_score": self.risk_score,
            "failure_reason": self.failure_reason,
        }
    
    @classmethod
    def from_row(cls, row) -> "ScreeningJob":
        """Build a job from a ``campaign_screenings`` row."""
        def dt(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None
        
        return cls(
            job_id=row["id"],
            campaign_id=row["campaign_id"],
            job_type=row["job_type"],
            status=JobStatus(row["status"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            started_at=dt(row["started_at"]),
            completed_at=dt(row["completed_at"]),
            locked_at=dt(row["locked_at"]),
            locked_by=row["locked_by"],
            sync_findings=(
                SyncCheckResult.model_validate_json(row["sync_findings"])
                if row["sync_findings"] else None
            ),
            async_findings=(
                AsyncCheckResult.model_validate_json(row["async_findings"])
                if row["async_findings"] else None
            ),
            decision=row["decision"],
            risk_score=row["risk_score"],
            failure_reason=row["failure_reason"],
        )


class ScreeningJobStore:
    """SQLite-backed job table.

    ``sync_findings`` is written by :meth:`enqueue` and by no other
    statement, which keeps the sync snapshot immutable.
    """
    
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn = connect(db_path)
        self._init_schema()
    
    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS campaign_screenings (
                id TEXT PRIMARY KEY,
                campaign_id TEXT NOT NULL,
                job_type TEXT NOT NULL DEFAULT 'initial',
                status TEXT NOT NULL DEFAULT 'pending',
                sync_findings TEXT,
                async_findings TEXT,
                decision TEXT,
                risk_score REAL NOT NULL DEFAULT 0,
                failure_reason TEXT,
                locked_at TEXT,
                locked_by TEXT,
                started_at TEXT,
                completed_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_screenings_status
                ON campaign_screenings(status, created_at);
            CREATE INDEX IF NOT EXISTS idx_screenings_campaign
                ON campaign_screenings(campaign_id);
            """
        )
        self.conn.commit()
    
    def enqueue(
        self,
        campaign_id: str,
        sync_result: Optional[SyncCheckResult],
        job_type: str = "initial",
    ) -> ScreeningJob:
        """Insert a pending job carrying the sync snapshot."""
        job = ScreeningJob(
            campaign_id=campaign_id,
            job_type=job_type,
            sync_findings=sync_result,
            risk_score=round(sync_result.risk_score, 2) if sync_result else 0.0,
        )
        created = job.created_at.isoformat()
        self.conn.execute(
            """INSERT INTO campaign_screenings
            (id, campaign_id, job_type, status, sync_findings, risk_score, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                job.job_id,
                campaign_id,
                job_type,
                JobStatus.PENDING.value,
                sync_result.model_dump_json() if sync_result else None,
                job.risk_score,
                created,
                created,
            ),
        )
        self.conn.commit()
        logger.info(f"Enqueued screening job {job.job_id[:8]} for campaign {campaign_id}")
        return job
    
    def get_job(self, job_id: str) -> Optional[ScreeningJob]:
        row = self.conn.execute(
            "SELECT * FROM campaign_screenings WHERE id = ?", (job_id,)
        ).fetchone()
        return ScreeningJob.from_row(row) if row else None
    
    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        newest_first: bool = True,
    ) -> List[ScreeningJob]:
        """List jobs, optionally filtered by status, ordered by creation time."""
        order = "DESC" if newest_first else "ASC"
        query = "SELECT * FROM campaign_screenings"
        params: List[Any] = []
        if status is not None:
            query += " WHERE status = ?"
            params.append(status.value)
        query += f" ORDER BY created_at {order}, rowid {order} LIMIT ?"
        params.append(limit)
        return [ScreeningJob.from_row(row) for row in self.conn.execute(query, params)]
    
    def claim_pending(self, limit: int, worker_id: str) -> List[ScreeningJob]:
        """Claim up to ``limit`` (at most five) of the oldest pending jobs.

        Each candidate is moved to ``processing`` with an UPDATE that
        only matches while the row still carries the status we read.
        Candidates another worker already took match zero rows and are
        skipped.
        """
        limit = max(0, min(limit, MAX_CLAIM_BATCH))
        if limit == 0:
            return []
        candidates = self.list_jobs(JobStatus.PENDING, limit=limit, newest_first=False)
        
        claimed: List[ScreeningJob] = []
        for job in candidates:
            now = utcnow().isoformat()
            cur = self.conn.execute(
                """UPDATE campaign_screenings
                SET status = ?, locked_at = ?, locked_by = ?, started_at = ?, updated_at = ?
                WHERE id = ? AND status = ?""",
                (
                    JobStatus.PROCESSING.value,
                    now,
                    worker_id,
                    now,
                    now,
                    job.job_id,
                    job.status.value,
                ),
            )
            self.conn.commit()
            if cur.rowcount == 1:
                claimed.append(self.get_job(job.job_id))
            else:
                logger.debug(f"Job {job.job_id[:8]} claimed by another worker, skipping")
        
        if claimed:
            logger.info(f"Worker {worker_id} claimed {len(claimed)} screening job(s)")
        return claimed
    
    def complete_job(
        self,
        job_id: str,
        outcome: ScreeningOutcome,
        async_result: AsyncCheckResult,
        worker_id: Optional[str] = None,
    ) -> None:
        """Record a successful outcome on a processing job.

        With ``worker_id`` the update also requires that worker to still
        hold the lock, so a job expired by the sweep stays failed.
        """
        now = utcnow().isoformat()
        query = """UPDATE campaign_screenings
            SET status = ?, async_findings = ?, decision = ?, risk_score = ?,
                failure_reason = NULL, completed_at = ?, updated_at = ?
            WHERE id = ? AND status = ?"""
        params: List[Any] = [
            JobStatus.COMPLETED.value,
            async_result.model_dump_json(),
            outcome.decision.value,
            round(outcome.risk_score, 2),
            now,
            now,
            job_id,
            JobStatus.PROCESSING.value,
        ]
        if worker_id is not None:
            query += " AND locked_by = ?"
            params.append(worker_id)
        cur = self.conn.execute(query, params)
        self.conn.commit()
        if cur.rowcount != 1:
            raise InvalidTransitionError(
                f"Screening job {job_id} is not processing"
                + (f" under {worker_id}" if worker_id is not None else "")
            )
    
    def fail_job(self, job_id: str, reason: str) -> bool:
        """Mark a processing job failed. Returns False if nothing matched."""
        now = utcnow().isoformat()
        cur = self.conn.execute(
            """UPDATE campaign_screenings
            SET status = ?, failure_reason = ?, completed_at = ?, updated_at = ?
            WHERE id = ? AND status = ?""",
            (JobStatus.FAILED.value, reason, now, now, job_id, JobStatus.PROCESSING.value),
        )
        self.conn.commit()
        if cur.rowcount != 1:
            logger.warning(f"Could not mark job {job_id[:8]} failed: not processing")
            return False
        return True
    
    def expire_stale_locks(self, max_age: timedelta) -> int:
        """Fail processing jobs whose lock is older than ``max_age``.

        A worker that crashed mid-job leaves its claim behind forever.
        Expired jobs become ``failed`` rather than ``pending`` so the
        lifecycle stays forward-only; the campaign can be re-screened
        with a fresh job.
        """
        now = utcnow()
        cutoff = (now - max_age).isoformat()
        cur = self.conn.execute(
            """UPDATE campaign_screenings
            SET status = ?, failure_reason = ?, completed_at = ?, updated_at = ?
            WHERE status = ? AND locked_at IS NOT NULL AND locked_at <= ?""",
            (
                JobStatus.FAILED.value,
                f"Lock expired after {int(max_age.total_seconds() // 60)} minute(s)",
                now.isoformat(),
                now.isoformat(),
                JobStatus.PROCESSING.value,
                cutoff,
            ),
        )
        self.conn.commit()
        if cur.rowcount:
            logger.warning(f"Expired {cur.rowcount} stale screening lock(s)")
        return cur.rowcount
    
    def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        for row in self.conn.execute(
            "SELECT status, COUNT(*) AS n FROM campaign_screenings GROUP BY status"
        ):
            counts[row["status"]] = row["n"]
        return counts
    
    def close(self) -> None:
        self.conn.close()
    
    def __enter__(self):
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
