"""Tests for the SQLite screening job store."""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from csp.async_queue.job_store import (
    InvalidTransitionError,
    JobStatus,
    ScreeningJob,
    ScreeningJobStore,
)
from csp.compliance.models import (
    AsyncCheckResult,
    FraudScoreResult,
    ScreeningDecision,
    ScreeningOutcome,
    SyncCheckResult,
    SyncDecision,
)
from csp.compliance.sync_checks import run_sync_checks
from csp.core.models import ComplianceStatus


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "screening.db"


@pytest.fixture
def store(db_path):
    with ScreeningJobStore(db_path) as s:
        yield s


@pytest.fixture
def sync_result():
    return run_sync_checks(title="Quick cash", description="anonymous donors", goal_amount=10)


def approved_outcome(risk: float = 0.2) -> ScreeningOutcome:
    return ScreeningOutcome(
        decision=ScreeningDecision.APPROVED,
        compliance_status=ComplianceStatus.APPROVED,
        risk_score=risk,
        summary="Decision: approved",
        flags=[],
    )


class TestEnqueue:
    def test_enqueue_creates_pending_job(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        stored = store.get_job(job.job_id)

        assert stored.status == JobStatus.PENDING
        assert stored.job_type == "initial"
        assert stored.campaign_id == "campaign-1"
        assert stored.sync_findings == sync_result
        assert stored.risk_score == sync_result.risk_score
        assert stored.async_findings is None
        assert stored.locked_by is None

    def test_get_missing_job(self, store):
        assert store.get_job("nope") is None

    def test_to_dict(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        data = store.get_job(job.job_id).to_dict()
        assert data["status"] == "pending"
        assert data["sync_findings"]["decision"] == sync_result.decision.value
        assert data["async_findings"] is None


class TestClaim:
    def test_claim_all_then_none(self, store, sync_result):
        for i in range(3):
            store.enqueue(f"campaign-{i}", sync_result)

        claimed = store.claim_pending(limit=5, worker_id="w1")
        assert len(claimed) == 3
        assert all(job.status == JobStatus.PROCESSING for job in claimed)
        assert all(job.locked_by == "w1" and job.locked_at for job in claimed)
        assert all(job.started_at for job in claimed)

        assert store.claim_pending(limit=5, worker_id="w1") == []

    def test_claim_is_oldest_first_and_capped(self, store, sync_result):
        ids = [store.enqueue(f"campaign-{i}", sync_result).job_id for i in range(7)]

        claimed = store.claim_pending(limit=50, worker_id="w1")
        assert [job.job_id for job in claimed] == ids[:5]

    def test_claim_on_empty_queue(self, store):
        assert store.claim_pending(limit=5, worker_id="w1") == []

    def test_stale_read_loses_the_claim(self, db_path, sync_result):
        first = ScreeningJobStore(db_path)
        second = ScreeningJobStore(db_path)
        job = first.enqueue("campaign-1", sync_result)

        # Both workers read the job as pending before either updates it.
        seen_by_second = second.list_jobs(JobStatus.PENDING, newest_first=False)
        assert first.claim_pending(limit=5, worker_id="w1")[0].job_id == job.job_id

        cur = second.conn.execute(
            "UPDATE campaign_screenings SET status = 'processing', locked_by = 'w2' "
            "WHERE id = ? AND status = ?",
            (seen_by_second[0].job_id, seen_by_second[0].status.value),
        )
        second.conn.commit()
        assert cur.rowcount == 0
        assert first.get_job(job.job_id).locked_by == "w1"

    def test_concurrent_claims_are_exclusive(self, db_path, sync_result):
        seed = ScreeningJobStore(db_path)
        expected = {seed.enqueue(f"campaign-{i}", sync_result).job_id for i in range(12)}

        stores = [ScreeningJobStore(db_path) for _ in range(6)]

        def claim(args):
            index, s = args
            return [job.job_id for job in s.claim_pending(limit=5, worker_id=f"w{index}")]

        with ThreadPoolExecutor(max_workers=len(stores)) as pool:
            batches = list(pool.map(claim, enumerate(stores)))

        claimed = [job_id for batch in batches for job_id in batch]
        assert len(claimed) == len(set(claimed))
        assert set(claimed) <= expected
        for job_id in claimed:
            assert seed.get_job(job_id).status == JobStatus.PROCESSING

        # Whatever was left behind can still be claimed exactly once.
        rest = []
        while True:
            batch = seed.claim_pending(limit=5, worker_id="sweeper")
            if not batch:
                break
            rest.extend(job.job_id for job in batch)
        assert set(claimed) | set(rest) == expected
        assert not set(claimed) & set(rest)


class TestTerminalStates:
    def test_complete_job(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        store.claim_pending(limit=1, worker_id="w1")
        found = AsyncCheckResult(fraud=FraudScoreResult(score=0.2, reasons=["x"]))

        store.complete_job(job.job_id, approved_outcome(0.2), found)

        stored = store.get_job(job.job_id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.decision == "approved"
        assert stored.risk_score == 0.2
        assert stored.async_findings == found
        assert stored.completed_at is not None
        assert stored.failure_reason is None

    def test_sync_findings_unchanged_after_completion(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        before = store.get_job(job.job_id).sync_findings
        store.claim_pending(limit=1, worker_id="w1")
        store.complete_job(job.job_id, approved_outcome(), AsyncCheckResult())
        assert store.get_job(job.job_id).sync_findings == before == sync_result

    def test_complete_pending_job_is_rejected(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        with pytest.raises(InvalidTransitionError):
            store.complete_job(job.job_id, approved_outcome(), AsyncCheckResult())
        assert store.get_job(job.job_id).status == JobStatus.PENDING

    def test_complete_requires_lock_holder(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        store.claim_pending(limit=1, worker_id="w1")

        with pytest.raises(InvalidTransitionError):
            store.complete_job(job.job_id, approved_outcome(), AsyncCheckResult(), worker_id="w2")
        assert store.get_job(job.job_id).status == JobStatus.PROCESSING

        store.complete_job(job.job_id, approved_outcome(), AsyncCheckResult(), worker_id="w1")
        assert store.get_job(job.job_id).status == JobStatus.COMPLETED

    def test_expired_job_cannot_be_completed_by_its_worker(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        store.claim_pending(limit=1, worker_id="w1")
        store.expire_stale_locks(timedelta(0))

        with pytest.raises(InvalidTransitionError):
            store.complete_job(job.job_id, approved_outcome(), AsyncCheckResult(), worker_id="w1")
        stored = store.get_job(job.job_id)
        assert stored.status == JobStatus.FAILED
        assert stored.failure_reason.startswith("Lock expired")

    def test_fail_job(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        store.claim_pending(limit=1, worker_id="w1")
        assert store.fail_job(job.job_id, "Campaign gone") is True

        stored = store.get_job(job.job_id)
        assert stored.status == JobStatus.FAILED
        assert stored.failure_reason == "Campaign gone"

    def test_terminal_jobs_never_move(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        store.claim_pending(limit=1, worker_id="w1")
        store.fail_job(job.job_id, "boom")

        assert store.fail_job(job.job_id, "again") is False
        with pytest.raises(InvalidTransitionError):
            store.complete_job(job.job_id, approved_outcome(), AsyncCheckResult())
        assert store.claim_pending(limit=5, worker_id="w2") == []
        assert store.get_job(job.job_id).failure_reason == "boom"

    def test_enqueue_without_snapshot(self, store):
        job = store.enqueue("campaign-1", None)
        stored = store.get_job(job.job_id)
        assert stored.sync_findings is None
        assert stored.risk_score == 0.0


class TestMaintenance:
    def test_expire_stale_locks(self, store, sync_result):
        stale = store.enqueue("campaign-1", sync_result)
        store.claim_pending(limit=1, worker_id="crashed")
        pending = store.enqueue("campaign-2", sync_result)

        assert store.expire_stale_locks(timedelta(0)) == 1

        expired = store.get_job(stale.job_id)
        assert expired.status == JobStatus.FAILED
        assert expired.failure_reason.startswith("Lock expired")
        assert store.get_job(pending.job_id).status == JobStatus.PENDING

    def test_fresh_locks_are_kept(self, store, sync_result):
        job = store.enqueue("campaign-1", sync_result)
        store.claim_pending(limit=1, worker_id="w1")
        assert store.expire_stale_locks(timedelta(minutes=15)) == 0
        assert store.get_job(job.job_id).status == JobStatus.PROCESSING

    def test_count_and_list(self, store, sync_result):
        first = store.enqueue("campaign-1", sync_result)
        store.enqueue("campaign-2", sync_result)
        store.claim_pending(limit=1, worker_id="w1")

        assert store.count_by_status() == {
            "pending": 1,
            "processing": 1,
            "completed": 0,
            "failed": 0,
        }
        newest = store.list_jobs(limit=10)
        assert [job.campaign_id for job in newest] == ["campaign-2", "campaign-1"]
        assert store.list_jobs(JobStatus.PROCESSING)[0].job_id == first.job_id


def test_job_defaults():
    job = ScreeningJob(campaign_id="c")
    assert job.status == JobStatus.PENDING
    assert job.job_type == "initial"
    assert job.job_id
