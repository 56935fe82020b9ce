"""Coordinate the two screening phases around the durable job queue.

:class:`ScreeningOrchestrator` is what the rest of the platform calls:

* at submission, :meth:`~ScreeningOrchestrator.submit_campaign` runs
  the sync checks inline and enqueues a job carrying their result;
* out of band, :meth:`~ScreeningOrchestrator.process_pending_screenings`
  claims a small batch of jobs, runs the analyzers, merges the signals
  and writes the outcome to the job and then the campaign.

Failures never escape a single job: the job is marked failed and the
campaign keeps whatever compliance state it had before.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import timedelta
from typing import Optional, Tuple

from ..async_queue.job_store import ScreeningJob, ScreeningJobStore
from ..config.settings import settings
from ..core.models import Campaign
from ..io.campaign_store import CampaignRepository
from ..utils.logging import get_logger
from .analyzers import TextModerator, run_async_checks
from .constants import DEFAULT_RISK_POLICY, DEFAULT_SCREENING_SUMMARY, RiskPolicy
from .models import BatchReport, JobResult, ScreeningOutcome, SyncCheckResult, SyncDecision
from .rules_engine import evaluate_screening
from .sync_checks import run_sync_checks

logger = get_logger(__name__)


class JobNotFoundError(LookupError):
    """The screening job row disappeared before it could be processed."""


class CampaignNotFoundError(LookupError):
    """The campaign referenced by a job no longer exists."""


class ScreeningOrchestrator:
    """Enqueue, claim and process campaign screening jobs."""

    def __init__(
        self,
        campaigns: CampaignRepository,
        jobs: ScreeningJobStore,
        moderator: Optional[TextModerator] = None,
        policy: RiskPolicy = DEFAULT_RISK_POLICY,
        worker_id: Optional[str] = None,
    ) -> None:
        self.campaigns = campaigns
        self.jobs = jobs
        self.moderator = moderator or TextModerator()
        self.policy = policy
        self.worker_id = worker_id or f"compliance-worker-{uuid.uuid4().hex[:8]}"
        self._io_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Submission side

    def run_sync_screening(self, campaign: Campaign, creator_email: Optional[str] = None) -> SyncCheckResult:
        return run_sync_checks(
            title=campaign.title,
            description=campaign.description,
            reason=campaign.reason,
            fundraising_for=campaign.fundraising_for,
            goal_amount=campaign.goal_amount,
            currency=campaign.currency,
            creator_email=creator_email,
            policy=self.policy,
        )

    def enqueue_screening_job(self, campaign_id: str, sync_result: SyncCheckResult) -> ScreeningJob:
        return self.jobs.enqueue(campaign_id, sync_result, job_type="initial")

    def initialize_screening_for_campaign(
        self, campaign_id: str, sync_result: SyncCheckResult
    ) -> ScreeningJob:
        """Enqueue the async pass and, for a passing sync check, show its summary now."""
        job = self.enqueue_screening_job(campaign_id, sync_result)
        if sync_result.decision is SyncDecision.ALLOW:
            try:
                self.campaigns.apply_provisional_summary(
                    campaign_id,
                    summary=sync_result.summary or DEFAULT_SCREENING_SUMMARY,
                    flags=list(sync_result.flags),
                    risk_score=sync_result.risk_score,
                )
            except Exception as e:
                # The async pass will write the real outcome later.
                logger.warning(f"Provisional summary for campaign {campaign_id} not written: {e}")
        return job

    def submit_campaign(
        self, campaign: Campaign, creator_email: Optional[str] = None
    ) -> Tuple[SyncCheckResult, ScreeningJob]:
        """Sync-check a newly created or edited campaign and queue its async pass."""
        sync_result = self.run_sync_screening(campaign, creator_email)
        job = self.initialize_screening_for_campaign(campaign.campaign_id, sync_result)
        logger.info(
            f"Campaign {campaign.campaign_id} sync screening: {sync_result.decision.value} "
            f"({sync_result.risk_score:.2f})"
        )
        return sync_result, job

    def rescreen_campaign(self, campaign_id: str) -> ScreeningJob:
        """Queue a fresh screening pass for a stored campaign."""
        campaign = self.campaigns.get_campaign(campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
        creator = self.campaigns.get_creator(campaign.creator_id) if campaign.creator_id else None
        _, job = self.submit_campaign(campaign, creator.email if creator else None)
        return job

    # ------------------------------------------------------------------
    # Worker side

    async def _io(self, func, *args, **kwargs):
        """Run a blocking store call in a thread, one at a time per orchestrator."""
        async with self._io_lock:
            return await asyncio.to_thread(func, *args, **kwargs)

    async def process_job(self, job_id: str) -> ScreeningOutcome:
        """Run the async phase for a job claimed by this worker and persist its outcome.

        The job is completed first, conditional on this worker still
        holding its lock; the campaign is only written when that
        succeeds.  A job whose lock expired mid-flight therefore stays
        failed and its campaign keeps its previous compliance state.
        """
        job = await self._io(self.jobs.get_job, job_id)
        if job is None:
            raise JobNotFoundError(f"Screening job {job_id} not found")

        campaign = await self._io(self.campaigns.get_campaign, job.campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(f"Campaign {job.campaign_id} not found")
        creator = None
        if campaign.creator_id:
            creator = await self._io(self.campaigns.get_creator, campaign.creator_id)

        # Jobs enqueued without a snapshot get one derived from the stored campaign.
        sync_result = job.sync_findings or self.run_sync_screening(
            campaign, creator.email if creator else None
        )

        async_result = await run_async_checks(
            campaign,
            sync_result,
            creator=creator,
            moderator=self.moderator,
            policy=self.policy,
        )
        outcome = evaluate_screening(sync_result, async_result, policy=self.policy)

        await self._io(
            self.jobs.complete_job, job.job_id, outcome, async_result, worker_id=self.worker_id
        )
        try:
            await self._io(self.campaigns.update_compliance, campaign.campaign_id, outcome)
        except Exception:
            logger.error(
                f"Job {job.job_id[:8]} completed but campaign {campaign.campaign_id} "
                "was not updated; re-screen it once the store is back",
                exc_info=True,
            )
            raise
        return outcome

    async def process_pending_screenings(self, limit: Optional[int] = None) -> BatchReport:
        """Claim and process one batch; never raises for individual job failures."""
        limit = settings.claim_batch_limit if limit is None else limit
        claimed = await self._io(self.jobs.claim_pending, limit, self.worker_id)
        report = BatchReport(claimed=len(claimed))

        for job in claimed:
            try:
                outcome = await self.process_job(job.job_id)
            except Exception as e:
                message = str(e) or "Failed to process screening job"
                logger.error(f"Screening job {job.job_id[:8]} failed: {message}", exc_info=True)
                try:
                    await self._io(self.jobs.fail_job, job.job_id, message)
                except Exception:
                    logger.exception(f"Could not record failure for job {job.job_id[:8]}")
                report.results.append(JobResult(job_id=job.job_id, error=message))
                report.failed += 1
                continue

            logger.info(
                f"Screening job {job.job_id[:8]} completed: {outcome.decision.value} "
                f"({outcome.risk_score:.2f})",
                extra={"campaign_id": job.campaign_id, "decision": outcome.decision.value},
            )
            report.results.append(JobResult(job_id=job.job_id, outcome=outcome))
            report.completed += 1

        return report

    def expire_stale_locks(self, max_age: Optional[timedelta] = None) -> int:
        if max_age is None:
            max_age = timedelta(minutes=settings.lock_timeout_minutes)
        return self.jobs.expire_stale_locks(max_age)
