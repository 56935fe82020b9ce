"""
Campaign compliance screening.

* :func:`run_sync_checks` - inline keyword and structure scan run at
  submission time.
* :mod:`csp.compliance.analyzers` - text moderation, media inspection,
  watchlist matching and fraud scoring for the asynchronous phase.
* :func:`evaluate_screening` - merges both phases into a
  :class:`ScreeningOutcome`.
* :class:`~csp.compliance.orchestrator.ScreeningOrchestrator` - ties
  the phases to the job queue.
"""

from .constants import RiskPolicy, DEFAULT_RISK_POLICY
from .models import (
    SyncDecision,
    ScreeningDecision,
    ScreeningIssue,
    SyncCheckResult,
    TextModerationResult,
    MediaAnalysisResult,
    WatchlistResult,
    FraudScoreResult,
    AsyncCheckResult,
    ScreeningOutcome,
    JobResult,
    BatchReport,
)
from .sync_checks import run_sync_checks
from .rules_engine import evaluate_screening

__all__ = [
    "RiskPolicy",
    "DEFAULT_RISK_POLICY",
    "SyncDecision",
    "ScreeningDecision",
    "ScreeningIssue",
    "SyncCheckResult",
    "TextModerationResult",
    "MediaAnalysisResult",
    "WatchlistResult",
    "FraudScoreResult",
    "AsyncCheckResult",
    "ScreeningOutcome",
    "JobResult",
    "BatchReport",
    "run_sync_checks",
    "evaluate_screening",
]
