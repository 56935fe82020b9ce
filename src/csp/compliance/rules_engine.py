"""Merge synchronous and asynchronous signals into one outcome.

Flag-based overrides dominate numeric thresholds: a moderation or
watchlist hit blocks a campaign whatever its aggregate score, because
those signals are treated as near-certain rather than probabilistic.
"""

from __future__ import annotations

from typing import List, Optional

from ..core.models import ComplianceStatus
from .constants import DEFAULT_RISK_POLICY, RiskPolicy, clamp_risk
from .models import AsyncCheckResult, ScreeningDecision, ScreeningOutcome, SyncCheckResult

BLOCKING_FLAGS = ("text_moderation_flag", "watchlist_match")
REVIEW_FLAGS = ("media_flagged", "fraud_review")

STATUS_FOR_DECISION = {
    ScreeningDecision.APPROVED: ComplianceStatus.APPROVED,
    ScreeningDecision.REVIEW: ComplianceStatus.IN_REVIEW,
    ScreeningDecision.BLOCKED: ComplianceStatus.BLOCKED,
}


def evaluate_screening(
    sync: SyncCheckResult,
    async_result: Optional[AsyncCheckResult] = None,
    policy: RiskPolicy = DEFAULT_RISK_POLICY,
) -> ScreeningOutcome:
    """Produce the final :class:`ScreeningOutcome`. Pure and deterministic."""
    flags: List[str] = list(sync.flags)
    risk = sync.risk_score
    found = async_result or AsyncCheckResult()

    def add_flag(flag: str) -> None:
        if flag not in flags:
            flags.append(flag)

    if found.text_moderation and found.text_moderation.flagged:
        add_flag("text_moderation_flag")
        risk = max(risk, policy.text_moderation_risk_floor)

    if found.media_analysis and found.media_analysis.flagged_assets:
        add_flag("media_flagged")
        risk = max(risk, policy.media_risk_floor)

    if found.watchlist and found.watchlist.matches:
        add_flag("watchlist_match")
        risk = max(risk, policy.watchlist_risk_floor)

    if found.fraud is not None:
        risk = max(risk, found.fraud.score)
        if found.fraud.score >= policy.fraud_block_threshold:
            add_flag("fraud_block")
        elif found.fraud.score >= policy.fraud_review_threshold:
            add_flag("fraud_review")

    risk = clamp_risk(risk)

    if risk >= policy.outcome_block_threshold or any(f in flags for f in BLOCKING_FLAGS):
        decision = ScreeningDecision.BLOCKED
    elif risk >= policy.outcome_review_threshold or any(f in flags for f in REVIEW_FLAGS):
        decision = ScreeningDecision.REVIEW
    else:
        decision = ScreeningDecision.APPROVED

    chunks = [f"Decision: {decision.value}", f"Risk: {risk:.2f}"]
    if flags:
        chunks.append(f"Signals: {', '.join(flags)}")

    return ScreeningOutcome(
        decision=decision,
        compliance_status=STATUS_FOR_DECISION[decision],
        risk_score=risk,
        summary=" | ".join(chunks),
        flags=flags,
    )
