"""Synchronous screening checks run inline at campaign submission.

The checks are pure: they scan the submitted text for two tiers of
risk keywords and look for structural red flags (very large goals,
missing category or beneficiary).  They never raise; a campaign with
no signals simply scores zero.
"""

from __future__ import annotations

from typing import List, Optional

from .constants import (
    DEFAULT_RISK_POLICY,
    HIGH_RISK_KEYWORDS,
    MAX_SUMMARY_CHARS,
    MEDIUM_RISK_KEYWORDS,
    RiskPolicy,
    clamp_risk,
)
from .models import IssueSeverity, ScreeningIssue, SyncCheckResult, SyncDecision


def _normalize(value: Optional[str]) -> str:
    return (value or "").lower()


def find_keyword_hits(text: str, keywords: List[str]) -> List[str]:
    """Return the keywords contained in ``text``, in keyword-list order."""
    return [keyword for keyword in keywords if keyword in text]


def _tier_penalty(hits: int, base: float, per_extra_hit: float) -> float:
    if not hits:
        return 0.0
    return base + (hits - 1) * per_extra_hit


def decide_sync(risk_score: float, policy: RiskPolicy = DEFAULT_RISK_POLICY) -> SyncDecision:
    if risk_score >= policy.sync_block_threshold:
        return SyncDecision.BLOCK
    if risk_score >= policy.sync_review_threshold:
        return SyncDecision.REVIEW
    return SyncDecision.ALLOW


def run_sync_checks(
    title: str,
    description: str,
    reason: Optional[str] = None,
    fundraising_for: Optional[str] = None,
    goal_amount: float = 0.0,
    currency: str = "USD",
    creator_email: Optional[str] = None,
    policy: RiskPolicy = DEFAULT_RISK_POLICY,
) -> SyncCheckResult:
    """Scan a campaign submission and return a provisional decision.

    ``creator_email`` is accepted so callers can pass the full
    submission; the email is only matched against the watchlist in the
    asynchronous phase.
    """
    haystack = " ".join(
        [_normalize(title), _normalize(description), _normalize(reason), _normalize(fundraising_for)]
    )

    high_hits = find_keyword_hits(haystack, HIGH_RISK_KEYWORDS)
    medium_hits = find_keyword_hits(haystack, MEDIUM_RISK_KEYWORDS)

    risk = 0.0
    flags: List[str] = []
    issues: List[ScreeningIssue] = []

    if high_hits:
        risk += _tier_penalty(len(high_hits), policy.high_risk_base, policy.high_risk_per_extra_hit)
        flags.append("high_risk_language")
        issues.append(
            ScreeningIssue(
                code="keyword_high",
                detail=f"Detected prohibited language ({', '.join(high_hits)})",
                severity=IssueSeverity.HIGH,
            )
        )

    if medium_hits:
        risk += _tier_penalty(len(medium_hits), policy.medium_risk_base, policy.medium_risk_per_extra_hit)
        flags.append("medium_risk_language")
        issues.append(
            ScreeningIssue(
                code="keyword_medium",
                detail=f"Detected suspicious phrasing ({', '.join(medium_hits)})",
                severity=IssueSeverity.MEDIUM,
            )
        )

    if goal_amount > policy.sync_high_goal_amount:
        risk += policy.sync_high_goal_penalty
        flags.append("high_goal_amount")
        issues.append(
            ScreeningIssue(
                code="high_goal",
                detail=f"Large goal ({currency} {goal_amount:,.2f}) flagged for manual review",
                severity=IssueSeverity.MEDIUM,
            )
        )

    if not reason or not fundraising_for:
        risk += policy.missing_context_penalty
        flags.append("missing_context")
        issues.append(
            ScreeningIssue(
                code="missing_context",
                detail="Campaign lacks reason or beneficiary details",
                severity=IssueSeverity.LOW,
            )
        )

    risk_score = clamp_risk(risk)
    decision = decide_sync(risk_score, policy)

    verdict = "passed" if decision is SyncDecision.ALLOW else "flagged"
    signals = f"{len(issues)} signal(s)" if issues else "no strong signals"
    summary = f"Sync screening {verdict} ({risk_score:.2f}) {signals}"[:MAX_SUMMARY_CHARS]

    return SyncCheckResult(
        decision=decision,
        risk_score=risk_score,
        flags=flags,
        issues=issues,
        summary=summary,
    )
