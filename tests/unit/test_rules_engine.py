"""Unit tests for the rules engine."""

import pytest

from csp.compliance.models import (
    AsyncCheckResult,
    FraudScoreResult,
    MediaAnalysisResult,
    ScreeningDecision,
    SyncCheckResult,
    SyncDecision,
    TextModerationResult,
    WatchlistResult,
)
from csp.compliance.rules_engine import evaluate_screening
from csp.core.models import ComplianceStatus


def sync(risk: float = 0.0, flags=None) -> SyncCheckResult:
    decision = SyncDecision.BLOCK if risk >= 0.75 else SyncDecision.REVIEW if risk >= 0.4 else SyncDecision.ALLOW
    return SyncCheckResult(decision=decision, risk_score=risk, flags=flags or [], summary="")


class TestMerge:
    def test_sync_only_low_risk_is_approved(self):
        outcome = evaluate_screening(sync(0.1, ["missing_context"]))
        assert outcome.decision == ScreeningDecision.APPROVED
        assert outcome.compliance_status == ComplianceStatus.APPROVED
        assert outcome.risk_score == 0.1
        assert outcome.flags == ["missing_context"]

    def test_text_moderation_blocks(self):
        outcome = evaluate_screening(
            sync(0.0), AsyncCheckResult(text_moderation=TextModerationResult(flagged=True))
        )
        assert outcome.decision == ScreeningDecision.BLOCKED
        assert outcome.compliance_status == ComplianceStatus.BLOCKED
        assert outcome.risk_score == 0.85
        assert "text_moderation_flag" in outcome.flags

    def test_watchlist_blocks_despite_zero_sync_risk(self):
        outcome = evaluate_screening(
            sync(0.0), AsyncCheckResult(watchlist=WatchlistResult(matches=["isis"]))
        )
        assert outcome.decision == ScreeningDecision.BLOCKED
        assert outcome.risk_score == 0.75
        assert outcome.flags == ["watchlist_match"]

    def test_flagged_media_goes_to_review(self):
        outcome = evaluate_screening(
            sync(0.0),
            AsyncCheckResult(
                text_moderation=TextModerationResult(),
                media_analysis=MediaAnalysisResult(flagged_assets=["x.exe"], total_assets=3),
                fraud=FraudScoreResult(score=0.2, reasons=[]),
            ),
        )
        assert outcome.decision == ScreeningDecision.REVIEW
        assert outcome.compliance_status == ComplianceStatus.IN_REVIEW
        assert outcome.risk_score == 0.65
        assert outcome.flags == ["media_flagged"]

    def test_clean_media_result_adds_nothing(self):
        outcome = evaluate_screening(
            sync(0.0), AsyncCheckResult(media_analysis=MediaAnalysisResult(total_assets=2))
        )
        assert outcome.decision == ScreeningDecision.APPROVED
        assert outcome.flags == []

    @pytest.mark.parametrize(
        "score, flag, decision",
        [
            (0.30, None, ScreeningDecision.APPROVED),
            (0.45, "fraud_review", ScreeningDecision.REVIEW),
            (0.60, "fraud_review", ScreeningDecision.REVIEW),
            (0.75, "fraud_block", ScreeningDecision.REVIEW),
            (0.90, "fraud_block", ScreeningDecision.BLOCKED),
        ],
    )
    def test_fraud_thresholds(self, score, flag, decision):
        outcome = evaluate_screening(
            sync(0.0), AsyncCheckResult(fraud=FraudScoreResult(score=score))
        )
        assert outcome.risk_score == score
        assert outcome.decision == decision
        if flag:
            assert flag in outcome.flags
        else:
            assert outcome.flags == []

    def test_numeric_review_threshold(self):
        outcome = evaluate_screening(sync(0.55))
        assert outcome.decision == ScreeningDecision.REVIEW

    def test_numeric_block_threshold(self):
        outcome = evaluate_screening(sync(0.85, ["high_risk_language"]))
        assert outcome.decision == ScreeningDecision.BLOCKED

    def test_risk_never_decreases_below_sync(self):
        outcome = evaluate_screening(sync(0.7), AsyncCheckResult(fraud=FraudScoreResult(score=0.1)))
        assert outcome.risk_score == 0.7

    def test_flags_are_not_duplicated(self):
        outcome = evaluate_screening(
            sync(0.0, ["media_flagged"]),
            AsyncCheckResult(media_analysis=MediaAnalysisResult(flagged_assets=["a.zip"], total_assets=1)),
        )
        assert outcome.flags == ["media_flagged"]

    def test_summary(self):
        outcome = evaluate_screening(
            sync(0.1, ["missing_context"]),
            AsyncCheckResult(watchlist=WatchlistResult(matches=["osama"])),
        )
        assert outcome.summary == (
            "Decision: blocked | Risk: 0.75 | Signals: missing_context, watchlist_match"
        )

    def test_summary_without_flags(self):
        assert evaluate_screening(sync(0.0)).summary == "Decision: approved | Risk: 0.00"


class TestProperties:
    def test_deterministic(self):
        found = AsyncCheckResult(
            media_analysis=MediaAnalysisResult(flagged_assets=["a.bat"], total_assets=2),
            fraud=FraudScoreResult(score=0.5, reasons=["New account (under two weeks old)"]),
        )
        first = evaluate_screening(sync(0.3, ["medium_risk_language"]), found)
        second = evaluate_screening(sync(0.3, ["medium_risk_language"]), found)
        assert first == second

    def test_inputs_are_not_mutated(self):
        sync_result = sync(0.2, ["missing_context"])
        before = sync_result.model_dump()
        evaluate_screening(sync_result, AsyncCheckResult(watchlist=WatchlistResult(matches=["isis"])))
        assert sync_result.model_dump() == before

    @pytest.mark.parametrize("risk", [0.0, 0.2, 0.5, 0.8, 1.0])
    def test_blocking_flags_always_block(self, risk):
        for found in (
            AsyncCheckResult(text_moderation=TextModerationResult(flagged=True)),
            AsyncCheckResult(watchlist=WatchlistResult(matches=["taliban"])),
        ):
            outcome = evaluate_screening(sync(risk), found)
            assert outcome.decision == ScreeningDecision.BLOCKED
            assert 0.0 <= outcome.risk_score <= 1.0
