"""Unit tests for the synchronous screening checks."""

import pytest

from csp.compliance.constants import RiskPolicy
from csp.compliance.models import IssueSeverity, SyncDecision
from csp.compliance.sync_checks import decide_sync, find_keyword_hits, run_sync_checks


def clean_submission(**overrides):
    fields = dict(
        title="Help rebuild the community library",
        description="We are raising money to replace books lost in the flood.",
        reason="Community",
        fundraising_for="Riverside public library",
        goal_amount=5_000,
        currency="USD",
    )
    fields.update(overrides)
    return fields


class TestKeywordScan:
    """Keyword tiers and their penalties."""

    def test_clean_campaign_scores_zero(self):
        result = run_sync_checks(**clean_submission())
        assert result.risk_score == 0.0
        assert result.decision == SyncDecision.ALLOW
        assert result.flags == []
        assert result.issues == []
        assert "no strong signals" in result.summary

    def test_bomb_with_missing_context_blocks(self):
        result = run_sync_checks(
            title="Urgent",
            description="We need money to build a bomb",
            goal_amount=100,
        )
        assert result.risk_score >= 0.65
        assert result.decision == SyncDecision.BLOCK
        assert "high_risk_language" in result.flags
        assert "missing_context" in result.flags

    def test_single_high_risk_hit_uses_base_penalty(self):
        result = run_sync_checks(**clean_submission(description="Fundraiser for a weapon"))
        assert result.risk_score == 0.65
        assert result.decision == SyncDecision.REVIEW
        assert result.issues[0].code == "keyword_high"
        assert result.issues[0].severity == IssueSeverity.HIGH
        assert "weapon" in result.issues[0].detail

    def test_extra_high_risk_hits_add_increment(self):
        result = run_sync_checks(
            **clean_submission(description="weapon and explosive supplies, not fraud")
        )
        # three hits: 0.65 + 2 * 0.05
        assert result.risk_score == 0.75
        assert result.decision == SyncDecision.BLOCK

    def test_medium_risk_terms(self):
        result = run_sync_checks(
            **clean_submission(description="Double your money with this crypto giveaway")
        )
        # two hits: 0.25 + 0.03
        assert result.risk_score == 0.28
        assert result.flags == ["medium_risk_language"]
        assert result.decision == SyncDecision.ALLOW

    def test_keywords_are_case_insensitive(self):
        result = run_sync_checks(**clean_submission(title="TERROR relief"))
        assert "high_risk_language" in result.flags

    def test_find_keyword_hits_preserves_list_order(self):
        assert find_keyword_hits("kill the bomb", ["bomb", "kill", "weapon"]) == ["bomb", "kill"]


class TestStructuralFlags:
    """Goal size and missing context."""

    def test_high_goal_amount(self):
        result = run_sync_checks(**clean_submission(goal_amount=2_000_000))
        assert "high_goal_amount" in result.flags
        assert result.risk_score == 0.10
        assert result.decision == SyncDecision.ALLOW
        assert "USD" in result.issues[0].detail

    def test_goal_at_threshold_is_not_flagged(self):
        result = run_sync_checks(**clean_submission(goal_amount=1_000_000))
        assert "high_goal_amount" not in result.flags

    @pytest.mark.parametrize("missing", ["reason", "fundraising_for"])
    def test_missing_context(self, missing):
        result = run_sync_checks(**clean_submission(**{missing: None}))
        assert result.flags == ["missing_context"]
        assert result.risk_score == 0.10
        assert result.issues[0].severity == IssueSeverity.LOW

    def test_issue_order_follows_checks(self):
        result = run_sync_checks(
            title="quick cash",
            description="bomb",
            goal_amount=5_000_000,
        )
        assert [i.code for i in result.issues] == [
            "keyword_high",
            "keyword_medium",
            "high_goal",
            "missing_context",
        ]


class TestScoreBounds:
    """Score clamping and decision thresholds."""

    def test_score_is_clamped_to_one(self):
        text = "weapon terror extremist hate crime bomb fraud money mule launder kill explosive"
        result = run_sync_checks(
            title=text,
            description="anonymous quick cash insider tip double your money",
            goal_amount=10_000_000,
        )
        assert result.risk_score == 1.0
        assert result.decision == SyncDecision.BLOCK

    @pytest.mark.parametrize(
        "score, expected",
        [
            (0.0, SyncDecision.ALLOW),
            (0.39, SyncDecision.ALLOW),
            (0.40, SyncDecision.REVIEW),
            (0.74, SyncDecision.REVIEW),
            (0.75, SyncDecision.BLOCK),
            (1.0, SyncDecision.BLOCK),
        ],
    )
    def test_decision_thresholds(self, score, expected):
        assert decide_sync(score) == expected

    def test_summary_is_truncated(self):
        result = run_sync_checks(**clean_submission())
        assert len(result.summary) <= 280

    def test_custom_policy(self):
        policy = RiskPolicy(missing_context_penalty=0.5)
        result = run_sync_checks(**clean_submission(reason=None), policy=policy)
        assert result.risk_score == 0.5
        assert result.decision == SyncDecision.REVIEW
