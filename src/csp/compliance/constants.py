"""Keyword tiers, deny-lists and risk weights used by screening.

The numeric weights are heuristics with no derivation beyond
operational experience, so they are collected in :class:`RiskPolicy`
rather than scattered through the checks.  Pass a customised policy
to any of the pure screening functions to tune them.
"""

from typing import List
from pydantic import BaseModel, Field


HIGH_RISK_KEYWORDS: List[str] = [
    "weapon",
    "terror",
    "extremist",
    "hate crime",
    "bomb",
    "fraud",
    "money mule",
    "wash funds",
    "launder",
    "kill",
    "explosive",
]

MEDIUM_RISK_KEYWORDS: List[str] = [
    "investment guaranteed",
    "double your money",
    "quick cash",
    "anonymous",
    "crypto giveaway",
    "insider tip",
]

RESTRICTED_MEDIA_EXTENSIONS: List[str] = [".exe", ".zip", ".bat", ".cmd"]

WATCHLIST_NAMES: List[str] = [
    "osama",
    "isis",
    "alqeda",
    "taliban",
    "hezbollah",
]

DEFAULT_SCREENING_SUMMARY = (
    "Campaign submitted for screening. Awaiting automated and manual compliance checks."
)

MAX_SUMMARY_CHARS = 280
MAX_CLAIM_BATCH = 5


class RiskPolicy(BaseModel):
    """Weights and thresholds for sync checks, fraud scoring and rules."""

    # Sync checks
    high_risk_base: float = Field(0.65, ge=0)
    high_risk_per_extra_hit: float = Field(0.05, ge=0)
    medium_risk_base: float = Field(0.25, ge=0)
    medium_risk_per_extra_hit: float = Field(0.03, ge=0)
    sync_high_goal_amount: float = Field(1_000_000, ge=0)
    sync_high_goal_penalty: float = Field(0.10, ge=0)
    missing_context_penalty: float = Field(0.10, ge=0)
    sync_block_threshold: float = Field(0.75, ge=0, le=1)
    sync_review_threshold: float = Field(0.40, ge=0, le=1)

    # Fraud scoring
    fraud_sync_weight: float = Field(0.4, ge=0)
    fraud_high_goal_amount: float = Field(250_000, ge=0)
    fraud_high_goal_weight: float = Field(0.25, ge=0)
    fraud_new_account_days: int = Field(14, ge=0)
    fraud_new_account_weight: float = Field(0.20, ge=0)
    fraud_missing_context_weight: float = Field(0.15, ge=0)
    fraud_long_window_days: int = Field(90, ge=0)
    fraud_long_window_weight: float = Field(0.10, ge=0)
    fraud_review_threshold: float = Field(0.45, ge=0, le=1)
    fraud_block_threshold: float = Field(0.75, ge=0, le=1)

    # Rules engine
    text_moderation_risk_floor: float = Field(0.85, ge=0, le=1)
    media_risk_floor: float = Field(0.65, ge=0, le=1)
    watchlist_risk_floor: float = Field(0.75, ge=0, le=1)
    outcome_block_threshold: float = Field(0.85, ge=0, le=1)
    outcome_review_threshold: float = Field(0.55, ge=0, le=1)


DEFAULT_RISK_POLICY = RiskPolicy()


def clamp_risk(value: float) -> float:
    """Clamp a risk score to [0, 1] and round to two decimals."""
    return round(min(1.0, max(0.0, value)), 2)
