"""Value objects produced and consumed by the screening pipeline.

The stored job findings are JSON documents; these models give them an
explicit shape.  Optional sub-results on :class:`AsyncCheckResult`
distinguish "analyzer had nothing to check" (``None``) from "checked
and clean" (a present result with no hits).
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..core.models import ComplianceStatus


class SyncDecision(str, Enum):
    """Provisional decision from the synchronous checks."""

    ALLOW = "allow"
    REVIEW = "review"
    BLOCK = "block"


class ScreeningDecision(str, Enum):
    """Final decision after merging all signals."""

    APPROVED = "approved"
    REVIEW = "review"
    BLOCKED = "blocked"


class IssueSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ScreeningIssue(BaseModel):
    """A single problem found by the synchronous checks."""

    code: str
    detail: str
    severity: IssueSeverity


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


class SyncCheckResult(BaseModel):
    """Result of the inline keyword and structure scan."""

    model_config = {"frozen": True}

    decision: SyncDecision
    risk_score: float = Field(ge=0.0, le=1.0)
    flags: List[str] = Field(default_factory=list)
    issues: List[ScreeningIssue] = Field(default_factory=list)
    summary: str = Field("", max_length=280)

    @field_validator("flags")
    @classmethod
    def _dedupe_flags(cls, v: List[str]) -> List[str]:
        return _unique(v)


class TextModerationResult(BaseModel):
    """Response of the external moderation service."""

    flagged: bool = False
    categories: Dict[str, float] = Field(default_factory=dict)


class MediaAnalysisResult(BaseModel):
    """Attached media whose file type is not allowed."""

    flagged_assets: List[str] = Field(default_factory=list)
    total_assets: int = Field(0, ge=0)


class WatchlistResult(BaseModel):
    """Sanctioned terms found in campaign text or creator email."""

    matches: List[str] = Field(default_factory=list)


class FraudScoreResult(BaseModel):
    """Deterministic fraud probability and the rules that contributed."""

    score: float = Field(ge=0.0, le=1.0)
    reasons: List[str] = Field(default_factory=list)


class AsyncCheckResult(BaseModel):
    """Combined output of the asynchronous analyzers."""

    text_moderation: Optional[TextModerationResult] = None
    media_analysis: Optional[MediaAnalysisResult] = None
    watchlist: Optional[WatchlistResult] = None
    fraud: Optional[FraudScoreResult] = None


class ScreeningOutcome(BaseModel):
    """Final merged decision for one screening pass."""

    decision: ScreeningDecision
    compliance_status: ComplianceStatus
    risk_score: float = Field(ge=0.0, le=1.0)
    summary: str
    flags: List[str] = Field(default_factory=list)


class JobResult(BaseModel):
    """Per-job entry of a batch report; exactly one of outcome/error is set."""

    job_id: str
    outcome: Optional[ScreeningOutcome] = None
    error: Optional[str] = None


class BatchReport(BaseModel):
    """Counts and per-job results of one batch run."""

    claimed: int = 0
    completed: int = 0
    failed: int = 0
    results: List[JobResult] = Field(default_factory=list)
