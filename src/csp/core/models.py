"""Core domain models for campaigns and their creators.

Campaigns and users are owned by the surrounding platform; this
package only reads the fields screening needs and writes back the
compliance fields.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator


class ComplianceStatus(str, Enum):
    """Compliance state shown on a campaign."""

    PENDING_SCREENING = "pending_screening"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    BLOCKED = "blocked"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Creator(BaseModel):
    """Account that created a campaign."""
    creator_id: str
    email: str
    created_at: datetime = Field(default_factory=utcnow)

    def account_age_days(self, now: Optional[datetime] = None) -> int:
        """Whole days since the account was created, never negative."""
        now = now or utcnow()
        created = self.created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return max(0, round((now - created).total_seconds() / 86400))


class Campaign(BaseModel):
    """Fundraising campaign with its mutable compliance fields."""

    campaign_id: str = Field(..., description="Internal unique ID")
    title: str
    description: str = ""
    reason: Optional[str] = Field(None, description="Category / reason for fundraising")
    fundraising_for: Optional[str] = Field(None, description="Beneficiary description")
    goal_amount: float = Field(0.0, ge=0)
    currency: str = "USD"
    duration_days: Optional[int] = Field(None, ge=0, description="Requested fundraising window")
    creator_id: Optional[str] = None
    gallery_images: List[str] = Field(default_factory=list)
    documents: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    # Compliance fields written by screening
    compliance_status: ComplianceStatus = ComplianceStatus.PENDING_SCREENING
    compliance_summary: Optional[str] = None
    compliance_flags: List[str] = Field(default_factory=list)
    risk_score: float = Field(0.0, ge=0.0, le=1.0)
    review_required: bool = False
    last_screened_at: Optional[datetime] = None
    blocked_at: Optional[datetime] = None

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, v: str) -> str:
        return (v or "USD").strip().upper()

    @property
    def media_assets(self) -> List[str]:
        """Every attached media reference, gallery first."""
        return [*self.gallery_images, *self.documents]

    @property
    def missing_context(self) -> bool:
        return not self.reason or not self.fundraising_for
