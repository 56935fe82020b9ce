"""Campaign and creator persistence.

The campaign record belongs to the wider platform.  Screening only
needs the read and write operations declared on
:class:`CampaignRepository`; :class:`CampaignStore` implements them on
SQLite so the pipeline and its CLI can run stand-alone.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..compliance.models import ScreeningOutcome
from ..core.models import Campaign, ComplianceStatus, Creator, utcnow
from ..utils.logging import get_logger
from .database import connect

logger = get_logger(__name__)


class CampaignRepository(ABC):
    """Boundary to the platform's campaign and user data."""

    @abstractmethod
    def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        raise NotImplementedError

    @abstractmethod
    def get_creator(self, creator_id: str) -> Optional[Creator]:
        raise NotImplementedError

    @abstractmethod
    def update_compliance(self, campaign_id: str, outcome: ScreeningOutcome) -> None:
        """Write the final outcome of a completed screening job."""
        raise NotImplementedError

    @abstractmethod
    def apply_provisional_summary(
        self, campaign_id: str, summary: str, flags: List[str], risk_score: float
    ) -> None:
        """Best-effort summary write after a passing sync check."""
        raise NotImplementedError


def _json_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        return []
    return [str(item) for item in parsed] if isinstance(parsed, list) else []


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class CampaignStore(CampaignRepository):
    """SQLite-backed campaign and creator tables."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn = connect(db_path)
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS campaigns (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                reason TEXT,
                fundraising_for TEXT,
                goal_amount REAL NOT NULL DEFAULT 0,
                currency TEXT NOT NULL DEFAULT 'USD',
                duration_days INTEGER,
                creator_id TEXT,
                gallery_images TEXT,
                documents TEXT,
                created_at TEXT NOT NULL,
                compliance_status TEXT NOT NULL DEFAULT 'pending_screening',
                compliance_summary TEXT,
                compliance_flags TEXT,
                risk_score REAL NOT NULL DEFAULT 0,
                review_required INTEGER NOT NULL DEFAULT 0,
                last_screened_at TEXT,
                blocked_at TEXT,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_campaigns_creator ON campaigns(creator_id);
            """
        )
        self.conn.commit()

    def add_creator(self, creator: Creator) -> Creator:
        self.conn.execute(
            "INSERT OR REPLACE INTO users (id, email, created_at) VALUES (?, ?, ?)",
            (creator.creator_id, creator.email, creator.created_at.isoformat()),
        )
        self.conn.commit()
        return creator

    def add_campaign(self, campaign: Campaign) -> Campaign:
        now = utcnow().isoformat()
        self.conn.execute(
            """INSERT INTO campaigns
            (id, title, description, reason, fundraising_for, goal_amount, currency,
             duration_days, creator_id, gallery_images, documents, created_at,
             compliance_status, compliance_summary, compliance_flags, risk_score,
             review_required, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                campaign.campaign_id,
                campaign.title,
                campaign.description,
                campaign.reason,
                campaign.fundraising_for,
                campaign.goal_amount,
                campaign.currency,
                campaign.duration_days,
                campaign.creator_id,
                json.dumps(campaign.gallery_images),
                json.dumps(campaign.documents),
                campaign.created_at.isoformat(),
                campaign.compliance_status.value,
                campaign.compliance_summary,
                json.dumps(campaign.compliance_flags),
                campaign.risk_score,
                int(campaign.review_required),
                now,
            ),
        )
        self.conn.commit()
        return campaign

    def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        row = self.conn.execute("SELECT * FROM campaigns WHERE id = ?", (campaign_id,)).fetchone()
        if not row:
            return None
        return Campaign(
            campaign_id=row["id"],
            title=row["title"],
            description=row["description"],
            reason=row["reason"],
            fundraising_for=row["fundraising_for"],
            goal_amount=row["goal_amount"] or 0.0,
            currency=row["currency"],
            duration_days=row["duration_days"],
            creator_id=row["creator_id"],
            gallery_images=_json_list(row["gallery_images"]),
            documents=_json_list(row["documents"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            compliance_status=ComplianceStatus(row["compliance_status"]),
            compliance_summary=row["compliance_summary"],
            compliance_flags=_json_list(row["compliance_flags"]),
            risk_score=row["risk_score"],
            review_required=bool(row["review_required"]),
            last_screened_at=_dt(row["last_screened_at"]),
            blocked_at=_dt(row["blocked_at"]),
        )

    def get_creator(self, creator_id: str) -> Optional[Creator]:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (creator_id,)).fetchone()
        if not row:
            return None
        return Creator(
            creator_id=row["id"],
            email=row["email"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def update_compliance(self, campaign_id: str, outcome: ScreeningOutcome) -> None:
        now = utcnow().isoformat()
        blocked = outcome.compliance_status == ComplianceStatus.BLOCKED
        self.conn.execute(
            """UPDATE campaigns SET
                compliance_status = ?, compliance_summary = ?, compliance_flags = ?,
                risk_score = ?, review_required = ?, last_screened_at = ?,
                blocked_at = ?, updated_at = ?
            WHERE id = ?""",
            (
                outcome.compliance_status.value,
                outcome.summary,
                json.dumps(outcome.flags),
                round(outcome.risk_score, 2),
                int(outcome.compliance_status == ComplianceStatus.IN_REVIEW),
                now,
                now if blocked else None,
                now,
                campaign_id,
            ),
        )
        self.conn.commit()

    def apply_provisional_summary(
        self, campaign_id: str, summary: str, flags: List[str], risk_score: float
    ) -> None:
        self.conn.execute(
            """UPDATE campaigns SET compliance_summary = ?, compliance_flags = ?,
                risk_score = ?, updated_at = ?
            WHERE id = ?""",
            (summary, json.dumps(flags), round(risk_score, 2), utcnow().isoformat(), campaign_id),
        )
        self.conn.commit()

    def delete_campaign(self, campaign_id: str) -> None:
        self.conn.execute("DELETE FROM campaigns WHERE id = ?", (campaign_id,))
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
