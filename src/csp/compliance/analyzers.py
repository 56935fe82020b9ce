"""Asynchronous analyzers for the second screening phase.

Four independent analyzers look at a campaign once it has been
persisted:

* :class:`TextModerator` - sends the description to an external
  moderation service.
* :func:`inspect_media_assets` - flags attachments with executable or
  archive extensions.
* :func:`match_watchlist` - substring match against sanctioned names.
* :func:`calculate_fraud_score` - deterministic fraud probability.

:func:`run_async_checks` runs all four concurrently.  Each analyzer
degrades to a neutral result on error so one failure never costs the
others their findings.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Awaitable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..async_queue.error_handler import CircuitOpenError, ErrorHandler, classify_error, is_transient
from ..config.settings import settings
from ..core.models import Campaign, Creator
from ..utils.logging import get_logger
from .constants import (
    DEFAULT_RISK_POLICY,
    RESTRICTED_MEDIA_EXTENSIONS,
    WATCHLIST_NAMES,
    RiskPolicy,
    clamp_risk,
)
from .models import (
    AsyncCheckResult,
    FraudScoreResult,
    MediaAnalysisResult,
    SyncCheckResult,
    TextModerationResult,
    WatchlistResult,
)

logger = get_logger(__name__)


class TextModerator:
    """Client for an OpenAI-compatible moderation endpoint.

    Without an API key every call returns an unflagged result with no
    categories.  Transient failures (timeouts, 429, 5xx) are retried
    with exponential backoff; whatever still fails, including an open
    circuit, is logged and mapped to the same neutral result.
    """

    SERVICE = "moderation"

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_chars: Optional[int] = None,
        max_retries: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.url = url or settings.moderation_url
        self.model = model or settings.moderation_model
        self.timeout = timeout if timeout is not None else settings.moderation_timeout
        self.max_chars = max_chars if max_chars is not None else settings.moderation_max_chars
        self.max_retries = max_retries if max_retries is not None else settings.moderation_max_retries
        self.client = client
        self.error_handler = error_handler or ErrorHandler()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def moderate(self, text: Optional[str]) -> Optional[TextModerationResult]:
        """Moderate ``text``; ``None`` when there is nothing to moderate."""
        if not text or not text.strip():
            return None
        if not self.configured:
            return TextModerationResult()

        breaker = self.error_handler.get_circuit_breaker(self.SERVICE)
        try:
            data = await breaker.call(self._post, text[: self.max_chars])
            return self._parse(data)
        except CircuitOpenError as e:
            logger.warning(f"Moderation skipped: {e}")
        except Exception as e:
            logger.warning(
                f"Moderation failed ({classify_error(e).value}): {str(e)[:200]}",
                extra={"analyzer": "text_moderation"},
            )
        return TextModerationResult()

    async def _post(self, text: str) -> Dict[str, Any]:
        payload = {"model": self.model, "input": text}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
            retry=retry_if_exception(is_transient),
            reraise=True,
        ):
            with attempt:
                if self.client is not None:
                    response = await self.client.post(
                        self.url, json=payload, headers=headers, timeout=self.timeout
                    )
                else:
                    async with httpx.AsyncClient(timeout=self.timeout) as client:
                        response = await client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
        raise RuntimeError("unreachable")  # pragma: no cover

    @staticmethod
    def _parse(data: Dict[str, Any]) -> TextModerationResult:
        results = data.get("results") or []
        if not results:
            return TextModerationResult()
        first = results[0]
        categories = {
            category: float(score)
            for category, score in (first.get("category_scores") or {}).items()
        }
        return TextModerationResult(flagged=bool(first.get("flagged")), categories=categories)


def _extension(url: str) -> str:
    return PurePosixPath(urlparse(url).path).suffix.lower()


def inspect_media_assets(urls: List[str]) -> Optional[MediaAnalysisResult]:
    """Flag attachments whose extension is on the deny-list.

    Returns ``None`` when there are no assets at all, so "nothing to
    check" is distinguishable from "checked and clean".
    """
    if not urls:
        return None
    flagged = [url for url in urls if _extension(url) in RESTRICTED_MEDIA_EXTENSIONS]
    return MediaAnalysisResult(flagged_assets=flagged, total_assets=len(urls))


def match_watchlist(haystack: Iterable[Optional[str]]) -> Optional[WatchlistResult]:
    """Return sanctioned terms contained in any haystack value, or ``None``."""
    normalized = [value.lower() for value in haystack if value]
    matches = [term for term in WATCHLIST_NAMES if any(term in value for value in normalized)]
    if not matches:
        return None
    return WatchlistResult(matches=matches)


def calculate_fraud_score(
    goal_amount: float,
    account_age_days: int,
    missing_details: bool,
    sync_risk_score: float,
    donation_window_days: Optional[int] = None,
    policy: RiskPolicy = DEFAULT_RISK_POLICY,
) -> FraudScoreResult:
    """Combine account, goal and sync signals into a fraud probability."""
    score = sync_risk_score * policy.fraud_sync_weight
    reasons: List[str] = []
    if score > 0:
        reasons.append(f"Sync risk contribution ({score:.2f})")

    if goal_amount > policy.fraud_high_goal_amount:
        score += policy.fraud_high_goal_weight
        reasons.append("High goal amount for new campaign")

    if account_age_days < policy.fraud_new_account_days:
        score += policy.fraud_new_account_weight
        reasons.append("New account (under two weeks old)")

    if missing_details:
        score += policy.fraud_missing_context_weight
        reasons.append("Missing beneficiary context")

    if (donation_window_days or 0) > policy.fraud_long_window_days:
        score += policy.fraud_long_window_weight
        reasons.append("Unusually long fundraising window")

    return FraudScoreResult(score=clamp_risk(score), reasons=reasons)


async def _settle(name: str, aw: Awaitable[Any], default: Any = None) -> Any:
    try:
        return await aw
    except Exception as e:
        logger.warning(
            f"Analyzer {name} failed, using neutral default: {e}",
            extra={"analyzer": name},
        )
        return default


async def _run(func, *args, **kwargs):
    return func(*args, **kwargs)


async def run_async_checks(
    campaign: Campaign,
    sync_result: SyncCheckResult,
    creator: Optional[Creator] = None,
    moderator: Optional[TextModerator] = None,
    policy: RiskPolicy = DEFAULT_RISK_POLICY,
    now: Optional[datetime] = None,
) -> AsyncCheckResult:
    """Run all four analyzers concurrently and collect their findings."""
    moderator = moderator or TextModerator()
    haystack = [
        campaign.title,
        campaign.description,
        campaign.reason,
        campaign.fundraising_for,
        creator.email if creator else None,
    ]
    # A missing creator is treated as a brand-new account.
    account_age = creator.account_age_days(now) if creator else 0

    outcomes = await asyncio.gather(
        _settle("text_moderation", moderator.moderate(campaign.description), TextModerationResult()),
        _settle("media_analysis", _run(inspect_media_assets, campaign.media_assets)),
        _settle("watchlist", _run(match_watchlist, haystack)),
        _settle(
            "fraud",
            _run(
                calculate_fraud_score,
                goal_amount=campaign.goal_amount,
                account_age_days=account_age,
                missing_details=campaign.missing_context,
                sync_risk_score=sync_result.risk_score,
                donation_window_days=campaign.duration_days,
                policy=policy,
            ),
        ),
        return_exceptions=True,
    )
    text_moderation, media_analysis, watchlist, fraud = [
        None if isinstance(item, BaseException) else item for item in outcomes
    ]
    return AsyncCheckResult(
        text_moderation=text_moderation,
        media_analysis=media_analysis,
        watchlist=watchlist,
        fraud=fraud,
    )
