"""FastAPI trigger for the screening batch runner.

A scheduler (cron, Cloud Scheduler, ...) POSTs to
``/api/cron/compliance/screenings`` to run one batch.  When
``CRON_SECRET`` is configured the request must carry it as a bearer
token.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from ..async_queue.job_store import ScreeningJobStore
from ..compliance.constants import MAX_CLAIM_BATCH
from ..compliance.orchestrator import ScreeningOrchestrator
from ..config.settings import settings
from ..io.campaign_store import CampaignStore
from ..utils.logging import get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="Compliance Screening Pipeline",
    description="Trigger endpoint for asynchronous campaign screening",
    version="0.1.0",
)


@lru_cache(maxsize=1)
def get_orchestrator() -> ScreeningOrchestrator:
    """Orchestrator bound to the configured database."""
    return ScreeningOrchestrator(
        campaigns=CampaignStore(settings.db_path),
        jobs=ScreeningJobStore(settings.db_path),
    )


def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    if not settings.cron_secret:
        return
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.exception_handler(HTTPException)
async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


def _parse_limit(payload: Any) -> int:
    limit = MAX_CLAIM_BATCH
    if isinstance(payload, dict) and payload.get("limit") is not None:
        try:
            limit = int(payload["limit"])
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="limit must be an integer")
    return max(0, min(limit, MAX_CLAIM_BATCH))


@app.post("/api/cron/compliance/screenings", dependencies=[Depends(require_cron_secret)])
async def run_screenings(
    request: Request,
    orchestrator: ScreeningOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Run one screening batch and report what happened."""
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    limit = _parse_limit(payload)

    try:
        report = await orchestrator.process_pending_screenings(limit)
    except Exception as e:
        logger.error(f"Compliance screening batch failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Failed to process compliance screenings",
                "detail": str(e) or "Unknown error",
            },
        )

    results: List[Dict[str, Any]] = [
        item.model_dump(mode="json", exclude_none=True) for item in report.results
    ]
    return JSONResponse(
        content={
            "success": True,
            "processed": report.completed,
            "failed": report.failed,
            "claimed": report.claimed,
            "results": results,
        }
    )


@app.get("/api/cron/compliance/screenings", dependencies=[Depends(require_cron_secret)])
async def screenings_alive() -> Dict[str, Any]:
    """Liveness probe for the trigger."""
    return {
        "success": True,
        "message": "Compliance screening cron alive",
        "note": "Invoke POST to process queued screenings",
    }


def start_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    """Start the Uvicorn web server."""
    uvicorn.run(
        "csp.web.app:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    start_server()
