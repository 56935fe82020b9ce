"""CLI application using Typer for the compliance screening pipeline."""

import asyncio
import uuid
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..async_queue.job_store import JobStatus, ScreeningJobStore
from ..async_queue.progress import QueueStats
from ..async_queue.worker import WorkerPool
from ..compliance.models import BatchReport, SyncCheckResult
from ..compliance.orchestrator import ScreeningOrchestrator
from ..compliance.sync_checks import run_sync_checks
from ..config.settings import settings
from ..core.models import Campaign, Creator
from ..io.campaign_store import CampaignStore
from ..utils.logging import get_logger

app = typer.Typer(
    name="csp",
    help="Compliance Screening Pipeline - fraud and policy screening for campaigns",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

DbOption = typer.Option(None, "--db", help="SQLite database (default: from settings)")


def _db(db: Optional[Path]) -> Path:
    return db or settings.db_path


def _orchestrator(db: Optional[Path], worker_id: Optional[str] = None) -> ScreeningOrchestrator:
    path = _db(db)
    return ScreeningOrchestrator(
        campaigns=CampaignStore(path),
        jobs=ScreeningJobStore(path),
        worker_id=worker_id,
    )


def _print_sync_result(result: SyncCheckResult) -> None:
    colour = {"allow": "green", "review": "yellow", "block": "red"}[result.decision.value]
    console.print(
        f"Decision: [bold {colour}]{result.decision.value}[/bold {colour}]  "
        f"Risk: {result.risk_score:.2f}"
    )
    if result.issues:
        table = Table(title="Issues")
        table.add_column("Code", style="cyan")
        table.add_column("Severity")
        table.add_column("Detail")
        for issue in result.issues:
            table.add_row(issue.code, issue.severity.value, issue.detail)
        console.print(table)
    console.print(result.summary)


def _print_report(report: BatchReport) -> None:
    table = Table(title="Screening Batch")
    table.add_column("Job", style="cyan")
    table.add_column("Decision")
    table.add_column("Risk", justify="right")
    table.add_column("Error", style="red")
    for item in report.results:
        if item.outcome:
            table.add_row(item.job_id[:8], item.outcome.decision.value, f"{item.outcome.risk_score:.2f}", "")
        else:
            table.add_row(item.job_id[:8], "-", "-", item.error or "")
    console.print(table)
    console.print(
        f"claimed={report.claimed} completed={report.completed} failed={report.failed}"
    )


@app.command("init-db")
def init_db(db: Optional[Path] = DbOption) -> None:
    """Create the campaign and job tables."""
    path = _db(db)
    CampaignStore(path).close()
    ScreeningJobStore(path).close()
    console.print(f"[green]Database ready:[/green] {path}")


@app.command()
def check(
    title: str = typer.Option(..., "--title", help="Campaign title"),
    description: str = typer.Option("", "--description", "-d", help="Campaign description"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Category / reason"),
    beneficiary: Optional[str] = typer.Option(None, "--beneficiary", help="Who the funds are for"),
    goal: float = typer.Option(0.0, "--goal", help="Goal amount"),
    currency: str = typer.Option("USD", "--currency"),
    email: Optional[str] = typer.Option(None, "--email", help="Creator email"),
) -> None:
    """Run the synchronous checks on a submission without storing anything."""
    result = run_sync_checks(
        title=title,
        description=description,
        reason=reason,
        fundraising_for=beneficiary,
        goal_amount=goal,
        currency=currency,
        creator_email=email,
    )
    _print_sync_result(result)


@app.command()
def submit(
    title: str = typer.Option(..., "--title", help="Campaign title"),
    description: str = typer.Option("", "--description", "-d", help="Campaign description"),
    reason: Optional[str] = typer.Option(None, "--reason", help="Category / reason"),
    beneficiary: Optional[str] = typer.Option(None, "--beneficiary", help="Who the funds are for"),
    goal: float = typer.Option(0.0, "--goal", help="Goal amount"),
    currency: str = typer.Option("USD", "--currency"),
    duration: Optional[int] = typer.Option(None, "--duration", help="Fundraising window in days"),
    email: str = typer.Option(..., "--email", help="Creator email"),
    media: List[str] = typer.Option([], "--media", help="Attached media URL (repeatable)"),
    db: Optional[Path] = DbOption,
) -> None:
    """Store a campaign, sync-check it and queue its asynchronous screening."""
    orchestrator = _orchestrator(db)
    creator = Creator(creator_id=str(uuid.uuid4()), email=email)
    orchestrator.campaigns.add_creator(creator)
    campaign = orchestrator.campaigns.add_campaign(
        Campaign(
            campaign_id=str(uuid.uuid4()),
            title=title,
            description=description,
            reason=reason,
            fundraising_for=beneficiary,
            goal_amount=goal,
            currency=currency,
            duration_days=duration,
            creator_id=creator.creator_id,
            gallery_images=media,
        )
    )
    sync_result, job = orchestrator.submit_campaign(campaign, creator_email=email)
    _print_sync_result(sync_result)
    console.print(f"Campaign: [cyan]{campaign.campaign_id}[/cyan]")
    console.print(f"Queued job: [cyan]{job.job_id}[/cyan]")


@app.command()
def process(
    limit: int = typer.Option(settings.claim_batch_limit, "--limit", "-n", min=1, max=5, help="Jobs to claim"),
    db: Optional[Path] = DbOption,
) -> None:
    """Claim and process one batch of pending screenings."""
    orchestrator = _orchestrator(db)
    report = asyncio.run(orchestrator.process_pending_screenings(limit))
    _print_report(report)


@app.command()
def jobs(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="pending|processing|completed|failed"),
    limit: int = typer.Option(20, "--limit", "-n"),
    db: Optional[Path] = DbOption,
) -> None:
    """List screening jobs, newest first."""
    try:
        job_status = JobStatus(status) if status else None
    except ValueError:
        console.print(f"[red]Unknown status: {status}[/red]")
        raise typer.Exit(1)
    store = ScreeningJobStore(_db(db))
    table = Table(title="Screening Jobs")
    table.add_column("Job", style="cyan")
    table.add_column("Campaign")
    table.add_column("Status")
    table.add_column("Decision")
    table.add_column("Risk", justify="right")
    table.add_column("Failure", style="red")
    for job in store.list_jobs(job_status, limit=limit):
        table.add_row(
            job.job_id[:8],
            job.campaign_id[:8],
            job.status.value,
            job.decision or "-",
            f"{job.risk_score:.2f}",
            job.failure_reason or "",
        )
    console.print(table)
    console.print(QueueStats.collect(store).to_table())


@app.command()
def sweep(
    minutes: int = typer.Option(settings.lock_timeout_minutes, "--minutes", "-m", min=1, help="Lock age to expire"),
    db: Optional[Path] = DbOption,
) -> None:
    """Fail processing jobs whose worker lock has expired."""
    expired = ScreeningJobStore(_db(db)).expire_stale_locks(timedelta(minutes=minutes))
    console.print(f"Expired {expired} stale lock(s)")


@app.command()
def worker(
    workers: int = typer.Option(settings.worker_count, "--workers", "-w", min=1),
    interval: float = typer.Option(settings.worker_poll_interval, "--interval", help="Seconds between polls"),
    limit: int = typer.Option(settings.claim_batch_limit, "--limit", "-n", min=1, max=5),
    db: Optional[Path] = DbOption,
) -> None:
    """Run polling workers until interrupted."""
    console.print(f"[bold blue]Starting {workers} screening worker(s)[/bold blue]")

    async def _run() -> None:
        pool = WorkerPool(
            lambda i: _orchestrator(db),
            num_workers=workers,
            batch_limit=limit,
            poll_interval=interval,
            lock_timeout=timedelta(minutes=settings.lock_timeout_minutes),
        )
        await pool.start()
        try:
            await pool.wait()
        finally:
            await pool.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("Workers stopped")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Hostname to bind the web server to."),
    port: int = typer.Option(8000, "--port", help="Port for the web server."),
) -> None:
    """Start the HTTP trigger for scheduled batch runs."""
    from ..web.app import start_server

    console.print(f"[bold blue]Starting web server[/bold blue] at http://{host}:{port}")
    start_server(host=host, port=port)


if __name__ == "__main__":
    app()
