"""Queue statistics for the screening job table."""

from dataclasses import dataclass
from typing import Dict

from rich.table import Table

from .job_store import ScreeningJobStore


@dataclass
class QueueStats:
    """
    Snapshot of job counts per status.
    
    Attributes:
        pending: Jobs waiting to be claimed
        processing: Jobs claimed by a worker
        completed: Jobs with a recorded outcome
        failed: Jobs that failed or whose lock expired
    """
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    
    @property
    def total_jobs(self) -> int:
        return self.pending + self.processing + self.completed + self.failed
    
    def completion_percentage(self) -> float:
        """Percentage of jobs in a terminal state."""
        if self.total_jobs == 0:
            return 0.0
        return (self.completed + self.failed) / self.total_jobs * 100
    
    @classmethod
    def from_counts(cls, counts: Dict[str, int]) -> "QueueStats":
        return cls(
            pending=counts.get("pending", 0),
            processing=counts.get("processing", 0),
            completed=counts.get("completed", 0),
            failed=counts.get("failed", 0),
        )
    
    @classmethod
    def collect(cls, store: ScreeningJobStore) -> "QueueStats":
        return cls.from_counts(store.count_by_status())
    
    def to_table(self):
        """Render as a rich table."""
        table = Table(title="Screening Queue")
        table.add_column("Status", style="cyan")
        table.add_column("Jobs", justify="right", style="green")
        for name in ("pending", "processing", "completed", "failed"):
            table.add_row(name, str(getattr(self, name)))
        table.add_row("[bold]Total[/bold]", f"[bold]{self.total_jobs}[/bold]")
        return table
