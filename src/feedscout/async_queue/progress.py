"""Queue statistics and their terminal rendering."""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from rich.table import Table

from .job_models import JobStatus, SearchJob


@dataclass
class QueueStats:
    """
    Counts of durable search jobs by status.

    Attributes:
        pending: Jobs waiting to be picked
        processing: Jobs claimed by a drainer
        completed: Jobs that finished with results
        failed: Jobs that exhausted their retries
        total: All jobs
    """
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0

    @classmethod
    def from_counts(cls, counts: Mapping[str, int]) -> "QueueStats":
        stats = cls()
        for status in JobStatus:
            setattr(stats, status.value, counts.get(status.value, 0))
        stats.total = sum(counts.values())
        return stats

    def completion_percentage(self) -> float:
        """Share of jobs in a terminal state."""
        if self.total == 0:
            return 0.0
        return (self.completed + self.failed) / self.total * 100

    def to_dict(self) -> Dict[str, int]:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
            "total": self.total,
        }


@dataclass
class QueueRunSummary:
    """Result of one drain of the durable queue."""

    processed: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "completed": self.completed,
            "failed": self.failed,
        }


def render_queue_stats(
    stats: QueueStats,
    llm_status: Optional[Mapping[str, Any]] = None,
) -> Table:
    """Build a rich table for the durable queue and, optionally, the LLM queue."""
    table = Table(title="Search Queue")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")

    table.add_row("Pending", str(stats.pending))
    table.add_row("Processing", str(stats.processing))
    table.add_row("Completed", str(stats.completed))
    table.add_row("Failed", str(stats.failed), style="red" if stats.failed else None)
    table.add_row("Total", str(stats.total))
    table.add_row("Done", f"{stats.completion_percentage():.1f}%")

    if llm_status:
        table.add_section()
        for key, value in llm_status.items():
            table.add_row(f"LLM {key.replace('_', ' ')}", str(value))

    return table


def render_jobs(jobs: Iterable[SearchJob]) -> Table:
    table = Table(title="Queue Items")
    table.add_column("ID", style="dim")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Results", justify="right")
    table.add_column("Error", overflow="fold")

    styles = {
        JobStatus.PENDING: "yellow",
        JobStatus.PROCESSING: "blue",
        JobStatus.COMPLETED: "green",
        JobStatus.FAILED: "red",
    }
    for job in jobs:
        table.add_row(
            job.id[:8],
            job.agent_id,
            f"[{styles[job.status]}]{job.status.value}[/]",
            f"{job.retry_count}/{job.max_retries}",
            "" if job.results_count is None else str(job.results_count),
            (job.error_message or "")[:80],
        )
    return table
