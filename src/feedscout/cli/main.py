"""CLI application using Typer for the feedscout search queue."""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console

from ..async_queue.job_models import JobStatus
from ..async_queue.progress import render_jobs, render_queue_stats
from ..async_queue.store import AgentRecord
from ..config.settings import settings
from ..services import ServiceContainer
from ..utils.logging import get_logger

app = typer.Typer(
    name="feedscout",
    help="feedscout - Topic search queue management",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

T = TypeVar("T")

DB_OPTION = typer.Option(None, "--db", help="SQLite database path (default: from settings)")


def _run(db: Optional[Path], action: Callable[[ServiceContainer], Awaitable[T]]) -> T:
    """Build the services, run one async action and close everything."""

    async def _main() -> T:
        container = ServiceContainer.from_settings(database_path=db)
        try:
            return await action(container)
        finally:
            await container.aclose()

    return asyncio.run(_main())


@app.command("add-agent")
def add_agent(
    agent_id: str = typer.Argument(..., help="Agent identifier"),
    user_id: str = typer.Option(..., "--user", help="Owning user id"),
    topic_id: str = typer.Option(..., "--topic", help="Topic id"),
    title: str = typer.Option("", "--title", help="Topic title"),
    prompt: Optional[str] = typer.Option(None, "--prompt", help="Master prompt for the search"),
    keywords: str = typer.Option("", "--keywords", help="Comma-separated keywords"),
    sources: str = typer.Option("", "--sources", help="Comma-separated preferred sources"),
    inactive: bool = typer.Option(False, "--inactive", help="Register the agent as inactive"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Register or update a search agent."""
    agent = AgentRecord(
        agent_id=agent_id,
        user_id=user_id,
        topic_id=topic_id,
        name=f"Agent for {title}" if title else agent_id,
        master_prompt=prompt,
        topic_title=title,
        keywords=[k.strip() for k in keywords.split(",") if k.strip()],
        sources=[s.strip() for s in sources.split(",") if s.strip()],
        status="inactive" if inactive else "active",
    )

    async def _action(container: ServiceContainer) -> None:
        container.store.upsert_agent(agent)

    _run(db, _action)
    console.print(f"[green]Saved agent {agent_id}[/green] ({agent.status})")


@app.command()
def enqueue(
    agent_ids: List[str] = typer.Argument(..., help="Agent ids to enqueue"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Create pending search jobs for the given active agents."""

    async def _action(container: ServiceContainer) -> int:
        return await container.search_queue.enqueue_agents(agent_ids)

    count = _run(db, _action)
    console.print(f"[cyan]Enqueued {count} of {len(agent_ids)} agents[/cyan]")


@app.command()
def process(db: Optional[Path] = DB_OPTION) -> None:
    """Drain pending search jobs with rate limiting."""
    console.print("[bold blue]Processing search queue[/bold blue]")

    async def _action(container: ServiceContainer) -> Any:
        return await container.search_queue.process_queue()

    summary = _run(db, _action)
    console.print(
        f"[green]Processed {summary.processed}[/green]: "
        f"{summary.completed} completed, {summary.failed} failed"
    )
    if summary.failed:
        raise typer.Exit(1)


@app.command("daily-search")
def daily_search(db: Optional[Path] = DB_OPTION) -> None:
    """Enqueue every active agent and drain the queue."""

    async def _action(container: ServiceContainer) -> Any:
        return await container.run_daily_search()

    result = _run(db, _action)
    console.print(
        f"Enqueued {result['enqueued']}, processed {result['processed']} "
        f"({result['completed']} completed, {result['failed']} failed)"
    )


@app.command()
def stats(db: Optional[Path] = DB_OPTION) -> None:
    """Show queue statistics."""

    async def _action(container: ServiceContainer) -> Any:
        queue_stats = await container.search_queue.get_queue_stats()
        return queue_stats, container.llm_queue.get_queue_status().to_dict()

    queue_stats, llm_status = _run(db, _action)
    console.print(render_queue_stats(queue_stats, llm_status))


@app.command()
def items(
    status: Optional[JobStatus] = typer.Option(None, "--status", help="Filter by status"),
    user_id: Optional[str] = typer.Option(None, "--user", help="Filter by user"),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum rows"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """List queue items, newest first."""

    async def _action(container: ServiceContainer) -> Any:
        return await container.search_queue.list_items(status=status, user_id=user_id, limit=limit)

    jobs = _run(db, _action)
    if not jobs:
        console.print("[yellow]No queue items[/yellow]")
        return
    console.print(render_jobs(jobs))


@app.command()
def cleanup(
    days: int = typer.Option(settings.cleanup_days, "--days", help="Age in days of completed jobs to delete"),
    db: Optional[Path] = DB_OPTION,
) -> None:
    """Delete completed jobs older than the given age."""

    async def _action(container: ServiceContainer) -> int:
        return await container.search_queue.clear_old_items(days)

    deleted = _run(db, _action)
    console.print(f"Cleared {deleted} old queue items")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Hostname to bind the web server to."),
    port: int = typer.Option(8000, "--port", help="Port for the web server."),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Enable auto-reload (development only)."),
) -> None:
    """Start the HTTP API."""
    from ..web.app import start_server

    console.print(f"[bold green]Starting feedscout API on http://{host}:{port}[/bold green]")
    start_server(host=host, port=port, reload=reload)


@app.command()
def version() -> None:
    """Show version information."""
    from .. import __version__
    console.print(f"feedscout v{__version__}")


if __name__ == "__main__":
    app()
