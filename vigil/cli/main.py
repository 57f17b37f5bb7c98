"""
Vigil CLI entry point.

Commands:
    vigil jobs     - List research jobs
    vigil add      - Create a research job
    vigil show     - Show one job (and its runs)
    vigil trigger  - Run a job now
    vigil run-due  - Run the jobs that are due (point cron at this)
    vigil seed     - Create the default job roster
    vigil serve    - Start the HTTP API
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from vigil import __version__
from vigil.core.config import VigilConfig
from vigil.core.errors import VigilError
from vigil.core.factory import build_agent, shutdown
from vigil.core.log import setup_logging
from vigil.scheduler.agent import ResearchAutonomyAgent
from vigil.scheduler.job import JobDefinition, ResearchJob, ResearchRun, RunStatus, from_iso
from vigil.scheduler.schedule import describe_schedule
from vigil.scheduler.seeds import build_default_job_definitions

app = typer.Typer(
    name="vigil",
    help="Vigil - scheduler for recurring research jobs.",
    add_completion=False,
)

console = Console()

T = TypeVar("T")

_RUN_STYLES = {
    RunStatus.COMPLETED: "green",
    RunStatus.FAILED: "red",
    RunStatus.RUNNING: "yellow",
}


def _load_config(verbose: bool = False) -> VigilConfig:
    try:
        config = VigilConfig.load()
    except VigilError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)

    setup_logging(config.logging, verbose=verbose)
    return config


def _with_agent(
    config: VigilConfig,
    action: Callable[[ResearchAutonomyAgent], Awaitable[T]],
) -> T:
    """Build the agent, run one action against it, always shut down."""

    async def _run() -> T:
        agent = await build_agent(config)
        try:
            return await action(agent)
        finally:
            await shutdown(agent)

    try:
        return asyncio.run(_run())
    except VigilError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)


def _fmt_time(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value else "-"


def _print_jobs(jobs: list[ResearchJob]) -> None:
    if not jobs:
        console.print("[dim]No research jobs.[/dim]")
        return

    table = Table(title="Research jobs")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Query")
    table.add_column("Status")
    table.add_column("Schedule")
    table.add_column("Next run")
    table.add_column("Last run")
    table.add_column("Error", style="red")
    for job in jobs:
        table.add_row(
            job.id,
            job.query,
            job.status.value,
            describe_schedule(job.schedule),
            _fmt_time(job.next_run_at),
            _fmt_time(job.last_run_at),
            job.error or "",
        )
    console.print(table)


def _print_runs(runs: list[ResearchRun], title: str = "Runs") -> None:
    if not runs:
        console.print("[dim]No runs.[/dim]")
        return

    table = Table(title=title)
    table.add_column("Run", style="dim", no_wrap=True)
    table.add_column("Job", style="dim", no_wrap=True)
    table.add_column("Status")
    table.add_column("Manual")
    table.add_column("Started")
    table.add_column("Completed")
    table.add_column("Gaps", justify="right")
    table.add_column("Warnings", justify="right")
    table.add_column("Error", style="red")
    for run in runs:
        style = _RUN_STYLES.get(run.status, "")
        table.add_row(
            run.id,
            run.job_id,
            f"[{style}]{run.status.value}[/{style}]",
            "yes" if run.triggered_manually else "no",
            _fmt_time(run.started_at),
            _fmt_time(run.completed_at),
            str(len(run.knowledge_gaps)),
            str(len(run.source_warnings)),
            run.error or "",
        )
    console.print(table)


# ━━━ Commands ━━━


@app.command()
def version() -> None:
    """Show Vigil version."""
    console.print(f"Vigil v{__version__}")


@app.command()
def jobs(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """List research jobs."""
    config = _load_config(verbose)
    _print_jobs(_with_agent(config, lambda agent: agent.store.list_jobs()))


@app.command()
def add(
    query: str = typer.Argument(..., help="What to research"),
    schedule: Optional[str] = typer.Option(
        None, "--schedule", "-s", help='e.g. "interval:60"; omit for manual only'
    ),
    no_similar: bool = typer.Option(False, "--no-similar", help="Skip similar diseases"),
    no_summary: bool = typer.Option(False, "--no-summary", help="Skip the AI summary"),
    disease: Optional[list[str]] = typer.Option(
        None, "--disease", "-d", help="Extra subject to research alongside the query"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Create a research job."""
    config = _load_config(verbose)
    definition = JobDefinition(
        query=query,
        schedule=schedule,
        include_similar_diseases=not no_similar,
        include_ai_summary=not no_summary,
        additional_diseases=disease or None,
    )
    job = _with_agent(config, lambda agent: agent.create_job(definition))
    console.print(f"[green]Created job[/green] {job.id} [dim]({describe_schedule(job.schedule)})[/dim]")
    _print_jobs([job])


@app.command()
def show(
    job_id: str = typer.Argument(..., help="Job ID"),
    runs: bool = typer.Option(False, "--runs", "-r", help="Include run history"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Show one research job."""
    config = _load_config(verbose)

    async def _show(agent: ResearchAutonomyAgent):
        job = await agent.store.get_job(job_id)
        history = await agent.store.list_runs(job_id) if (job and runs) else []
        return job, history

    job, history = _with_agent(config, _show)
    if job is None:
        console.print(f"[red]Research job {job_id} not found[/red]")
        raise typer.Exit(1)

    console.print(
        f"[bold]{job.query}[/bold] [dim]({job.status.value}, {describe_schedule(job.schedule)})[/dim]"
    )
    _print_jobs([job])
    if runs:
        console.print(f"{len(history)} run(s)")
        _print_runs(history, title=f"Runs for {job.query}")


@app.command()
def trigger(
    job_id: str = typer.Argument(..., help="Job ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Run a job now, regardless of its schedule."""
    config = _load_config(verbose)
    run = _with_agent(config, lambda agent: agent.trigger_job(job_id))
    style = _RUN_STYLES.get(run.status, "")
    console.print(f"Run {run.id}: [{style}]{run.status.value}[/{style}]")
    _print_runs([run], title="Triggered run")
    for gap in run.knowledge_gaps:
        console.print(f"[yellow]gap:[/yellow] {gap}")
    for warning in run.source_warnings:
        console.print(f"[dim]{warning.source_id}:[/dim] {warning.message}")
    if run.status is RunStatus.FAILED:
        raise typer.Exit(1)


@app.command("run-due")
def run_due(
    at: Optional[str] = typer.Option(
        None, "--at", help="Reference time (ISO 8601), default now"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Run the jobs that are due. Point cron at this."""
    config = _load_config(verbose)
    try:
        reference = from_iso(at) if at else None
    except ValueError:
        console.print("[red]Invalid --at timestamp. Use ISO 8601 format.[/red]")
        raise typer.Exit(1)

    completed = _with_agent(config, lambda agent: agent.run_due_jobs(reference))
    console.print(f"Executed {len(completed)} due job(s)")
    if completed:
        _print_runs(completed)


@app.command()
def seed(
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i", help="Minutes between runs (default from config)"
    ),
    query: Optional[list[str]] = typer.Option(
        None, "--query", "-q", help="Override the default roster (repeatable)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Create the default research job roster if missing."""
    config = _load_config(verbose)

    async def _seed(agent: ResearchAutonomyAgent):
        definitions = build_default_job_definitions(
            interval_minutes=interval if interval is not None else config.autonomy.seed_interval_minutes,
            override_queries=query,
        )
        created = await agent.ensure_seed_jobs(definitions)
        return definitions, created

    definitions, created = _with_agent(config, _seed)
    console.print(
        f"Seed roster: {len(definitions)} queries, "
        f"[green]{len(created)} created[/green], {len(definitions) - len(created)} already present"
    )
    if created:
        _print_jobs(created)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Start the HTTP API."""
    import uvicorn

    from vigil.api.app import create_app

    config = _load_config(verbose)
    bind_host = host or config.api.host
    bind_port = port or config.api.port
    console.print(f"[bold]Vigil API[/bold] on http://{bind_host}:{bind_port}")
    uvicorn.run(
        create_app(config=config),
        host=bind_host,
        port=bind_port,
        log_level="debug" if verbose else "info",
    )


if __name__ == "__main__":
    app()
