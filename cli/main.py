"""
Summarium - Main CLI Application

Command-line interface for the summary engine: run the long-lived service
or trigger single scheduling, processing and retry passes by hand.
"""
import asyncio
import json
import logging
from datetime import date
from enum import Enum
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_config
from core.errors import SummariumError
from core.types import Result
from di.bootstrap import bootstrap
from domain.entities import Summary
from domain.periods import WeekRange, YearMonth, parse_date
from observability import setup_observability, shutdown_observability
from pipeline.create_summary import CreateSummaryRequest

# Initialize app
app = typer.Typer(
    name="summarium",
    help="Summarium - periodic summary engine",
    add_completion=False
)

console = Console()
logger = logging.getLogger("summarium.cli")


class Tier(str, Enum):
    """Summary tier options."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def build_request(tier: Tier, period: str) -> CreateSummaryRequest:
    """Turn a tier and a textual period into a create request."""
    if tier == Tier.DAILY:
        return CreateSummaryRequest.daily(parse_date(period))
    if tier == Tier.WEEKLY:
        return CreateSummaryRequest.weekly(WeekRange.parse(period))
    return CreateSummaryRequest.monthly(YearMonth.parse(period))


def _unwrap(result: Result) -> Any:
    if result.is_failure:
        console.print(f"[red]Error ({result.error_code}): {result.error}[/red]")
        raise typer.Exit(1)
    return result.value


def _run(coro) -> Any:
    setup_observability()
    try:
        return asyncio.run(coro)
    finally:
        shutdown_observability()


@app.command()
def status():
    """Show the effective engine configuration."""
    config = get_config()
    console.print(Panel.fit(
        "[bold blue]Summarium - periodic summary engine[/bold blue]",
        border_style="blue"
    ))

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for section, values in config.to_dict().items():
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(f"{section}.{key}", str(value))
        else:
            table.add_row(section, str(values))

    console.print(table)


@app.command()
def schedule(
    up_to: Optional[str] = typer.Option(None, "--up-to", "-u", help="Window end date (YYYY-MM-DD), default today"),
):
    """Create every missing summary inside the lookback window."""
    try:
        end = parse_date(up_to) if up_to else None
    except SummariumError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(2)
    response = _unwrap(_run(_schedule(end)))

    table = Table(title="Scheduled Summaries")
    table.add_column("Tier", style="cyan")
    table.add_column("Created", style="green")
    table.add_row("daily", str(response.scheduled_daily))
    table.add_row("weekly", str(response.scheduled_weekly))
    table.add_row("monthly", str(response.scheduled_monthly))
    console.print(table)

    if response.failed_phases:
        console.print(f"[yellow]Failed phases: {', '.join(response.failed_phases)}[/yellow]")


@app.command("process-queue")
def process_queue():
    """Run one pass over the pending queue."""
    report = _run(_process_queue())
    if report.error:
        console.print(f"[red]Could not read the queue: {report.error}[/red]")
        raise typer.Exit(1)

    table = Table(title="Queue Pass")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    for key, value in report.to_dict().items():
        if key != "error":
            table.add_row(key, str(value))
    console.print(table)


@app.command("retry-failed")
def retry_failed():
    """Retry failed summaries that still have retry budget."""
    retried = _unwrap(_run(_retry_failed()))
    console.print(f"[green]Retried {retried} failed summaries[/green]")


@app.command()
def force(
    tier: Tier = typer.Argument(..., help="Summary tier"),
    period: str = typer.Argument(..., help="YYYY-MM-DD, week Monday or YYYY-MM-DD_YYYY-MM-DD, or YYYY-MM"),
    context: Optional[str] = typer.Option(None, "--context", "-c", help="Extra context for generation"),
):
    """Create and immediately process the summary of one period."""
    try:
        request = build_request(tier, period)
    except SummariumError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(2)

    response = _unwrap(_run(_force(request, context)))
    if not response.processed:
        console.print(f"[red]Summary {response.summary_id} failed: {response.error}[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        response.full_summary,
        title=f"{tier.value} {request.period_key}",
        subtitle=response.summary_id,
        border_style="green",
    ))


@app.command()
def overview(
    output_json: bool = typer.Option(False, "--json", help="Print JSON instead of tables"),
):
    """Show summary statistics and the latest completed summary per tier."""
    result = _unwrap(_run(_overview()))
    if output_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    stats = Table(title="Statistics")
    stats.add_column("Metric", style="cyan")
    stats.add_column("Count", style="green")
    for key, value in result.statistics.to_dict().items():
        stats.add_row(key, str(value))
    console.print(stats)

    latest = Table(title="Latest Completed (30 days)")
    latest.add_column("Tier", style="cyan")
    latest.add_column("Period")
    latest.add_column("Summary")
    for tier, summary in result.latest.items():
        if summary is None:
            latest.add_row(tier.value, "-", "[dim]none[/dim]")
        else:
            latest.add_row(tier.value, summary.period_key, summary.short_summary)
    console.print(latest)


@app.command()
def pending():
    """List summaries waiting to be processed."""
    summaries = _unwrap(_run(_pending()))
    _display_summaries(summaries, title="Pending Summaries")


@app.command()
def show(summary_id: str = typer.Argument(..., help="Summary id")):
    """Show one summary."""
    summary = _unwrap(_run(_show(summary_id)))
    if summary is None:
        console.print(f"[yellow]Summary {summary_id} not found[/yellow]")
        raise typer.Exit(1)
    console.print_json(json.dumps(summary.to_dict()))


@app.command()
def run():
    """Run the service: scheduling and processing loops until interrupted."""
    console.print("[bold]Starting summary service (Ctrl+C to stop)[/bold]")
    try:
        _run(_serve())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


# Helper functions
async def _schedule(up_to: Optional[date]) -> Result:
    async with bootstrap(get_config()) as service:
        return await service.schedule_missing_summaries(up_to)


async def _process_queue():
    async with bootstrap(get_config()) as service:
        return await service.trigger_queue_processing()


async def _retry_failed() -> Result:
    async with bootstrap(get_config()) as service:
        return await service.retry_failed_summaries()


async def _force(request: CreateSummaryRequest, context: Optional[str]) -> Result:
    async with bootstrap(get_config()) as service:
        return await service.force_summarization(request, context=context)


async def _overview() -> Result:
    async with bootstrap(get_config()) as service:
        return await service.get_summary_overview()


async def _pending() -> Result:
    async with bootstrap(get_config()) as service:
        return await service.get_pending_summaries()


async def _show(summary_id: str) -> Result:
    async with bootstrap(get_config()) as service:
        return await service.get_summary(summary_id)


async def _serve() -> None:
    async with bootstrap(get_config(), start=True) as service:
        logger.info("Service running: %s", service.get_processing_status().to_dict())
        await asyncio.Event().wait()


def _display_summaries(summaries: List[Summary], title: str) -> None:
    table = Table(title=title)
    table.add_column("Id", style="dim")
    table.add_column("Tier", style="cyan")
    table.add_column("Period")
    table.add_column("Status", style="yellow")
    table.add_column("Retries")

    for summary in summaries:
        table.add_row(
            summary.id,
            summary.type.value,
            summary.period_key,
            summary.status.value,
            str(summary.retry_count),
        )

    console.print(table)
    console.print(f"\n{len(summaries)} summaries")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
