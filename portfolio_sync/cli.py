"""Portfolio sync CLI: full sync, single-repository sync and webhook server."""

import asyncio
import logging
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from portfolio_sync.config.settings import settings
from portfolio_sync.jobs.portfolio_sync import run_full_sync, run_incremental_sync

app = typer.Typer(help="Keep the portfolio website's projects-data.js in sync with GitHub.")

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _print_summary(stats: dict[str, Any]) -> None:
    table = Table(title="Portfolio sync summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Candidates", str(stats.get("candidates", 0)))
    table.add_row("Added to portfolio", f"[green]{stats.get('processed', 0)}[/green]")
    table.add_row("Filtered out", str(stats.get("filtered_out", 0)))
    table.add_row("Duplicates removed", str(stats.get("duplicates_removed", 0)))
    failed = stats.get("failed", 0)
    table.add_row("Failed", f"[red]{failed}[/red]" if failed else "0")
    table.add_row("Total projects", f"[bold]{stats.get('total', 0)}[/bold]")
    table.add_row("Distinct topics", str(stats.get("topics", 0)))
    console.print(table)

    by_year = stats.get("by_year") or {}
    if by_year:
        years = Table(title="Projects by year")
        years.add_column("Year", style="cyan")
        years.add_column("Projects", justify="right")
        for year, count in by_year.items():
            years.add_row(str(year), str(count))
        console.print(years)

    for error in stats.get("errors") or []:
        console.print(f"[yellow]- {error}[/yellow]")


@app.command("sync")
def sync(
    owner: Optional[str] = typer.Option(None, "--owner", "-o", help="GitHub username (default: GITHUB_USERNAME)"),
    orgs: Optional[str] = typer.Option(None, "--orgs", help="Comma-separated organizations (default: GITHUB_ORGS)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Rebuild projects-data.js from every discovered repository."""
    _configure_logging(verbose)
    try:
        stats = asyncio.run(run_full_sync(owner=owner, organizations=orgs))
    except Exception as e:
        console.print(f"[red]Sync failed: {e}[/red]")
        console.print_exception()
        raise typer.Exit(1)

    _print_summary(stats)
    console.print(f"[green]Wrote {settings.projects_data_path}[/green]")


@app.command("incremental")
def incremental(
    repository: str = typer.Argument(..., help="Repository as <owner>/<repo>"),
    owner: Optional[str] = typer.Option(None, "--owner", "-o", help="Portfolio owner (default: GITHUB_USERNAME)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Add, refresh or remove a single repository."""
    _configure_logging(verbose)
    try:
        stats = asyncio.run(run_incremental_sync(repository, owner=owner))
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]Incremental sync failed: {e}[/red]")
        console.print_exception()
        raise typer.Exit(1)

    action = stats.get("action")
    style = {"added": "green", "updated": "cyan", "removed": "yellow"}.get(action, "dim")
    message = f"[{style}]{stats.get('repository')}: {action}[/{style}]"
    if stats.get("reason"):
        message += f" ({stats['reason']})"
    console.print(message)
    console.print(f"Total projects: {stats.get('total', 0)}")


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: WEBHOOK_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: WEBHOOK_PORT)"),
):
    """Run the GitHub webhook receiver."""
    import uvicorn

    if not settings.WEBHOOK_SECRET:
        console.print("[yellow]WEBHOOK_SECRET is not set; every webhook will be rejected.[/yellow]")

    uvicorn.run(
        "portfolio_sync.main:app",
        host=host or settings.WEBHOOK_HOST,
        port=port or settings.WEBHOOK_PORT,
    )


if __name__ == "__main__":
    app()
