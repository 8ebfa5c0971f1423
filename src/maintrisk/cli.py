"""CLI entry point for maintrisk."""

import asyncio
import json
import logging
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from maintrisk.analyzers.handler import MaintainerActivityError, MaintainerActivityHandler
from maintrisk.analyzers.scorer import INCONCLUSIVE_SCORE, Scorer
from maintrisk.clients.base import parse_repo_url
from maintrisk.clients.gitlab import GitLabClient
from maintrisk.models.schemas import (
    AccessLevel,
    ActivityConfig,
    MaintainerActivityReport,
    Platform,
    default_cutoff,
)

app = typer.Typer(help="Maintainer activity checks for GitLab projects.")

console = Console()


def parse_access_level(value: str) -> AccessLevel:
    """Parse an access level given by name (``maintainer``) or number (``40``).

    Raises:
        ValueError: If the value names no known access level.
    """
    value = value.strip()
    if value.isdigit():
        return AccessLevel(int(value))
    try:
        return AccessLevel[value.upper().replace("-", "_")]
    except KeyError:
        supported = ", ".join(level.name.lower() for level in AccessLevel)
        raise ValueError(f"Unknown access level: {value}. Supported: {supported}") from None


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@app.command()
def activity(
    project: str = typer.Argument(..., help="Project path (group/project) or GitLab URL"),
    gitlab_url: str = typer.Option(
        "https://gitlab.com", "--gitlab-url", envvar="GITLAB_URL", help="GitLab instance URL"
    ),
    token: str | None = typer.Option(
        None, "--token", envvar=["GITLAB_AUTH_TOKEN", "GITLAB_TOKEN"], help="GitLab access token"
    ),
    days: int = typer.Option(180, "--days", "-d", help="Activity window in days"),
    min_access_level: str = typer.Option(
        "developer", "--min-access-level", "-a", help="Lowest access level counted as privileged"
    ),
    page_size: int = typer.Option(100, "--page-size", help="Items per API page (max 100)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log each signal step"),
) -> None:
    """Check which privileged members of a project were active recently."""
    _configure_logging(verbose)

    try:
        level = parse_access_level(min_access_level)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    repo_ref = parse_repo_url(project)
    if repo_ref is None:
        console.print(f"[red]Cannot parse project: {project}[/red]")
        raise typer.Exit(1)
    if repo_ref.platform != Platform.GITLAB:
        console.print(
            f"[red]Maintainer activity is only supported for GitLab, not {repo_ref.platform.value}[/red]"
        )
        raise typer.Exit(1)

    base_url = gitlab_url.rstrip("/")
    if "://" in project:
        base_url = f"https://{repo_ref.host}"

    config = ActivityConfig(
        base_url=f"{base_url}/api/v4",
        token=token,
        cutoff=default_cutoff(days=days),
        min_access_level=level,
        page_size=page_size,
    )
    report = asyncio.run(_activity(repo_ref.path, config))
    _print_report(report)

    if output:
        output.write_text(json.dumps(report.model_dump(mode="json"), indent=2))
        console.print(f"\n[green]Saved to {output}[/green]")


async def _activity(project: str, config: ActivityConfig) -> MaintainerActivityReport:
    """Async implementation of activity."""
    async with GitLabClient(config) as client:
        handler = MaintainerActivityHandler(client, project, config)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            progress.add_task(f"Collecting maintainer activity for {project}...", total=None)
            try:
                activity_map = await handler.get_maintainer_activity()
                evidence = await handler.get_activity_evidence()
            except MaintainerActivityError as e:
                console.print(f"[red]Error: {e}[/red]")
                raise typer.Exit(1)

        if client.rate_limit_remaining is not None:
            console.print(
                f"[dim]API requests: {client.requests_made}, "
                f"rate limit remaining: {client.rate_limit_remaining}[/dim]"
            )

    return Scorer().build_report(
        project,
        activity_map,
        cutoff=config.cutoff,
        min_access_level=config.min_access_level,
        evidence=evidence,
    )


def _print_report(report: MaintainerActivityReport) -> None:
    console.print()
    console.print(f"[bold cyan]{report.project}[/bold cyan]")
    console.print(
        f"[dim]{report.min_access_level.name.title()}+ members, "
        f"activity since {report.cutoff:%Y-%m-%d}[/dim]"
    )
    console.print()

    if not report.findings:
        console.print("[yellow]No privileged members found[/yellow]")
        return

    table = Table(title="Privileged Members")
    table.add_column("Account", style="cyan")
    table.add_column("Status")
    table.add_column("Evidence", style="dim")

    for finding in report.findings:
        status = "[green]active[/green]" if finding.active else "[red]inactive[/red]"
        table.add_row(finding.username, status, finding.evidence or "-")

    console.print(table)
    console.print()

    if report.score == INCONCLUSIVE_SCORE:
        console.print("Score: [dim]inconclusive[/dim]")
    else:
        color = "green" if report.score >= 8 else "yellow" if report.score >= 5 else "red"
        console.print(
            f"Score: [{color}]{report.score}/10[/{color}] "
            f"({report.active_count} active, {report.inactive_count} inactive)"
        )


@app.command()
def version() -> None:
    """Show version information."""
    from maintrisk import __version__

    console.print(f"maintrisk v{__version__}")


if __name__ == "__main__":
    app()
