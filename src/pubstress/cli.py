"""Command-line interface."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from pubstress.errors import ConfigError
from pubstress.executor.result import ExecutionResult
from pubstress.executor.runner import PublishExecutor
from pubstress.models.config import PublisherConfig
from pubstress.profiles.loader import get_profile, list_profiles, load_profile

app = typer.Typer(help="Sustained-load Kafka publisher", no_args_is_help=True)
console = Console()


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


def _resolve_config(
    profile: Optional[str],
    config_file: Optional[Path],
    overrides: dict,
) -> PublisherConfig:
    if config_file is not None:
        return load_profile(config_file, overrides)
    if profile is not None:
        return get_profile(profile, overrides=overrides)
    raise ConfigError("Specify a profile name or --config FILE")


def _print_summary(result: ExecutionResult) -> None:
    table = Table(title="Run summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")

    metrics = result.metrics
    table.add_row("Duration", f"{result.duration_seconds:,.1f}s")
    table.add_row("Generations", f"{result.generations:,}")
    if metrics is not None:
        table.add_row("Events published", f"{metrics.events_published:,}")
        table.add_row("Batches published", f"{metrics.batches_published:,}")
        table.add_row("Published MB", f"{metrics.published_bytes / 1_048_576:,.2f}")
        table.add_row("Total exceptions", f"{metrics.total_exceptions:,}")
        table.add_row("Producer restarts", f"{metrics.producer_restarts:,}")
    console.print(table)

    for category, count in sorted(result.error_counts.items()):
        console.print(f"[red]{category}[/red]: {count:,}")


@app.command()
def run(
    profile: Optional[str] = typer.Argument(None, help="Name of a bundled profile"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", exists=True, dir_okay=False, help="Profile YAML file"
    ),
    bootstrap_servers: Optional[str] = typer.Option(None, "--bootstrap-servers", "-b"),
    topic: Optional[str] = typer.Option(None, "--topic", "-t"),
    concurrent_sends: Optional[int] = typer.Option(None, "--concurrent-sends", "-n"),
    duration: int = typer.Option(0, "--duration", "-d", help="Seconds to run (0 = until Ctrl+C)"),
    no_display: bool = typer.Option(False, "--no-display", help="Disable the live table"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Publish generated batches until the duration elapses or Ctrl+C."""
    setup_logging(verbose)
    overrides = {
        "cluster.bootstrap_servers": bootstrap_servers,
        "topic": topic,
        "publishing.concurrent_sends": concurrent_sends,
    }

    try:
        config = _resolve_config(profile, config_file, overrides)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    executor = PublishExecutor(config, show_display=not no_display)
    result = asyncio.run(executor.execute(duration))
    _print_summary(result)


@app.command("list")
def list_command():
    """List bundled load profiles."""
    profiles = list_profiles()
    if not profiles:
        console.print("[yellow]No profiles found[/yellow]")
        return

    table = Table(title="Profiles")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    for name, description in sorted(profiles.items()):
        table.add_row(name, description)
    console.print(table)


@app.command()
def validate(config_file: Path = typer.Argument(..., exists=True, dir_okay=False)):
    """Validate a profile file."""
    try:
        config = load_profile(config_file)
    except ConfigError as e:
        console.print(f"[red]Invalid profile: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(
        f"[green]OK[/green] topic={config.topic} "
        f"concurrent_sends={config.concurrent_sends} "
        f"batch_fill_size={config.batch_fill_size}"
    )


if __name__ == "__main__":
    app()
