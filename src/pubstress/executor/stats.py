"""Live metrics table."""

from __future__ import annotations

from rich.console import Group
from rich.table import Table

from pubstress.models.config import PublisherConfig
from pubstress.models.errors import ErrorCollector
from pubstress.models.metrics import MetricsSnapshot

RECENT_ERRORS = 5


class StatsDisplay:
    def __init__(self, config: PublisherConfig, errors: ErrorCollector):
        self.config = config
        self.errors = errors

    def _title(self) -> str:
        return (
            f"Publishing to {self.config.topic} "
            f"({self.config.concurrent_sends} sender(s), batch fill {self.config.batch_fill_size})"
        )

    def generate_stats_table(self, snapshot: MetricsSnapshot, generation: int = 0) -> Group:
        table = Table(title=self._title())
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green", justify="right")

        table.add_row("Elapsed", f"{snapshot.elapsed_seconds:,.0f}s")
        table.add_row("Generation", f"{generation:,}")
        table.add_row("Events published", f"[bold]{snapshot.events_published:,}[/bold]")
        table.add_row("Events/s", f"{snapshot.events_per_second:,.1f}")
        table.add_row("Published MB", f"{snapshot.published_bytes / 1_048_576:,.2f}")
        table.add_row("MB/s", f"{snapshot.megabytes_per_second:,.2f}")
        table.add_row("Batches published", f"{snapshot.batches_published:,}")
        table.add_row("Avg batch size", f"{snapshot.average_batch_size:,.1f}")
        table.add_row("Service operations", f"{snapshot.total_service_operations:,}")

        table.add_section()
        table.add_row("Total exceptions", _count(snapshot.total_exceptions))
        table.add_row("  ├─ send", _count(snapshot.send_exceptions))
        table.add_row("  │   ├─ cancelled", _count(snapshot.canceled_send_exceptions))
        table.add_row("  │   └─ general", _count(snapshot.general_exceptions))
        reasons = sorted(snapshot.broker_errors.items(), key=lambda item: item[0].value)
        for index, (reason, count) in enumerate(reasons):
            prefix = "  │   └─ " if index == len(reasons) - 1 else "  │   ├─ "
            table.add_row(f"[dim]{prefix}broker {reason.value}[/dim]", _count(count))
        table.add_row("  └─ producer restarts", _count(snapshot.producer_restarts))

        recent = self.errors.snapshot()[-RECENT_ERRORS:]
        if not recent:
            return Group(table)

        errors_table = Table(title="Recent errors", title_style="red")
        errors_table.add_column("Time", style="dim")
        errors_table.add_column("Type", style="magenta")
        errors_table.add_column("Message")
        for record in recent:
            errors_table.add_row(
                record.occurred_at.strftime("%H:%M:%S"),
                record.category,
                record.message[:120],
            )
        return Group(table, errors_table)


def _count(value: int) -> str:
    return f"[red]{value:,}[/red]" if value > 0 else f"[green]{value:,}[/green]"
