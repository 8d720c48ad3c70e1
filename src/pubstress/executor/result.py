"""Execution result dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field

from pubstress.models.errors import ErrorRecord
from pubstress.models.metrics import MetricsSnapshot


@dataclass
class ExecutionResult:
    """Result of a publishing run."""

    metrics: MetricsSnapshot | None = None
    generations: int = 0
    duration_seconds: float = 0.0
    errors: list[ErrorRecord] = field(default_factory=list)

    def add_errors(self, records: list[ErrorRecord]) -> None:
        """Add collected error records to the result."""
        self.errors.extend(records)

    @property
    def events_published(self) -> int:
        return self.metrics.events_published if self.metrics else 0

    @property
    def error_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for record in self.errors:
            counts[record.category] = counts.get(record.category, 0) + 1
        return counts
