"""Append-only collection of observed failures."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class ErrorRecord:
    """A failure captured verbatim."""

    category: str
    message: str
    exception: BaseException = field(repr=False)
    occurred_at: datetime

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorRecord:
        return cls(
            category=type(exc).__name__,
            message=str(exc),
            exception=exc,
            occurred_at=datetime.now(timezone.utc),
        )


class ErrorCollector:
    """Unbounded, thread-safe error log.

    The publisher only appends; callers that need a bound should ``drain``
    periodically.
    """

    def __init__(self) -> None:
        self._records: list[ErrorRecord] = []
        self._lock = threading.Lock()

    def add(self, exc: BaseException) -> ErrorRecord:
        record = ErrorRecord.from_exception(exc)
        with self._lock:
            self._records.append(record)
        return record

    def snapshot(self) -> list[ErrorRecord]:
        with self._lock:
            return list(self._records)

    def drain(self) -> list[ErrorRecord]:
        """Remove and return everything collected so far."""
        with self._lock:
            records, self._records = self._records, []
        return records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self) -> Iterator[ErrorRecord]:
        return iter(self.snapshot())
