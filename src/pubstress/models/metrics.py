"""Process-wide publishing metrics."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from pubstress.errors import BrokerErrorReason


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of the publisher counters."""

    events_published: int
    published_bytes: int
    batches_published: int
    total_service_operations: int
    total_exceptions: int
    send_exceptions: int
    canceled_send_exceptions: int
    general_exceptions: int
    producer_restarts: int
    broker_errors: dict[BrokerErrorReason, int]
    elapsed_seconds: float

    @property
    def events_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.events_published / self.elapsed_seconds

    @property
    def megabytes_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.published_bytes / self.elapsed_seconds / 1_048_576

    @property
    def average_batch_size(self) -> float:
        if self.batches_published == 0:
            return 0.0
        return self.events_published / self.batches_published


@dataclass
class PublisherMetrics:
    """Monotonic counters shared by every sender and generation.

    All mutation goes through the ``record_*`` methods, which hold the lock for
    the whole update so that concurrent increments are never lost.
    """

    events_published: int = 0
    published_bytes: int = 0
    batches_published: int = 0
    total_service_operations: int = 0
    total_exceptions: int = 0
    send_exceptions: int = 0
    canceled_send_exceptions: int = 0
    general_exceptions: int = 0
    producer_restarts: int = 0
    broker_errors: dict[BrokerErrorReason, int] = field(default_factory=dict)
    started_at: float = field(default_factory=time.monotonic)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_published(self, event_count: int, size_bytes: int) -> None:
        with self._lock:
            self.events_published += event_count
            self.published_bytes += size_bytes
            self.batches_published += 1
            self.total_service_operations += 1

    def record_cancelled_send(self) -> None:
        with self._lock:
            self.total_exceptions += 1
            self.send_exceptions += 1
            self.canceled_send_exceptions += 1

    def record_broker_send_failure(self) -> None:
        with self._lock:
            self.total_exceptions += 1
            self.send_exceptions += 1

    def record_general_send_failure(self) -> None:
        with self._lock:
            self.total_exceptions += 1
            self.send_exceptions += 1
            self.general_exceptions += 1

    def record_broker_error(self, reason: BrokerErrorReason) -> None:
        with self._lock:
            self.broker_errors[reason] = self.broker_errors.get(reason, 0) + 1

    def record_producer_restart(self) -> None:
        with self._lock:
            self.producer_restarts += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                events_published=self.events_published,
                published_bytes=self.published_bytes,
                batches_published=self.batches_published,
                total_service_operations=self.total_service_operations,
                total_exceptions=self.total_exceptions,
                send_exceptions=self.send_exceptions,
                canceled_send_exceptions=self.canceled_send_exceptions,
                general_exceptions=self.general_exceptions,
                producer_restarts=self.producer_restarts,
                broker_errors=dict(self.broker_errors),
                elapsed_seconds=time.monotonic() - self.started_at,
            )
