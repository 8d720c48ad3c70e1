"""Random payload generation."""

from __future__ import annotations

import random
import threading
import time
import uuid
from datetime import datetime, timezone

from pubstress.models.config import PublisherConfig
from pubstress.models.message import PublishMessage


class SequenceCounter:
    """Process-wide message sequence shared by all generators."""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def current(self) -> int:
        with self._lock:
            return self._value


class SeedSource:
    """Hands out distinct seeds so that every generator has its own stream."""

    def __init__(self, initial: int | None = None):
        self._next = initial if initial is not None else time.monotonic_ns()
        self._lock = threading.Lock()

    def next_seed(self) -> int:
        with self._lock:
            self._next += 1
            return self._next


class RandomPayloadGenerator:
    """Generates randomly sized messages.

    With probability ``large_message_factor`` the body size is drawn from
    ``[min_bytes, max_batch_item_bytes)``, deliberately probing how full a
    batch can get; otherwise it is drawn from ``[min_bytes, regular_max_bytes)``.

    An instance is not thread-safe and should be owned by a single sender.
    """

    def __init__(
        self,
        min_bytes: int,
        regular_max_bytes: int,
        large_message_factor: float,
        sequence: SequenceCounter,
        rng: random.Random | None = None,
    ):
        self.min_bytes = min_bytes
        self.regular_max_bytes = regular_max_bytes
        self.large_message_factor = large_message_factor
        self._sequence = sequence
        self._rng = rng or random.Random()

    @classmethod
    def from_config(
        cls,
        config: PublisherConfig,
        sequence: SequenceCounter,
        seeds: SeedSource,
    ) -> RandomPayloadGenerator:
        return cls(
            min_bytes=config.min_bytes,
            regular_max_bytes=config.regular_max_bytes,
            large_message_factor=config.large_message_factor,
            sequence=sequence,
            rng=random.Random(seeds.next_seed()),
        )

    def body_size(self, max_batch_item_bytes: int) -> int:
        if self._rng.random() < self.large_message_factor:
            return self._draw(self.min_bytes, max_batch_item_bytes)
        return self._draw(self.min_bytes, self.regular_max_bytes)

    def generate(self, max_batch_item_bytes: int) -> PublishMessage:
        size = self.body_size(max_batch_item_bytes)
        return PublishMessage(
            body=self._rng.randbytes(size),
            message_id=str(uuid.uuid4()),
            sequence=self._sequence.next(),
            published_at=datetime.now(timezone.utc),
        )

    def _draw(self, low: int, high: int) -> int:
        if high <= low:
            return low
        return self._rng.randrange(low, high)
