"""Base class for long-running publishers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pubstress.cancellation import CancellationSource, CancellationToken

StatsT = TypeVar("StatsT")


class Simulator(ABC, Generic[StatsT]):
    """Base class for simulators that run until their cancellation token fires."""

    def __init__(self) -> None:
        self._stop_source = CancellationSource()

    def stop(self) -> None:
        """Signal the simulator to stop."""
        self._stop_source.cancel()

    def link(self, token: CancellationToken) -> CancellationToken:
        """Return a token that fires on ``token`` or on ``stop()``."""
        stopped = self._stop_source.is_cancelled
        self._stop_source.close()
        self._stop_source = CancellationSource.linked(token)
        if stopped:
            self._stop_source.cancel()
        return self._stop_source.token

    @property
    def should_stop(self) -> bool:
        """Check if the simulator should stop."""
        return self._stop_source.is_cancelled

    @abstractmethod
    def get_stats(self) -> StatsT:
        """Get simulator statistics."""
        ...
