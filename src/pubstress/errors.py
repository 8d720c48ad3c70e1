"""Exception taxonomy for the publisher."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pubstress.models.metrics import PublisherMetrics


class BrokerErrorReason(str, Enum):
    """Broad categories of broker-reported failures."""

    TIMEOUT = "timeout"
    COMMUNICATION = "communication"
    SERVICE_BUSY = "service_busy"
    UNAUTHORIZED = "unauthorized"
    RESOURCE_NOT_FOUND = "resource_not_found"
    MESSAGE_SIZE_EXCEEDED = "message_size_exceeded"
    GENERAL = "general"


class PubstressError(Exception):
    """Base class for all publisher errors."""


class ConfigError(PubstressError):
    """Invalid configuration or load profile."""


class PublishCancelledError(PubstressError):
    """An operation stopped because its cancellation token fired."""


class SendTimeoutError(PublishCancelledError):
    """Deliveries were not confirmed within the per-attempt send timeout."""


class BrokerError(PubstressError):
    """A failure reported by the broker or its transport."""

    def __init__(
        self,
        message: str,
        reason: BrokerErrorReason = BrokerErrorReason.GENERAL,
        code: int | None = None,
        retriable: bool = False,
    ):
        super().__init__(message)
        self.reason = reason
        self.code = code
        self.retriable = retriable

    def track_metrics(self, metrics: PublisherMetrics) -> None:
        metrics.record_broker_error(self.reason)


class ClientFaultError(PubstressError):
    """The client handle can no longer be used and must be recreated."""


class ClientClosedError(ClientFaultError):
    """The client handle was used after it was closed."""


_FATAL_TYPES: tuple[type[BaseException], ...] = (MemoryError, RecursionError)


def is_fatal(exc: BaseException) -> bool:
    """Return True for errors that leave the process in an unusable state."""
    return isinstance(exc, _FATAL_TYPES) or not isinstance(exc, Exception)
