"""Publishing client contract and its confluent-kafka implementation."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from confluent_kafka import KafkaError, KafkaException, Producer

from pubstress.cancellation import CancellationToken
from pubstress.errors import (
    BrokerError,
    BrokerErrorReason,
    ClientClosedError,
    ClientFaultError,
    PublishCancelledError,
    SendTimeoutError,
)
from pubstress.kafka.batch import MessageBatch
from pubstress.models.config import PublisherConfig
from pubstress.models.message import PublishMessage
from pubstress.runtime import run_blocking

logger = logging.getLogger(__name__)

FLUSH_SLICE_SECONDS = 0.1
CLOSE_FLUSH_TIMEOUT_SECONDS = 5.0
METADATA_TIMEOUT_SECONDS = 10.0

_REASONS_BY_CODE: dict[int, BrokerErrorReason] = {
    KafkaError._MSG_TIMED_OUT: BrokerErrorReason.TIMEOUT,
    KafkaError._TIMED_OUT: BrokerErrorReason.TIMEOUT,
    KafkaError.REQUEST_TIMED_OUT: BrokerErrorReason.TIMEOUT,
    KafkaError._TRANSPORT: BrokerErrorReason.COMMUNICATION,
    KafkaError._ALL_BROKERS_DOWN: BrokerErrorReason.COMMUNICATION,
    KafkaError.NETWORK_EXCEPTION: BrokerErrorReason.COMMUNICATION,
    KafkaError._QUEUE_FULL: BrokerErrorReason.SERVICE_BUSY,
    KafkaError.THROTTLING_QUOTA_EXCEEDED: BrokerErrorReason.SERVICE_BUSY,
    KafkaError.NOT_ENOUGH_REPLICAS: BrokerErrorReason.SERVICE_BUSY,
    KafkaError.TOPIC_AUTHORIZATION_FAILED: BrokerErrorReason.UNAUTHORIZED,
    KafkaError._AUTHENTICATION: BrokerErrorReason.UNAUTHORIZED,
    KafkaError.SASL_AUTHENTICATION_FAILED: BrokerErrorReason.UNAUTHORIZED,
    KafkaError.UNKNOWN_TOPIC_OR_PART: BrokerErrorReason.RESOURCE_NOT_FOUND,
    KafkaError._UNKNOWN_TOPIC: BrokerErrorReason.RESOURCE_NOT_FOUND,
    KafkaError.MSG_SIZE_TOO_LARGE: BrokerErrorReason.MESSAGE_SIZE_EXCEEDED,
}


def broker_error_from_kafka(error: KafkaError, context: str = "") -> BrokerError:
    """Translate a librdkafka error into a BrokerError with its reason."""
    reason = _REASONS_BY_CODE.get(error.code(), BrokerErrorReason.GENERAL)
    prefix = f"{context}: " if context else ""
    return BrokerError(
        f"{prefix}{error.name()}: {error.str()}",
        reason=reason,
        code=error.code(),
        retriable=error.retriable(),
    )


def _from_exception(exc: KafkaException, context: str) -> BrokerError:
    error = exc.args[0] if exc.args else None
    if isinstance(error, KafkaError):
        return broker_error_from_kafka(error, context)
    return BrokerError(f"{context}: {exc}")


class PublisherClient(ABC):
    """A handle to the broker that can build and send batches.

    Implementations must allow concurrent ``send`` calls from several senders.
    """

    @property
    @abstractmethod
    def max_batch_size_bytes(self) -> int: ...

    @abstractmethod
    async def create_batch(self) -> MessageBatch: ...

    @abstractmethod
    async def send(self, batch: MessageBatch, token: CancellationToken) -> None: ...

    @abstractmethod
    async def close(self) -> None:
        """Release all resources. Safe to call more than once."""
        ...


ClientFactory = Callable[[PublisherConfig], Awaitable[PublisherClient]]


class _DeliveryTracker:
    """Counts delivery reports for one batch."""

    def __init__(self, expected: int):
        self._pending = expected
        self._errors: list[KafkaError] = []
        self._lock = threading.Lock()

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    @property
    def errors(self) -> list[KafkaError]:
        with self._lock:
            return list(self._errors)

    def on_delivery(self, err: KafkaError | None, msg: Any) -> None:
        with self._lock:
            self._pending -= 1
            if err is not None:
                self._errors.append(err)


class KafkaPublisherClient(PublisherClient):
    """PublisherClient backed by a single confluent-kafka Producer."""

    def __init__(self, config: PublisherConfig, producer: Producer | None = None):
        self.config = config
        self.topic = config.topic
        self.send_timeout = config.send_timeout
        self._max_batch_size_bytes = config.max_batch_size_bytes
        self._fatal_error: KafkaError | None = None
        self._closed = False
        self._metadata_verified = False
        self._close_lock = threading.Lock()
        self._producer = producer if producer is not None else Producer(self._producer_config())

    def _producer_config(self) -> dict[str, Any]:
        producer_config = self.config.cluster.to_kafka_config()
        producer_config.update(
            {
                "client.id": "pubstress",
                "message.timeout.ms": int(self.send_timeout * 1000),
                "message.max.bytes": max(self._max_batch_size_bytes, 1_000_000),
                "error_cb": self._on_error,
                "logger": logger,
            }
        )
        producer_config.update(self.config.producer_config)
        return producer_config

    def _on_error(self, error: KafkaError) -> None:
        if error.fatal():
            logger.error(f"Fatal producer error: {error}")
            self._fatal_error = error
        else:
            logger.debug(f"Producer error: {error}")

    @property
    def max_batch_size_bytes(self) -> int:
        return self._max_batch_size_bytes

    def _ensure_usable(self) -> None:
        if self._closed:
            raise ClientClosedError("client has been closed")
        if self._fatal_error is not None:
            raise ClientFaultError(f"producer is in a fatal state: {self._fatal_error}")

    async def create_batch(self) -> MessageBatch:
        self._ensure_usable()
        if not self._metadata_verified:
            await run_blocking(self._verify_topic)
            self._metadata_verified = True
        return MessageBatch(self._max_batch_size_bytes)

    def _verify_topic(self) -> None:
        try:
            metadata = self._producer.list_topics(self.topic, timeout=METADATA_TIMEOUT_SECONDS)
        except KafkaException as e:
            raise _from_exception(e, "metadata request failed") from e

        topic_metadata = metadata.topics.get(self.topic)
        if topic_metadata is None:
            raise BrokerError(
                f"topic '{self.topic}' not found",
                reason=BrokerErrorReason.RESOURCE_NOT_FOUND,
            )
        if topic_metadata.error is not None:
            raise broker_error_from_kafka(topic_metadata.error, f"topic '{self.topic}'")

    async def send(self, batch: MessageBatch, token: CancellationToken) -> None:
        self._ensure_usable()
        token.raise_if_cancelled()
        await run_blocking(self._send_blocking, batch, token)

    def _send_blocking(self, batch: MessageBatch, token: CancellationToken) -> None:
        tracker = _DeliveryTracker(batch.count)
        deadline = time.monotonic() + self.send_timeout

        for message in batch:
            self._produce(message, tracker, token, deadline)

        while tracker.pending > 0:
            if token.is_cancelled:
                raise PublishCancelledError("send was cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SendTimeoutError(
                    f"{tracker.pending} of {batch.count} deliveries unconfirmed "
                    f"after {self.send_timeout}s"
                )
            self._producer.flush(min(remaining, FLUSH_SLICE_SECONDS))

        errors = tracker.errors
        if errors:
            raise broker_error_from_kafka(
                errors[0], f"{len(errors)} of {batch.count} deliveries failed"
            )

    def _produce(
        self,
        message: PublishMessage,
        tracker: _DeliveryTracker,
        token: CancellationToken,
        deadline: float,
    ) -> None:
        while True:
            try:
                self._producer.produce(
                    self.topic,
                    value=message.body,
                    key=message.key,
                    headers=message.headers(),
                    timestamp=message.timestamp_ms,
                    on_delivery=tracker.on_delivery,
                )
                return
            except BufferError:
                # Local queue is full; serve delivery reports and retry.
                if token.is_cancelled:
                    raise PublishCancelledError("send was cancelled")
                if time.monotonic() >= deadline:
                    raise SendTimeoutError("local producer queue stayed full")
                self._producer.poll(FLUSH_SLICE_SECONDS)
            except KafkaException as e:
                raise _from_exception(e, "produce failed") from e

    async def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        await run_blocking(self._close_blocking)

    def _close_blocking(self) -> None:
        self._producer.purge()
        remaining = self._producer.flush(CLOSE_FLUSH_TIMEOUT_SECONDS)
        if remaining:
            logger.warning(f"{remaining} messages still queued after close")


async def create_client(config: PublisherConfig) -> PublisherClient:
    """Default client factory."""
    return await run_blocking(KafkaPublisherClient, config)
