"""One build-fill-send cycle against the current client handle."""

from __future__ import annotations

import logging
from enum import Enum

from pubstress.cancellation import CancellationToken
from pubstress.errors import BrokerError, PublishCancelledError, is_fatal
from pubstress.generators.payload import RandomPayloadGenerator
from pubstress.kafka.client import PublisherClient
from pubstress.models.errors import ErrorCollector
from pubstress.models.metrics import PublisherMetrics

logger = logging.getLogger(__name__)


class SendOutcome(Enum):
    PUBLISHED = "published"
    EMPTY = "empty"
    CANCELLED = "cancelled"
    BROKER_FAULT = "broker_fault"
    FAILED = "failed"


class BatchSendWorker:
    """Builds a batch of generated messages and sends it.

    Send failures are classified into ``metrics`` and ``errors`` and never
    raised. Failures while creating the batch belong to the client handle
    itself and propagate to the caller.
    """

    def __init__(
        self,
        batch_fill_size: int,
        generator: RandomPayloadGenerator,
        metrics: PublisherMetrics,
        errors: ErrorCollector,
    ):
        self.batch_fill_size = batch_fill_size
        self.generator = generator
        self.metrics = metrics
        self.errors = errors

    async def perform_send(
        self, client: PublisherClient, token: CancellationToken
    ) -> SendOutcome:
        batch = await client.create_batch()

        # Messages that do not fit are dropped, not retried.
        for _ in range(self.batch_fill_size):
            batch.try_add(self.generator.generate(batch.max_size_in_bytes))

        if batch.count == 0:
            return SendOutcome.EMPTY

        try:
            await client.send(batch, token)
        except PublishCancelledError as e:
            self.metrics.record_cancelled_send()
            self.errors.add(e)
            logger.debug(f"Send cancelled: {e}")
            return SendOutcome.CANCELLED
        except BrokerError as e:
            self.metrics.record_broker_send_failure()
            e.track_metrics(self.metrics)
            self.errors.add(e)
            logger.debug(f"Broker rejected send ({e.reason.value}): {e}")
            return SendOutcome.BROKER_FAULT
        except Exception as e:
            if is_fatal(e):
                raise
            self.metrics.record_general_send_failure()
            self.errors.add(e)
            logger.debug(f"Send failed: {e!r}")
            return SendOutcome.FAILED

        self.metrics.record_published(batch.count, batch.size_in_bytes)
        return SendOutcome.PUBLISHED
