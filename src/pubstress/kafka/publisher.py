"""Publish orchestration.

The orchestrator runs the publisher as a series of *generations*. Each
generation owns one client handle, shared by one foreground sender running on
the orchestrator's own task and ``concurrent_sends - 1`` background senders.
Background senders are gated on a per-generation cancellation scope linked to
the overall token, so they can be stopped without stopping the publisher.

When a handle-level fault escapes a sender (or client creation fails), the
generation is torn down: background senders are cancelled and awaited, the
handle is closed, the restart is counted and recorded, and a new generation
begins. Only fatal runtime errors escape ``start``; a fatal error in a background
sender is handed to the foreground, which re-raises it on its next iteration.
"""

from __future__ import annotations

import asyncio
import logging

from pubstress.cancellation import CancellationSource, CancellationToken, cancellable_sleep
from pubstress.errors import PublishCancelledError, is_fatal
from pubstress.generators.payload import RandomPayloadGenerator, SeedSource, SequenceCounter
from pubstress.kafka.client import ClientFactory, PublisherClient, create_client
from pubstress.kafka.simulator import Simulator
from pubstress.kafka.worker import BatchSendWorker, SendOutcome
from pubstress.models.config import PublisherConfig
from pubstress.models.errors import ErrorCollector
from pubstress.models.metrics import MetricsSnapshot, PublisherMetrics
from pubstress.runtime import reserve_workers

logger = logging.getLogger(__name__)


class _Generation:
    """State for the lifetime of one client handle."""

    def __init__(self, number: int, client: PublisherClient, parent: CancellationToken):
        self.number = number
        self.client = client
        self.scope = CancellationSource.linked(parent)
        self.tasks: list[asyncio.Task[None]] = []
        self.fault: Exception | None = None
        self.fatal: BaseException | None = None

    def fail(self, exc: Exception) -> None:
        if self.fault is None:
            self.fault = exc
        self.scope.cancel()

    def fail_fatally(self, exc: BaseException) -> None:
        if self.fatal is None:
            self.fatal = exc
        self.scope.cancel()

    def raise_if_faulted(self) -> None:
        if self.fatal is not None:
            raise self.fatal
        if self.fault is not None:
            raise self.fault

    def rearm(self, parent: CancellationToken) -> None:
        self.scope.close()
        self.scope = CancellationSource.linked(parent)
        self.tasks = []


class PublishOrchestrator(Simulator[MetricsSnapshot]):
    """Publishes generated batches until cancelled, restarting the client on faults."""

    def __init__(
        self,
        config: PublisherConfig,
        metrics: PublisherMetrics,
        errors: ErrorCollector,
        client_factory: ClientFactory = create_client,
        sequence: SequenceCounter | None = None,
    ):
        super().__init__()
        self.config = config
        self.metrics = metrics
        self.errors = errors
        self._client_factory = client_factory
        self.sequence = sequence or SequenceCounter()
        self._seeds = SeedSource(config.seed)
        self._current: _Generation | None = None
        self._running = False
        self.generations = 0

    def get_stats(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_senders(self) -> int:
        """Number of background senders still running in the current generation."""
        generation = self._current
        if generation is None:
            return 0
        return sum(1 for task in generation.tasks if not task.done())

    async def start(self, token: CancellationToken | None = None) -> None:
        """Publish until ``token`` is cancelled or ``stop()`` is called."""
        token = self.link(token) if token is not None else self._stop_source.token
        reserve_workers(self.config.concurrent_sends)
        self._running = True
        try:
            while not token.is_cancelled:
                fault = await self._run_generation(token)
                if fault is None:
                    continue

                self.metrics.record_producer_restart()
                self.errors.add(fault)
                logger.warning(
                    f"Producer faulted ({type(fault).__name__}: {fault}); "
                    f"restarting in {self.config.restart_delay}s"
                )
                try:
                    await cancellable_sleep(self.config.restart_delay, token)
                except PublishCancelledError:
                    break
        finally:
            self._running = False
            self._stop_source.close()
            logger.info(f"Publisher stopped after {self.generations} generation(s)")

    async def _run_generation(self, token: CancellationToken) -> Exception | None:
        """Run one generation. Returns the fault that ended it, if any."""
        try:
            client = await self._client_factory(self.config)
            self.generations += 1
            generation = _Generation(self.generations, client, token)
            self._current = generation
            logger.info(
                f"Generation {generation.number} started with "
                f"{self.config.concurrent_sends} concurrent sender(s)"
            )
            try:
                await self._publish(generation, token)
            finally:
                await self._dispose(generation)
        except PublishCancelledError as e:
            if token.is_cancelled:
                return None
            return e
        except Exception as e:
            if is_fatal(e):
                raise
            return e
        return None

    async def _publish(self, generation: _Generation, token: CancellationToken) -> None:
        self._spawn_background(generation)

        # The foreground sender runs on the overall token so that a fault in the
        # handle surfaces here rather than in a background task.
        worker = self._new_worker()
        while not token.is_cancelled:
            generation.raise_if_faulted()
            try:
                outcome = await worker.perform_send(generation.client, token)
                if outcome is not SendOutcome.CANCELLED:
                    await self._pause(token)
                    continue
            except PublishCancelledError:
                pass

            if not token.is_cancelled:
                await self._drain_background(generation, token)

    async def _drain_background(self, generation: _Generation, token: CancellationToken) -> None:
        if not generation.scope.is_cancelled:
            logger.warning(
                f"Foreground send cancelled in generation {generation.number}; "
                f"stopping background senders"
            )
        generation.scope.cancel()
        await self._drain(generation)
        generation.raise_if_faulted()

        if self.config.rearm_background_senders and not token.is_cancelled:
            generation.rearm(token)
            self._spawn_background(generation)

    def _spawn_background(self, generation: _Generation) -> None:
        for index in range(self.config.concurrent_sends - 1):
            task = asyncio.create_task(
                self._background_loop(generation, self._new_worker()),
                name=f"pubstress-g{generation.number}-sender-{index + 1}",
            )
            generation.tasks.append(task)

    async def _background_loop(self, generation: _Generation, worker: BatchSendWorker) -> None:
        token = generation.scope.token
        try:
            while not token.is_cancelled:
                await worker.perform_send(generation.client, token)
                await self._pause(token)
        except PublishCancelledError as e:
            if not token.is_cancelled:
                generation.fail(e)
        except Exception as e:
            if is_fatal(e):
                logger.critical(
                    f"Fatal error in background sender of generation {generation.number}: {e!r}"
                )
                generation.fail_fatally(e)
                raise
            logger.error(f"Background sender failed in generation {generation.number}: {e!r}")
            generation.fail(e)

    async def _pause(self, token: CancellationToken) -> None:
        if self.config.has_publishing_delay:
            await cancellable_sleep(self.config.publishing_delay, token)
        else:
            await asyncio.sleep(0)

    async def _drain(self, generation: _Generation) -> None:
        """Wait for every background sender; only fatal errors are re-raised."""
        if not generation.tasks:
            return
        results = await asyncio.gather(*generation.tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                continue
            if isinstance(result, BaseException) and is_fatal(result):
                raise result

    async def _dispose(self, generation: _Generation) -> None:
        generation.scope.cancel()
        try:
            await self._drain(generation)
        finally:
            generation.scope.close()
            self._current = None
            await generation.client.close()
            logger.info(f"Generation {generation.number} disposed")

    def _new_worker(self) -> BatchSendWorker:
        generator = RandomPayloadGenerator.from_config(self.config, self.sequence, self._seeds)
        return BatchSendWorker(
            batch_fill_size=self.config.batch_fill_size,
            generator=generator,
            metrics=self.metrics,
            errors=self.errors,
        )
