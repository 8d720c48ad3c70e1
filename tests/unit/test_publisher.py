"""Tests for PublishOrchestrator lifecycle, fan-out and fault handling."""

import asyncio

import pytest

from pubstress.cancellation import CancellationSource
from pubstress.errors import BrokerError, ClientFaultError, PublishCancelledError, SendTimeoutError
from pubstress.kafka.publisher import PublishOrchestrator
from pubstress.models.errors import ErrorCollector
from pubstress.models.metrics import PublisherMetrics
from tests.unit.fakes import (
    FakeClient,
    FakeClientFactory,
    current_task_name,
    is_background_sender,
    run_until,
)


@pytest.fixture
def metrics():
    return PublisherMetrics()


@pytest.fixture
def errors():
    return ErrorCollector()


@pytest.fixture
def build(make_config, metrics, errors):
    def _build(factory, **config_overrides):
        return PublishOrchestrator(
            config=make_config(**config_overrides),
            metrics=metrics,
            errors=errors,
            client_factory=factory,
        )

    return _build


@pytest.mark.asyncio
class TestSteadyPublishing:
    async def test_all_senders_share_one_client(self, build, metrics, errors):
        senders = set()

        def hook(call_number, batch):
            senders.add(current_task_name())

        factory = FakeClientFactory(default=lambda: FakeClient(send_hook=hook))
        orchestrator = build(factory, concurrent_sends=3)

        await run_until(orchestrator, lambda: metrics.total_service_operations >= 30)

        client = factory.created[0]
        assert factory.attempts == 1
        assert senders == {"orchestrator", "pubstress-g1-sender-1", "pubstress-g1-sender-2"}
        assert metrics.total_service_operations == client.successful_sends
        assert metrics.batches_published == client.successful_sends
        assert metrics.events_published == sum(batch.count for batch in client.sent_batches)
        assert metrics.published_bytes == sum(b.size_in_bytes for b in client.sent_batches)
        assert metrics.published_bytes >= metrics.events_published * 100
        assert metrics.total_exceptions == 0
        assert metrics.producer_restarts == 0
        assert len(errors) == 0
        assert client.closed
        assert not orchestrator.is_running

    async def test_broker_fault_does_not_restart(self, build, metrics, errors):
        def hook(call_number, batch):
            if call_number == 5:
                raise BrokerError("partition leader unavailable")

        factory = FakeClientFactory(default=lambda: FakeClient(send_hook=hook))
        orchestrator = build(factory, concurrent_sends=2)

        await run_until(orchestrator, lambda: metrics.batches_published >= 20)

        client = factory.created[0]
        assert metrics.send_exceptions == 1
        assert metrics.total_exceptions == 1
        assert metrics.producer_restarts == 0
        assert factory.attempts == 1
        assert orchestrator.generations == 1
        assert metrics.events_published == sum(batch.count for batch in client.sent_batches)
        assert client.send_calls == client.successful_sends + 1
        assert [record.category for record in errors] == ["BrokerError"]

    async def test_publishing_delay_is_cancellable(self, build, metrics):
        factory = FakeClientFactory()
        orchestrator = build(factory, concurrent_sends=2, publishing_delay=30.0)

        await run_until(orchestrator, lambda: metrics.batches_published >= 2, timeout=2)

        assert metrics.batches_published == 2
        assert factory.created[0].closed

    async def test_stop_ends_publishing(self, build, metrics):
        factory = FakeClientFactory()
        orchestrator = build(factory, concurrent_sends=2)

        task = asyncio.create_task(orchestrator.start())
        while metrics.batches_published < 5:
            await asyncio.sleep(0.001)
        orchestrator.stop()
        await asyncio.wait_for(task, timeout=5)

        assert not orchestrator.is_running
        assert factory.created[0].closed


@pytest.mark.asyncio
class TestRestarts:
    async def test_client_creation_failures_are_restarts(self, build, metrics, errors):
        factory = FakeClientFactory(error=lambda attempt: ClientFaultError(f"attempt {attempt}"))
        orchestrator = build(factory, concurrent_sends=3)

        await run_until(orchestrator, lambda: metrics.producer_restarts >= 5)

        assert metrics.producer_restarts == factory.attempts
        assert len(errors) == factory.attempts
        assert {record.category for record in errors} == {"ClientFaultError"}
        assert orchestrator.generations == 0
        assert metrics.total_exceptions == 0

    async def test_handle_faults_restart_each_generation(self, build, metrics, errors):
        faulty = [
            FakeClient(batch_error=lambda: ClientFaultError("handle corrupted")) for _ in range(3)
        ]
        factory = FakeClientFactory(clients=faulty)
        orchestrator = build(factory, concurrent_sends=3)

        await run_until(
            orchestrator,
            lambda: len(factory.created) == 4 and factory.created[3].successful_sends >= 10,
        )

        assert metrics.producer_restarts == 3
        assert orchestrator.generations == 4
        assert len(errors) == 3
        assert all(client.closed for client in factory.created)
        assert all(client.close_calls == 1 for client in factory.created)

        sequences = [
            message.sequence
            for client in factory.created
            for batch in client.sent_batches
            for message in batch
        ]
        assert len(sequences) == len(set(sequences))
        assert max(sequences) <= orchestrator.sequence.current

    async def test_background_fault_restarts_generation(self, build, metrics, errors):
        def background_fault():
            if is_background_sender():
                return ClientFaultError("sender lost its connection")
            return None

        factory = FakeClientFactory(clients=[FakeClient(batch_error=background_fault)])
        orchestrator = build(factory, concurrent_sends=2)

        await run_until(
            orchestrator,
            lambda: len(factory.created) == 2 and factory.created[1].successful_sends >= 5,
        )

        assert metrics.producer_restarts == 1
        assert [record.message for record in errors] == ["sender lost its connection"]
        assert factory.created[0].closed
        assert orchestrator.generations == 2

    async def test_fatal_errors_escape(self, build, metrics):
        def hook(call_number, batch):
            raise MemoryError()

        factory = FakeClientFactory(default=lambda: FakeClient(send_hook=hook))
        orchestrator = build(factory, concurrent_sends=2)

        with pytest.raises(MemoryError):
            await asyncio.wait_for(orchestrator.start(CancellationSource().token), timeout=5)

        assert factory.created[0].closed
        assert metrics.producer_restarts == 0

    async def test_fatal_error_in_background_sender_escapes(self, build, metrics, errors):
        def hook(call_number, batch):
            if is_background_sender():
                raise MemoryError()

        factory = FakeClientFactory(default=lambda: FakeClient(send_hook=hook))
        orchestrator = build(factory, concurrent_sends=2)

        with pytest.raises(MemoryError):
            await asyncio.wait_for(orchestrator.start(CancellationSource().token), timeout=2)

        assert factory.attempts == 1
        assert factory.created[0].closed
        assert metrics.producer_restarts == 0
        assert metrics.batches_published < 5
        assert len(errors) == 0
        assert not orchestrator.is_running
    async def test_background_senders_finish_before_close(self, build, metrics, errors):
        factory = FakeClientFactory(default=lambda: FakeClient(send_delay=0.01))
        orchestrator = build(factory, concurrent_sends=4)

        await run_until(orchestrator, lambda: metrics.batches_published >= 8)

        client = factory.created[0]
        assert client.in_flight_at_close == 0
        assert client.close_calls == 1
        assert orchestrator.active_senders == 0
        assert metrics.producer_restarts == 0
        assert len(errors) == 0

    async def test_cancelled_before_start(self, build):
        factory = FakeClientFactory()
        orchestrator = build(factory)
        source = CancellationSource()
        source.cancel()

        await asyncio.wait_for(orchestrator.start(source.token), timeout=1)

        assert factory.attempts == 0


@pytest.mark.asyncio
class TestDraining:
    async def test_foreground_timeout_stops_background_senders(self, build, metrics):
        state = {"timed_out": False, "foreground_after": 0}

        def hook(call_number, batch):
            if current_task_name() != "orchestrator":
                return
            if state["timed_out"]:
                state["foreground_after"] += 1
            elif call_number >= 6:
                state["timed_out"] = True
                raise SendTimeoutError("attempt timed out")

        factory = FakeClientFactory(default=lambda: FakeClient(send_hook=hook))
        orchestrator = build(factory, concurrent_sends=3)

        await run_until(
            orchestrator,
            lambda: state["foreground_after"] >= 5 and orchestrator.active_senders == 0,
        )

        assert metrics.canceled_send_exceptions == 1
        assert metrics.producer_restarts == 0
        assert factory.attempts == 1

    async def test_rearm_restarts_background_senders(self, build, metrics):
        state = {"timed_out": False, "background_after": 0}

        def hook(call_number, batch):
            if current_task_name() == "orchestrator":
                if not state["timed_out"] and call_number >= 6:
                    state["timed_out"] = True
                    raise SendTimeoutError("attempt timed out")
            elif state["timed_out"]:
                state["background_after"] += 1

        factory = FakeClientFactory(default=lambda: FakeClient(send_hook=hook))
        orchestrator = build(factory, concurrent_sends=3, rearm_background_senders=True)

        await run_until(
            orchestrator,
            lambda: state["background_after"] >= 10 and orchestrator.active_senders == 2,
        )

        assert metrics.canceled_send_exceptions == 1
        assert metrics.producer_restarts == 0
        assert orchestrator.generations == 1

    async def test_cancelled_batch_creation_drains_without_restart(self, build, metrics, errors):
        state = {"raised": False}

        def cancel_once():
            if current_task_name() == "orchestrator" and not state["raised"]:
                state["raised"] = True
                return PublishCancelledError("batch request cancelled")
            return None

        factory = FakeClientFactory(default=lambda: FakeClient(batch_error=cancel_once))
        orchestrator = build(factory, concurrent_sends=2)

        await run_until(orchestrator, lambda: state["raised"] and metrics.batches_published >= 5)

        assert metrics.producer_restarts == 0
        assert factory.attempts == 1
        assert len(errors) == 0
