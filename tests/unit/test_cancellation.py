"""Tests for cancellation sources and tokens."""

import asyncio
import threading

import pytest

from pubstress.cancellation import CancellationSource, cancellable_sleep
from pubstress.errors import PublishCancelledError


class TestLinking:
    def test_parent_cancels_child(self):
        parent = CancellationSource()
        child = CancellationSource.linked(parent.token)

        parent.cancel()

        assert child.is_cancelled

    def test_child_cancel_does_not_touch_parent(self):
        parent = CancellationSource()
        child = CancellationSource.linked(parent.token)

        child.cancel()

        assert child.is_cancelled
        assert not parent.is_cancelled

    def test_closed_child_is_detached(self):
        parent = CancellationSource()
        child = CancellationSource.linked(parent.token)

        child.close()
        parent.cancel()

        assert not child.is_cancelled

    def test_linking_to_cancelled_parent(self):
        parent = CancellationSource()
        parent.cancel()

        assert CancellationSource.linked(parent.token).is_cancelled


class TestCallbacks:
    def test_callback_runs_once(self):
        source = CancellationSource()
        calls = []
        source.token.register(lambda: calls.append(1))

        source.cancel()
        source.cancel()

        assert calls == [1]

    def test_unregistered_callback_does_not_run(self):
        source = CancellationSource()
        calls = []
        unregister = source.token.register(lambda: calls.append(1))

        unregister()
        source.cancel()

        assert calls == []

    def test_register_after_cancel_runs_immediately(self):
        source = CancellationSource()
        source.cancel()
        calls = []

        source.token.register(lambda: calls.append(1))

        assert calls == [1]

    def test_failing_callback_does_not_stop_others(self):
        source = CancellationSource()
        calls = []

        def boom():
            raise RuntimeError("boom")

        source.token.register(boom)
        source.token.register(lambda: calls.append(1))
        source.cancel()

        assert calls == [1]

    def test_raise_if_cancelled(self):
        source = CancellationSource()
        source.token.raise_if_cancelled()

        source.cancel()

        with pytest.raises(PublishCancelledError):
            source.token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_wait_is_woken_from_another_thread():
    source = CancellationSource()
    timer = threading.Timer(0.05, source.cancel)
    timer.start()

    await asyncio.wait_for(source.token.wait(), timeout=2)

    assert source.is_cancelled


@pytest.mark.asyncio
async def test_sleep_completes_when_not_cancelled():
    source = CancellationSource()

    await cancellable_sleep(0.01, source.token)

    assert not source.is_cancelled


@pytest.mark.asyncio
async def test_sleep_is_interrupted():
    source = CancellationSource()
    asyncio.get_running_loop().call_later(0.05, source.cancel)

    with pytest.raises(PublishCancelledError):
        await asyncio.wait_for(cancellable_sleep(30, source.token), timeout=2)


@pytest.mark.asyncio
async def test_zero_sleep_checks_token():
    source = CancellationSource()
    source.cancel()

    with pytest.raises(PublishCancelledError):
        await cancellable_sleep(0, source.token)
