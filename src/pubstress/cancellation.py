"""Cooperative cancellation shared by the event loop and worker threads.

A ``CancellationSource`` owns the signal; code that only needs to observe it
receives the source's ``CancellationToken``. Sources can be linked to a parent
token so that cancelling the parent cancels every child, while each child can
still be cancelled on its own.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable

from pubstress.errors import PublishCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Read-only view of a cancellation source."""

    def __init__(self, source: CancellationSource):
        self._source = source

    @property
    def is_cancelled(self) -> bool:
        return self._source.is_cancelled

    def raise_if_cancelled(self) -> None:
        if self._source.is_cancelled:
            raise PublishCancelledError("operation was cancelled")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` once on cancellation. Returns an unregister function."""
        return self._source._register(callback)

    def wait_blocking(self, timeout: float | None = None) -> bool:
        """Block the calling thread until cancelled or ``timeout`` elapses."""
        return self._source._event.wait(timeout)

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self.is_cancelled:
            return

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        unregister = self.register(lambda: loop.call_soon_threadsafe(_wake))
        try:
            await waiter
        finally:
            unregister()


class CancellationSource:
    """Thread-safe cancellation signal."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._unlink: Callable[[], None] | None = None
        self.token = CancellationToken(self)

    @classmethod
    def linked(cls, parent: CancellationToken) -> CancellationSource:
        """Create a source that is cancelled whenever ``parent`` is."""
        source = cls()
        source._unlink = parent.register(source.cancel)
        return source

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def close(self) -> None:
        """Detach from the parent token, if any."""
        if self._unlink is not None:
            self._unlink()
            self._unlink = None

    def _register(self, callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def unregister() -> None:
                    with self._lock:
                        if callback in self._callbacks:
                            self._callbacks.remove(callback)

                return unregister

        callback()
        return lambda: None


async def cancellable_sleep(seconds: float, token: CancellationToken) -> None:
    """Sleep for ``seconds`` unless ``token`` fires first.

    Raises PublishCancelledError when the sleep is interrupted.
    """
    token.raise_if_cancelled()
    if seconds <= 0:
        await asyncio.sleep(0)
        token.raise_if_cancelled()
        return

    try:
        await asyncio.wait_for(token.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return
    raise PublishCancelledError("delay was cancelled")
