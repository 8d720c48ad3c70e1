"""Shared thread pool for blocking librdkafka calls.

Every in-flight send holds one worker for its whole flush loop, so the pool must
be at least as large as the number of concurrent senders plus a little headroom
for client creation, metadata lookups and close.
"""

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

T = TypeVar("T")

DEFAULT_MAX_WORKERS = 16
CLIENT_HEADROOM_WORKERS = 2

logger = logging.getLogger(__name__)

_executor: ThreadPoolExecutor | None = None
_max_workers = DEFAULT_MAX_WORKERS


def get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=_max_workers, thread_name_prefix="pubstress-io")
    return _executor


def pool_size() -> int:
    return _max_workers


def reserve_workers(concurrent_sends: int) -> None:
    """Grow the pool so that ``concurrent_sends`` blocking sends can run at once.

    The pool never shrinks. A pool that is too small is replaced; calls already
    queued on it still run to completion.
    """
    global _executor, _max_workers
    required = concurrent_sends + CLIENT_HEADROOM_WORKERS
    if required <= _max_workers:
        return

    logger.debug(f"Growing blocking-call pool from {_max_workers} to {required} workers")
    _max_workers = required
    if _executor is not None:
        previous, _executor = _executor, None
        previous.shutdown(wait=False)


def shutdown_executor() -> None:
    global _executor, _max_workers
    if _executor is not None:
        _executor.shutdown(wait=True)
        _executor = None
    _max_workers = DEFAULT_MAX_WORKERS


async def run_blocking(fn: Callable[..., T], *args: Any) -> T:
    """Run a blocking client call on the shared pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(get_executor(), fn, *args)
