from collections.abc import Callable

import pytest

from pubstress.models.config import ClusterConfig, PublisherConfig
from pubstress.runtime import shutdown_executor


@pytest.fixture
def make_config() -> Callable[..., PublisherConfig]:
    def _make(**overrides) -> PublisherConfig:
        values = {
            "cluster": ClusterConfig(bootstrap_servers="localhost:9092"),
            "topic": "pubstress-test",
            "send_timeout": 5.0,
            "concurrent_sends": 1,
            "batch_fill_size": 10,
            "min_bytes": 100,
            "regular_max_bytes": 200,
            "large_message_factor": 0.0,
            "restart_delay": 0.0,
            "seed": 42,
        }
        values.update(overrides)
        return PublisherConfig(**values)

    return _make


@pytest.fixture(scope="session", autouse=True)
def _shutdown_thread_pool():
    yield
    shutdown_executor()
