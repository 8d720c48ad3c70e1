"""Fixtures for integration tests using testcontainers."""

import uuid

import pytest
from confluent_kafka.admin import AdminClient, NewTopic
from testcontainers.kafka import KafkaContainer

from pubstress.models.config import ClusterConfig, PublisherConfig
from pubstress.runtime import shutdown_executor


@pytest.fixture(scope="module")
def kafka_container():
    """Start Kafka container for integration tests."""
    with KafkaContainer("confluentinc/cp-kafka:7.5.0").with_env(
        "KAFKA_AUTO_CREATE_TOPICS_ENABLE", "false"
    ) as kafka:
        yield kafka


@pytest.fixture(scope="module")
def bootstrap_servers(kafka_container):
    return kafka_container.get_bootstrap_server()


@pytest.fixture
def topic(bootstrap_servers):
    """Create a fresh topic for each test."""
    name = f"pubstress-{uuid.uuid4().hex[:8]}"
    admin = AdminClient({"bootstrap.servers": bootstrap_servers})
    futures = admin.create_topics([NewTopic(name, num_partitions=3, replication_factor=1)])
    futures[name].result(timeout=30)
    yield name
    admin.delete_topics([name])


@pytest.fixture
def publisher_config(bootstrap_servers, topic):
    def _config(**overrides):
        values = {
            "cluster": ClusterConfig(bootstrap_servers=bootstrap_servers),
            "topic": topic,
            "send_timeout": 30.0,
            "concurrent_sends": 3,
            "batch_fill_size": 20,
            "min_bytes": 100,
            "regular_max_bytes": 1_000,
            "restart_delay": 0.5,
            "seed": 1,
        }
        values.update(overrides)
        return PublisherConfig(**values)

    return _config


@pytest.fixture(scope="module", autouse=True)
def _shutdown_thread_pool():
    yield
    shutdown_executor()
