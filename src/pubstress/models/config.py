"""Publisher and cluster configuration models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pubstress.errors import ConfigError

DEFAULT_MAX_BATCH_SIZE_BYTES = 1_048_576


@dataclass(frozen=True)
class ClusterConfig:
    """Connection descriptor for a Kafka cluster."""

    bootstrap_servers: str
    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: str | None = None
    sasl_username: str | None = None
    sasl_password: str | None = field(default=None, repr=False)
    ssl_ca_location: str | None = None

    def __post_init__(self):
        if not self.bootstrap_servers:
            raise ConfigError("bootstrap_servers is required")
        if self.security_protocol.startswith("SASL") and not self.sasl_mechanism:
            raise ConfigError(f"sasl_mechanism is required for {self.security_protocol}")

    def to_kafka_config(self) -> dict[str, Any]:
        config: dict[str, Any] = {
            "bootstrap.servers": self.bootstrap_servers,
            "security.protocol": self.security_protocol,
        }
        if self.sasl_mechanism:
            config["sasl.mechanism"] = self.sasl_mechanism
        if self.sasl_username is not None:
            config["sasl.username"] = self.sasl_username
        if self.sasl_password is not None:
            config["sasl.password"] = self.sasl_password
        if self.ssl_ca_location:
            config["ssl.ca.location"] = self.ssl_ca_location
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterConfig:
        return cls(
            bootstrap_servers=data.get("bootstrap_servers", ""),
            security_protocol=data.get("security_protocol", "PLAINTEXT"),
            sasl_mechanism=data.get("sasl_mechanism"),
            sasl_username=data.get("sasl_username"),
            sasl_password=data.get("sasl_password"),
            ssl_ca_location=data.get("ssl_ca_location"),
        )


@dataclass(frozen=True)
class PublisherConfig:
    """Everything the orchestrator needs to run one publishing session."""

    cluster: ClusterConfig
    topic: str
    send_timeout: float = 60.0
    concurrent_sends: int = 1
    publishing_delay: float | None = None
    batch_fill_size: int = 50
    min_bytes: int = 100
    regular_max_bytes: int = 2048
    large_message_factor: float = 0.0
    max_batch_size_bytes: int = DEFAULT_MAX_BATCH_SIZE_BYTES
    restart_delay: float = 1.0
    rearm_background_senders: bool = False
    seed: int | None = None
    producer_config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.topic:
            raise ConfigError("topic is required")
        if self.concurrent_sends < 1:
            raise ConfigError("concurrent_sends must be at least 1")
        if self.batch_fill_size < 1:
            raise ConfigError("batch_fill_size must be at least 1")
        if self.min_bytes < 1:
            raise ConfigError("min_bytes must be at least 1")
        if self.regular_max_bytes < self.min_bytes:
            raise ConfigError("regular_max_bytes must be >= min_bytes")
        if not 0.0 <= self.large_message_factor <= 1.0:
            raise ConfigError("large_message_factor must be between 0 and 1")
        if self.send_timeout <= 0:
            raise ConfigError("send_timeout must be positive")
        if self.publishing_delay is not None and self.publishing_delay < 0:
            raise ConfigError("publishing_delay must be >= 0")
        if self.restart_delay < 0:
            raise ConfigError("restart_delay must be >= 0")
        if self.max_batch_size_bytes <= 0:
            raise ConfigError("max_batch_size_bytes must be positive")

    @property
    def has_publishing_delay(self) -> bool:
        return self.publishing_delay is not None and self.publishing_delay > 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublisherConfig:
        cluster_data = data.get("cluster") or {}
        if not isinstance(cluster_data, dict):
            raise ConfigError("'cluster' must be a mapping")

        publishing = data.get("publishing") or {}
        payload = data.get("payload") or {}
        producer = data.get("producer") or {}

        try:
            return cls(
                cluster=ClusterConfig.from_dict(cluster_data),
                topic=data.get("topic", ""),
                send_timeout=float(publishing.get("send_timeout_seconds", 60.0)),
                concurrent_sends=int(publishing.get("concurrent_sends", 1)),
                publishing_delay=_optional_float(publishing.get("delay_seconds")),
                batch_fill_size=int(publishing.get("batch_fill_size", 50)),
                min_bytes=int(payload.get("min_bytes", 100)),
                regular_max_bytes=int(payload.get("regular_max_bytes", 2048)),
                large_message_factor=float(payload.get("large_message_factor", 0.0)),
                max_batch_size_bytes=int(
                    producer.get("max_batch_size_bytes", DEFAULT_MAX_BATCH_SIZE_BYTES)
                ),
                restart_delay=float(publishing.get("restart_delay_seconds", 1.0)),
                rearm_background_senders=bool(
                    publishing.get("rearm_background_senders", False)
                ),
                seed=payload.get("seed"),
                producer_config=dict(producer.get("config") or {}),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)
