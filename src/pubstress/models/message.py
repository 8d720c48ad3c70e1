"""Generated message model."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

# Rough per-record framing cost in a Kafka record batch (length, attributes,
# timestamp and offset deltas, header count).
RECORD_OVERHEAD_BYTES = 24


class MessageProperty(str, Enum):
    """Header names stamped on every generated message."""

    ID = "Id"
    SEQUENCE = "Sequence"
    PUBLISH_DATE = "PublishDate"


@dataclass(frozen=True)
class PublishMessage:
    """A synthetic message ready to be added to a batch."""

    body: bytes
    message_id: str
    sequence: int
    published_at: datetime

    @property
    def key(self) -> bytes:
        return self.message_id.encode()

    @property
    def timestamp_ms(self) -> int:
        return int(self.published_at.timestamp() * 1000)

    def headers(self) -> list[tuple[str, bytes]]:
        return [
            (MessageProperty.ID.value, self.message_id.encode()),
            (MessageProperty.SEQUENCE.value, str(self.sequence).encode()),
            (
                MessageProperty.PUBLISH_DATE.value,
                self.published_at.isoformat(timespec="microseconds").encode(),
            ),
        ]

    @property
    def size_in_bytes(self) -> int:
        header_bytes = sum(len(name) + len(value) for name, value in self.headers())
        return len(self.body) + len(self.key) + header_bytes + RECORD_OVERHEAD_BYTES
