"""Size-bounded message batch."""

from __future__ import annotations

from collections.abc import Iterator

from pubstress.models.message import PublishMessage


class MessageBatch:
    """An ordered group of messages that fits within ``max_size_in_bytes``."""

    def __init__(self, max_size_in_bytes: int):
        if max_size_in_bytes <= 0:
            raise ValueError("max_size_in_bytes must be positive")
        self.max_size_in_bytes = max_size_in_bytes
        self._messages: list[PublishMessage] = []
        self._size_in_bytes = 0

    @property
    def count(self) -> int:
        return len(self._messages)

    @property
    def size_in_bytes(self) -> int:
        return self._size_in_bytes

    def try_add(self, message: PublishMessage) -> bool:
        """Add ``message`` if it fits. Returns False and leaves the batch unchanged otherwise."""
        size = message.size_in_bytes
        if self._size_in_bytes + size > self.max_size_in_bytes:
            return False
        self._messages.append(message)
        self._size_in_bytes += size
        return True

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[PublishMessage]:
        return iter(self._messages)
