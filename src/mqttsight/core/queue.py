"""
Bounded ingest queue.

Absorbs bursts between the transport callback and the batch consumer. When
the queue grows past its high-water mark the oldest entries are discarded,
keeping only the most recent low-water-mark messages. Delivery is therefore
at-most-once: trimmed messages never reach the state store.
"""

from collections import deque
from typing import Deque, List

import structlog

from mqttsight.models.message import Message

logger = structlog.get_logger(__name__)


class IngestQueue:
    """FIFO buffer with oldest-first overflow trimming."""

    def __init__(self, high_water: int = 1000, low_water: int = 100) -> None:
        if low_water > high_water:
            raise ValueError("low_water must not exceed high_water")
        self.high_water = high_water
        self.low_water = low_water
        self.dropped_total = 0
        self._items: Deque[Message] = deque()

    def __len__(self) -> int:
        return len(self._items)

    def push(self, message: Message) -> int:
        """
        Append a message, trimming the backlog if it overflowed.

        Returns:
            Number of messages dropped by this push
        """
        self._items.append(message)
        if len(self._items) <= self.high_water:
            return 0

        dropped = len(self._items) - self.low_water
        for _ in range(dropped):
            self._items.popleft()
        self.dropped_total += dropped

        logger.warning(
            "Ingest queue overloaded, dropped oldest messages",
            dropped=dropped,
            kept=len(self._items),
            dropped_total=self.dropped_total,
        )
        return dropped

    def drain_batch(self, max_size: int) -> List[Message]:
        """Remove and return up to max_size messages, oldest first."""
        count = min(max_size, len(self._items))
        return [self._items.popleft() for _ in range(count)]
