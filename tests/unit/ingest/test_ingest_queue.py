"""
Tests for the bounded ingest queue.

Tests FIFO draining and overflow trimming.
"""

import pytest

from mqttsight.core.queue import IngestQueue
from mqttsight.models.message import Message


def _message(n: int) -> Message:
    return Message(label=f"topic/{n}", payload=str(n), retained=True)


class TestIngestQueue:
    """Test queue ordering and trimming."""

    def test_drain_preserves_fifo_order(self) -> None:
        queue = IngestQueue()
        for n in range(5):
            queue.push(_message(n))

        batch = queue.drain_batch(3)
        assert [m.payload for m in batch] == ["0", "1", "2"]
        assert len(queue) == 2
        assert [m.payload for m in queue.drain_batch(10)] == ["3", "4"]
        assert queue.drain_batch(10) == []

    def test_push_at_high_water_does_not_trim(self) -> None:
        queue = IngestQueue(high_water=10, low_water=3)
        dropped = [queue.push(_message(n)) for n in range(10)]
        assert sum(dropped) == 0
        assert len(queue) == 10

    def test_overflow_keeps_most_recent_low_water(self) -> None:
        queue = IngestQueue(high_water=10, low_water=3)
        for n in range(10):
            queue.push(_message(n))

        assert queue.push(_message(10)) == 8
        assert queue.dropped_total == 8
        assert [m.payload for m in queue.drain_batch(10)] == ["8", "9", "10"]

    def test_never_exceeds_high_water(self) -> None:
        queue = IngestQueue(high_water=1000, low_water=100)
        for n in range(5000):
            queue.push(_message(n))
            assert len(queue) <= 1000

    def test_default_marks(self) -> None:
        queue = IngestQueue()
        for n in range(1001):
            queue.push(_message(n))
        survivors = queue.drain_batch(1000)
        assert len(survivors) == 100
        assert survivors[0].payload == "901"
        assert survivors[-1].payload == "1000"

    def test_invalid_marks_rejected(self) -> None:
        with pytest.raises(ValueError):
            IngestQueue(high_water=10, low_water=20)
