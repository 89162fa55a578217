"""
Streaming ingestion pipeline.

Orchestrates the flow from transport callback to state store:
1. Exclude check (topic only)
2. Retention gate (skip live messages unless live mode is on)
3. Include matching
4. Queueing with overflow trimming
5. Batched, self-rescheduling drain into the state store
6. Optional retained-message clearing and redraw notification
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from mqttsight.models.message import Message, decode_payload
from mqttsight.core.scheduler import RenderScheduler
from mqttsight.core.session import Session
from mqttsight.core.state import ApplyResult

logger = structlog.get_logger(__name__)


@dataclass
class IngestStats:
    """Counters shown in debug output and tests."""
    received: int = 0
    accepted: int = 0
    excluded: int = 0
    not_retained: int = 0
    not_matched: int = 0


class IngestionPipeline:
    """
    Main processing pipeline for incoming messages.

    `handle_message` is the transport's message callback; it does only the
    cheap filtering work and defers state updates to the drain step, which
    applies at most `batch_size` messages per invocation before yielding
    back to the event loop.
    """

    def __init__(
        self,
        session: Session,
        scheduler: RenderScheduler,
        clear_retained: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.session = session
        self.scheduler = scheduler
        self.clear_retained = clear_retained
        self.stats = IngestStats()
        self._settings = session.settings.scheduler
        self._drain_handle: Optional[asyncio.TimerHandle] = None
        logger.info(
            "Ingestion pipeline initialized",
            live=session.settings.display.live,
            clear_retained=clear_retained is not None,
        )

    def handle_message(self, label: str, payload: bytes, retained: bool) -> bool:
        """
        Filter one incoming message and queue it if accepted.

        Returns:
            True if the message was queued
        """
        session = self.session
        self.stats.received += 1
        session.metrics.record_received()

        if session.filter_engine.is_excluded(label):
            self.stats.excluded += 1
            session.metrics.record_rejected("excluded")
            logger.debug("Excluded topic", topic=label)
            return False

        if not retained and not session.settings.display.live:
            self.stats.not_retained += 1
            session.metrics.record_rejected("retention")
            logger.debug("Skipping non-retained message", topic=label)
            return False

        text = decode_payload(payload)
        verdict = session.filter_engine.match_include(label, text)
        if not verdict.included:
            self.stats.not_matched += 1
            session.metrics.record_rejected("no_match")
            logger.debug("Skipping non-matching message", topic=label)
            return False

        message = Message(label=label, payload=text, retained=bool(retained), verdict=verdict)
        dropped = session.queue.push(message)
        session.metrics.record_dropped(dropped)
        self.stats.accepted += 1

        self.schedule_drain()
        return True

    def schedule_drain(self) -> None:
        """Arrange for a drain step unless one is already pending."""
        if self._drain_handle is not None or not self.session.queue:
            return
        loop = asyncio.get_running_loop()
        self._drain_handle = loop.call_later(self._settings.drain_delay_ms / 1000, self._drain)

    def drain_once(self) -> ApplyResult:
        """Apply one batch from the queue to the state store."""
        session = self.session
        labels_before = len(session.store)
        batch = session.queue.drain_batch(self._settings.batch_size)
        result = session.store.apply_batch(batch)

        session.metrics.record_batch(
            updated=len(result.updated),
            queue_depth=len(session.queue),
            stored=len(session.store),
        )

        if result.changed:
            if self.clear_retained is not None:
                for message in result.updated:
                    if message.retained and message.payload:
                        self.clear_retained(message.label)
            self.scheduler.notify_changed(labels_before)

        return result

    def stop(self) -> None:
        """Cancel any pending drain step."""
        if self._drain_handle is not None:
            self._drain_handle.cancel()
            self._drain_handle = None

    def _drain(self) -> None:
        self._drain_handle = None
        try:
            self.drain_once()
        finally:
            self.schedule_drain()
