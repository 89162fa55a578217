"""
Session state shared by every handler.

All mutable view and scheduling state lives here and is passed explicitly to
the scheduler, renderer, pipeline and key handlers. Everything runs on the
event loop thread, so no locking is needed; handlers must simply never
suspend in the middle of a mutation.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from mqttsight.config import Settings
from mqttsight.models.message import SortKey
from mqttsight.core.filtering import FilterEngine
from mqttsight.core.masking import Masker
from mqttsight.core.metrics import MetricsCollector
from mqttsight.core.queue import IngestQueue
from mqttsight.core.state import StateStore


@dataclass
class ViewState:
    """Display parameters changed from the keyboard."""
    sort_key: SortKey
    topic_width: int
    payload_width: int
    highlight_enabled: bool = True
    showing_detail: bool = False
    notice: Optional[str] = None


@dataclass
class SchedulerState:
    """Redraw bookkeeping."""
    interval_ms: int
    auto_refresh: bool = True
    pending_redraw: bool = False
    last_render_time: float = 0.0
    countdown_seconds: int = 0
    last_rendered_count: int = 0
    degraded: bool = False

    def reset_countdown(self) -> None:
        self.countdown_seconds = math.ceil(self.interval_ms / 1000)


@dataclass
class Session:
    """Everything one monitoring run reads and writes."""
    settings: Settings
    store: StateStore
    queue: IngestQueue
    filter_engine: FilterEngine
    masker: Masker
    view: ViewState
    scheduler: SchedulerState
    metrics: MetricsCollector

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.time,
    ) -> "Session":
        scheduler_state = SchedulerState(interval_ms=settings.scheduler.interval_ms)
        scheduler_state.reset_countdown()
        return cls(
            settings=settings,
            store=StateStore(clock=clock),
            queue=IngestQueue(
                high_water=settings.scheduler.queue_high_water,
                low_water=settings.scheduler.queue_low_water,
            ),
            filter_engine=FilterEngine(
                exclude=settings.filter.exclude,
                include=settings.filter.include,
                mode=settings.filter.mode,
            ),
            masker=Masker(
                patterns=settings.masking.patterns,
                preserve=settings.masking.preserve,
            ),
            view=ViewState(
                sort_key=settings.display.sort,
                topic_width=settings.display.topic_width,
                payload_width=settings.display.payload_width,
            ),
            scheduler=scheduler_state,
            metrics=metrics or MetricsCollector(),
        )
