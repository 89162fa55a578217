"""
Rate-adaptive render scheduler.

Two timers run on the event loop: a redraw tick that repaints the table
when a redraw was requested (AUTO mode only), and a one-second countdown
that updates the "next refresh" indicator without repainting the table.

Once the store holds more topics than the degrade threshold, the redraw
period switches to the slow interval for the rest of the run.
"""

import asyncio
import time
from enum import Enum
from typing import Callable, Optional, Protocol

import structlog

from mqttsight.core.session import Session

logger = structlog.get_logger(__name__)


class SchedulerMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class RenderTrigger(str, Enum):
    """Why a render happened (metrics label)."""
    TICK = "tick"
    FAST_FEEDBACK = "fast_feedback"
    REQUEST = "request"
    KEY = "key"


class Renderer(Protocol):
    def draw(self, session: Session) -> int: ...

    def draw_status(self, session: Session) -> None: ...


class RenderScheduler:
    """
    Decides when the state store may be projected to the screen.

    Features:
    - AUTO mode: periodic tick renders pending changes
    - MANUAL mode: renders only on key commands
    - Immediate renders while few topics have been seen
    - One-way slowdown for large datasets
    """

    def __init__(
        self,
        session: Session,
        renderer: Renderer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.state = session.scheduler
        self.renderer = renderer
        self._clock = clock
        self._settings = session.settings.scheduler
        self._tick_task: Optional["asyncio.Task[None]"] = None
        self._countdown_task: Optional["asyncio.Task[None]"] = None

    @property
    def mode(self) -> SchedulerMode:
        return SchedulerMode.AUTO if self.state.auto_refresh else SchedulerMode.MANUAL

    @property
    def running(self) -> bool:
        return self._tick_task is not None

    def start(self) -> None:
        """Start both timers; must be called from the event loop."""
        if self.running:
            return
        self.state.reset_countdown()
        self._tick_task = asyncio.create_task(self._tick_loop())
        self._countdown_task = asyncio.create_task(self._countdown_loop())
        logger.info("Render scheduler started", interval_ms=self.state.interval_ms)

    async def stop(self) -> None:
        """Stop both timers."""
        tasks = [t for t in (self._tick_task, self._countdown_task) if t is not None]
        self._tick_task = None
        self._countdown_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.info("Render scheduler stopped")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.state.interval_ms / 1000)
            self.on_tick()

    async def _countdown_loop(self) -> None:
        while True:
            await asyncio.sleep(1)
            self.on_countdown()

    def on_tick(self) -> None:
        """Redraw timer callback."""
        if self.state.auto_refresh and self.state.pending_redraw:
            self._render(RenderTrigger.TICK)

    def on_countdown(self) -> None:
        """Countdown timer callback; never repaints the table."""
        self.state.countdown_seconds -= 1
        if self.state.auto_refresh and not self.session.view.showing_detail:
            self.renderer.draw_status(self.session)
        if self.state.countdown_seconds <= 0:
            self.state.reset_countdown()

    def notify_changed(self, labels_before: Optional[int] = None) -> None:
        """
        Called after a batch changed the state store.

        Fast feedback applies when any message of the batch was applied
        below the threshold, so ``labels_before`` is the topic count the
        batch started from. Without it the current count is used.
        """
        self.state.pending_redraw = True
        self.check_degrade()
        if not self.session.view.showing_detail:
            self.renderer.draw_status(self.session)
        count = len(self.session.store) if labels_before is None else labels_before
        if count < self._settings.fast_feedback_labels:
            self.force_render(RenderTrigger.FAST_FEEDBACK)

    def request_render(self) -> None:
        """Render now in AUTO mode unless it is too soon; MANUAL mode only marks the view stale."""
        if not self.state.auto_refresh:
            self.state.pending_redraw = True
            return
        elapsed_ms = (self._clock() - self.state.last_render_time) * 1000
        if elapsed_ms < self.state.interval_ms:
            self.state.pending_redraw = True
            return
        self._render(RenderTrigger.REQUEST)

    def force_render(self, trigger: RenderTrigger = RenderTrigger.KEY) -> None:
        """Render immediately, bypassing the rate limit."""
        self._render(trigger)
        if trigger != RenderTrigger.FAST_FEEDBACK:
            self.state.reset_countdown()

    def toggle_auto_refresh(self) -> SchedulerMode:
        self.state.auto_refresh = not self.state.auto_refresh
        self.state.reset_countdown()
        self.force_render(RenderTrigger.KEY)
        logger.info("Auto-refresh toggled", mode=self.mode.value)
        return self.mode

    def check_degrade(self) -> bool:
        """Switch to the slow interval the first time the store grows too large."""
        if self.state.degraded or len(self.session.store) <= self._settings.degrade_threshold:
            return False

        self.state.degraded = True
        self.state.interval_ms = self._settings.degraded_interval_ms
        self.state.reset_countdown()
        logger.warning(
            "Large dataset, slowing redraw rate",
            topics=len(self.session.store),
            interval_ms=self.state.interval_ms,
        )
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = asyncio.create_task(self._tick_loop())
        return True

    def _render(self, trigger: RenderTrigger) -> None:
        if self.session.view.showing_detail:
            # Keep the detail view on screen; the change is picked up later
            self.state.pending_redraw = True
            return

        self.check_degrade()
        errors = self.renderer.draw(self.session)

        self.state.last_render_time = self._clock()
        self.state.pending_redraw = False
        self.state.last_rendered_count = len(self.session.store)
        self.session.metrics.record_render(trigger.value, errors)
