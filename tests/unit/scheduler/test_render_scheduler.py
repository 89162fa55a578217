"""
Tests for the render scheduler.

Tests AUTO/MANUAL gating, fast feedback for small stores, the one-way
slowdown for large stores and the countdown ticker.
"""

import pytest

from mqttsight.core.scheduler import RenderScheduler, RenderTrigger, SchedulerMode
from mqttsight.models.message import Message


def _fill(session, count: int, prefix: str = "t") -> None:
    session.store.apply_batch(
        [Message(label=f"{prefix}/{n}", payload="v", retained=True) for n in range(count)]
    )


@pytest.fixture
def scheduler(session, renderer, clock) -> RenderScheduler:
    return RenderScheduler(session, renderer, clock=clock)


class TestFastFeedback:
    """Test immediate renders while few topics exist."""

    def test_renders_every_change_below_threshold(self, session, renderer, scheduler) -> None:
        for n in range(1, 10):
            _fill(session, n)
            scheduler.notify_changed()
        assert renderer.draws == 9
        assert session.scheduler.pending_redraw is False

    def test_renders_even_in_manual_mode(self, session, renderer, scheduler) -> None:
        session.scheduler.auto_refresh = False
        _fill(session, 1)
        scheduler.notify_changed()
        assert renderer.draws == 1

    def test_no_forced_render_at_threshold(self, session, renderer, scheduler) -> None:
        _fill(session, 10)
        scheduler.notify_changed()
        assert renderer.draws == 0
        assert session.scheduler.pending_redraw is True
        assert renderer.status_draws == 1

    def test_batch_crossing_threshold_renders(self, session, renderer, scheduler) -> None:
        _fill(session, 8)
        _fill(session, 12)
        scheduler.notify_changed(labels_before=8)
        assert len(session.store) == 12
        assert renderer.draws == 1
        assert session.scheduler.pending_redraw is False

    def test_batch_starting_at_threshold_waits_for_tick(self, session, renderer, scheduler) -> None:
        _fill(session, 12)
        scheduler.notify_changed(labels_before=10)
        assert renderer.draws == 0
        assert session.scheduler.pending_redraw is True

    def test_fast_feedback_does_not_reset_countdown(self, session, scheduler) -> None:
        session.scheduler.countdown_seconds = 1
        _fill(session, 1)
        scheduler.notify_changed()
        assert session.scheduler.countdown_seconds == 1


class TestTick:
    """Test the periodic redraw tick."""

    def test_tick_renders_pending_changes(self, session, renderer, scheduler) -> None:
        _fill(session, 20)
        scheduler.notify_changed()
        scheduler.on_tick()
        assert renderer.draws == 1
        assert session.scheduler.pending_redraw is False
        assert session.scheduler.last_rendered_count == 20

    def test_tick_without_changes_does_nothing(self, renderer, scheduler) -> None:
        scheduler.on_tick()
        assert renderer.draws == 0

    def test_manual_mode_ignores_tick(self, session, renderer, scheduler) -> None:
        scheduler.toggle_auto_refresh()
        assert scheduler.mode == SchedulerMode.MANUAL
        draws_after_toggle = renderer.draws

        _fill(session, 20)
        scheduler.notify_changed()
        scheduler.on_tick()
        assert renderer.draws == draws_after_toggle
        assert session.scheduler.pending_redraw is True

    def test_detail_view_defers_render(self, session, renderer, scheduler) -> None:
        _fill(session, 20)
        scheduler.notify_changed()
        session.view.showing_detail = True
        scheduler.on_tick()
        assert renderer.draws == 0
        assert session.scheduler.pending_redraw is True

        session.view.showing_detail = False
        scheduler.on_tick()
        assert renderer.draws == 1


class TestRequests:
    """Test explicit and forced renders."""

    def test_request_render_is_rate_limited_in_auto_mode(self, session, renderer, scheduler, clock) -> None:
        scheduler.request_render()
        assert renderer.draws == 1

        clock.advance(0.5)
        scheduler.request_render()
        assert renderer.draws == 1
        assert session.scheduler.pending_redraw is True

        clock.advance(0.6)
        scheduler.request_render()
        assert renderer.draws == 2

    def test_request_render_in_manual_mode_only_marks_pending(self, session, renderer, scheduler, clock) -> None:
        session.scheduler.auto_refresh = False
        _fill(session, 20)
        for _ in range(5):
            clock.advance(2)
            scheduler.request_render()
        assert renderer.draws == 0
        assert session.scheduler.pending_redraw is True

        scheduler.force_render(RenderTrigger.KEY)
        assert renderer.draws == 1
        assert session.scheduler.pending_redraw is False

    def test_force_render_resets_countdown(self, session, renderer, scheduler) -> None:
        session.scheduler.countdown_seconds = 0
        scheduler.force_render(RenderTrigger.KEY)
        assert renderer.draws == 1
        assert session.scheduler.countdown_seconds == 1

    def test_render_records_metric(self, session, scheduler, metrics) -> None:
        scheduler.force_render(RenderTrigger.KEY)
        value = metrics.registry.get_sample_value("renders_total", {"trigger": "key"})
        assert value == 1.0


class TestDegrade:
    """Test the one-way slowdown for large stores."""

    def test_transitions_exactly_once(self, session, scheduler) -> None:
        assert session.scheduler.interval_ms == 1000
        _fill(session, 1000)
        assert scheduler.check_degrade() is False

        _fill(session, 1, prefix="extra")
        assert scheduler.check_degrade() is True
        assert session.scheduler.interval_ms == 15000
        assert session.scheduler.degraded is True
        assert session.scheduler.countdown_seconds == 15
        assert scheduler.check_degrade() is False

    def test_never_reverts(self, session, scheduler) -> None:
        _fill(session, 1001)
        scheduler.notify_changed()
        for entry in session.store.entries():
            session.store.mark_cleared(entry.label)
        scheduler.notify_changed()
        scheduler.force_render()
        assert session.scheduler.interval_ms == 15000

    def test_custom_threshold(self, make_settings, make_session, renderer, clock) -> None:
        settings = make_settings(scheduler={"degrade_threshold": 3, "degraded_interval_ms": 5000})
        session = make_session(settings)
        scheduler = RenderScheduler(session, renderer, clock=clock)
        _fill(session, 4)
        scheduler.notify_changed()
        assert session.scheduler.interval_ms == 5000

    @pytest.mark.asyncio
    async def test_degrade_restarts_tick_timer(self, session, scheduler) -> None:
        scheduler.start()
        old_task = scheduler._tick_task
        _fill(session, 1001)
        scheduler.check_degrade()
        assert scheduler._tick_task is not old_task
        await scheduler.stop()
        assert scheduler.running is False


class TestCountdown:
    """Test the status line countdown."""

    def test_countdown_updates_status_only(self, session, renderer, scheduler) -> None:
        session.scheduler.countdown_seconds = 3
        scheduler.on_countdown()
        assert session.scheduler.countdown_seconds == 2
        assert renderer.status_draws == 1
        assert renderer.draws == 0

    def test_countdown_wraps_to_interval(self, session, scheduler) -> None:
        session.scheduler.countdown_seconds = 1
        scheduler.on_countdown()
        assert session.scheduler.countdown_seconds == 1

    def test_no_status_in_manual_mode(self, session, renderer, scheduler) -> None:
        session.scheduler.auto_refresh = False
        scheduler.on_countdown()
        assert renderer.status_draws == 0


class TestLifecycle:
    """Test timer start and stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler) -> None:
        scheduler.start()
        assert scheduler.running is True
        await scheduler.stop()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_without_start(self, scheduler) -> None:
        await scheduler.stop()
        assert scheduler.running is False
