"""
Tests for table rendering.

Tests sorting, row markers, payload truncation, per-row error isolation
and the detail view, rendering into an in-memory console.
"""

import pytest
from rich.text import Text

from mqttsight.core.state import StoredEntry
from mqttsight.models.message import MatchVerdict, Message, SortKey
from mqttsight.ui.render import (
    PLACEHOLDER,
    RowMarker,
    TableRenderer,
    relative_age,
    row_marker,
    sort_entries,
    truncate_payload,
)


def _entry(label: str, last_update: float, order: int = 0) -> StoredEntry:
    return StoredEntry(label=label, payload="v", retained=True, first_seen_order=order, last_update=last_update)


def _output(terminal) -> str:
    return terminal.console.file.getvalue()


@pytest.fixture
def table_renderer(terminal, clock) -> TableRenderer:
    return TableRenderer(terminal, clock=clock)


class TestSorting:
    """Test presentation order."""

    def test_time_sort_oldest_first(self) -> None:
        entries = [_entry("b", 3.0), _entry("a", 1.0), _entry("c", 2.0)]
        assert [e.label for e in sort_entries(entries, SortKey.TIME)] == ["a", "c", "b"]

    def test_label_sort_case_insensitive(self) -> None:
        entries = [_entry("beta", 1.0), _entry("Alpha", 2.0), _entry("alpine", 3.0)]
        assert [e.label for e in sort_entries(entries, SortKey.LABEL)] == ["Alpha", "alpine", "beta"]

    def test_sorting_does_not_touch_store(self, session, clock) -> None:
        session.store.apply_batch([Message(label="b", payload="1"), Message(label="a", payload="1")])
        sort_entries(session.store.entries(), SortKey.LABEL)
        assert [e.label for e in session.store.entries()] == ["b", "a"]


class TestRowMarkers:
    """Test markers relative to the previous render."""

    def test_no_markers_before_first_render(self) -> None:
        assert row_marker(0, 5, 0, True) == RowMarker.NONE

    def test_no_markers_in_manual_mode(self) -> None:
        assert row_marker(0, 5, 3, False) == RowMarker.NONE

    def test_markers_when_rows_were_added(self) -> None:
        markers = [row_marker(i, 5, 3, True) for i in range(5)]
        assert markers == [
            RowMarker.FIRST,
            RowMarker.NONE,
            RowMarker.PREV_START,
            RowMarker.NEW,
            RowMarker.NEW,
        ]

    def test_previous_end_when_nothing_was_added(self) -> None:
        markers = [row_marker(i, 3, 3, True) for i in range(3)]
        assert markers == [RowMarker.NONE, RowMarker.NONE, RowMarker.PREV_END]


class TestTruncation:
    """Test long payload shortening."""

    def test_short_payload_unchanged(self) -> None:
        assert truncate_payload("x" * 500, colored=False) == "x" * 500

    def test_medium_payload(self) -> None:
        assert truncate_payload("x" * 600, colored=False) == "x" * 250 + "... [truncated]"

    def test_long_payload_reports_length(self) -> None:
        result = truncate_payload("x" * 1200, colored=False)
        assert result == "x" * 100 + "... [truncated, full length: 1200 chars]"

    def test_coloured_payload_resets_formatting(self) -> None:
        payload = "\x1b[31m" + "x" * 600 + "\x1b[0m"
        result = truncate_payload(payload, colored=True)
        assert result.endswith("\x1b[0m... [colored, truncated]")

    def test_coloured_length_ignores_escape_codes(self) -> None:
        payload = "\x1b[31m" + "x" * 498 + "\x1b[0m"
        assert truncate_payload(payload, colored=True) == payload


class TestRelativeAge:
    """Test age formatting in the detail view."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [(5, "5 seconds ago"), (125, "2 minutes ago"), (7300, "2 hours ago"), (-3, "0 seconds ago")],
    )
    def test_units(self, seconds: float, expected: str) -> None:
        assert relative_age(seconds) == expected


class TestTableRenderer:
    """Test full renders."""

    def test_draw_shows_topics(self, session, table_renderer, terminal) -> None:
        session.store.apply_batch([Message(label="sensors/temp", payload="21.5", retained=True)])
        assert table_renderer.draw(session) == 0
        output = _output(terminal)
        assert "sensors/temp" in output
        assert "21.5" in output
        assert "Total topics: 1" in output

    def test_failing_row_becomes_placeholder(self, session, table_renderer, terminal, monkeypatch) -> None:
        session.store.apply_batch([
            Message(label="good/topic", payload="ok"),
            Message(label="bad/topic", payload="boom"),
        ])
        original_mask = session.masker.mask

        def flaky_mask(text: str) -> str:
            if "bad" in text:
                raise ValueError("cannot format")
            return original_mask(text)

        monkeypatch.setattr(session.masker, "mask", flaky_mask)

        assert table_renderer.draw(session) == 1
        output = _output(terminal)
        assert "good/topic" in output
        assert PLACEHOLDER in output

    def test_masking_applied_to_cells(self, make_settings, make_session, terminal, clock) -> None:
        session = make_session(make_settings(masking={"patterns": ["secret"]}))
        session.store.apply_batch([Message(label="app/secret", payload="secret=1")])
        TableRenderer(terminal, clock=clock).draw(session)
        output = _output(terminal)
        assert "app/******" in output
        assert "secret" not in output.split("Masking")[0]

    def test_action_column_for_clear_mode(self, make_settings, make_session, terminal, clock) -> None:
        session = make_session(make_settings(display={"clear_retained": True}))
        session.store.apply_batch([
            Message(label="a", payload="1", retained=True),
            Message(label="b", payload="1", retained=True),
        ])
        session.store.mark_cleared("b")
        TableRenderer(terminal, clock=clock).draw(session)
        output = _output(terminal)
        assert "Will clear" in output
        assert "Cleared" in output

    def test_notice_shown_once(self, session, table_renderer, terminal) -> None:
        session.view.notice = "Pattern highlighting disabled"
        lines = table_renderer.build_footer(session)
        assert any("Pattern highlighting disabled" in line.plain for line in lines)

        table_renderer.draw(session)
        assert session.view.notice is None
        lines = table_renderer.build_footer(session)
        assert any("Press 'i' for details" in line.plain for line in lines)

    def test_degraded_footer(self, session, table_renderer) -> None:
        session.scheduler.degraded = True
        session.scheduler.interval_ms = 15000
        lines = table_renderer.build_footer(session)
        assert any("slower refresh rate (15s)" in line.plain for line in lines)

    def test_highlight_marks_match(self, table_renderer) -> None:
        text = Text("home/kitchen/temp")
        assert table_renderer.highlight(text, "kitchen*temp") == 1
        assert text.spans

    def test_highlight_with_bad_pattern(self, table_renderer) -> None:
        text = Text("a(b")
        assert table_renderer.highlight(text, "a(*b") == 0
        assert not text.spans

    def test_highlighted_row(self, session, table_renderer) -> None:
        verdict = MatchVerdict(included=True, label_matched=True, matched_pattern="temp")
        session.store.apply_batch([Message(label="room/temp", payload="20", verdict=verdict)])
        entry = session.store.get("room/temp")
        row = table_renderer.build_row(session, 0, entry, 1)
        assert row[1].spans

        session.view.highlight_enabled = False
        row = table_renderer.build_row(session, 0, entry, 1)
        assert not row[1].spans


class TestDetailView:
    """Test the single-message view."""

    def test_empty_store(self, session, table_renderer, terminal) -> None:
        assert table_renderer.draw_detail(session) is None
        assert "No messages received yet." in _output(terminal)

    def test_shows_most_recent(self, session, table_renderer, terminal, clock) -> None:
        session.store.apply_batch([Message(label="a", payload="first")])
        clock.advance(90)
        session.store.apply_batch([Message(label="b", payload="second", retained=False)])

        entry = table_renderer.draw_detail(session)
        assert entry.label == "b"
        output = _output(terminal)
        assert "Full Topic: b" in output
        assert "Retained: No" in output

    def test_long_payload_capped(self, session, table_renderer, terminal) -> None:
        session.store.apply_batch([Message(label="big", payload="y" * 1500)])
        table_renderer.draw_detail(session)
        assert "Payload (first 1000/1500 chars):" in _output(terminal)
