"""
Table, footer and detail view rendering.

A render projects the state store through sort -> truncate -> mask ->
highlight into a rich Table, followed by a footer anchored to the bottom of
the screen. A row that fails to format is replaced by a placeholder; it
never aborts the render.
"""

import math
import time
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import structlog
from rich import box
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from mqttsight.core.patterns import PatternMatcher
from mqttsight.core.session import Session
from mqttsight.core.state import StoredEntry, strip_ansi
from mqttsight.models.message import SortKey
from mqttsight.ui.terminal import Terminal

logger = structlog.get_logger(__name__)

PLACEHOLDER = "<unrenderable>"
HIGHLIGHT_STYLE = "bold black on green"

HEADERS = ("#", "Topic", "Payload", "Retained", "Action", "Arrival Time")

KEY_HELP = (
    "Press 'i' for details | '+' increase width | '-' decrease | 'r' refresh | "
    "'a' toggle auto-refresh ({auto}) | 's' toggle sort {sort} | '1' sort by topic | "
    "'2' sort by time | 'f' highlight | 'm' mask | Ctrl+C exit"
)


class RowMarker(str, Enum):
    """Visual markers relating rows to the previous render."""
    NONE = ""
    FIRST = "first"
    PREV_START = "prev_start"
    PREV_END = "prev_end"
    NEW = "new"


MARKER_STYLES = {
    RowMarker.FIRST: ("◉", "on magenta", "FIRST MSG"),
    RowMarker.PREV_START: ("▲", "on blue", "PREV START"),
    RowMarker.PREV_END: ("⚓", "on cyan", "PREV END"),
    RowMarker.NEW: ("✨", "on green", None),
}


def sort_entries(entries: Sequence[StoredEntry], sort_key: SortKey) -> List[StoredEntry]:
    """Oldest first for time, case-insensitive A-Z for label."""
    if sort_key == SortKey.LABEL:
        return sorted(entries, key=lambda e: e.label.casefold())
    return sorted(entries, key=lambda e: e.last_update)


def row_marker(index: int, total: int, last_count: int, auto_refresh: bool) -> RowMarker:
    """
    Marker for the row at `index` given the row count of the previous render.

    Markers only apply in auto-refresh mode and once a previous render exists.
    """
    if not auto_refresh or last_count <= 0 or last_count > total:
        return RowMarker.NONE

    grew = total > last_count
    if index == 0:
        return RowMarker.FIRST if grew else RowMarker.NONE
    if grew and index == total - last_count:
        return RowMarker.PREV_START
    if index == total - 1 and index < last_count:
        return RowMarker.PREV_END
    if grew and index > total - last_count:
        return RowMarker.NEW
    return RowMarker.NONE


def truncate_payload(payload: str, colored: bool) -> str:
    """Shorten very long payloads, keeping a note of the original length."""
    visible_length = len(strip_ansi(payload)) if colored else len(payload)

    if colored:
        if visible_length > 1000:
            return payload[:100] + f"\x1b[0m... [colored, truncated, full length: {visible_length} chars]"
        if visible_length > 500:
            return payload[:250] + "\x1b[0m... [colored, truncated]"
        return payload

    if visible_length > 1000:
        return payload[:100] + f"... [truncated, full length: {visible_length} chars]"
    if visible_length > 500:
        return payload[:250] + "... [truncated]"
    return payload


def relative_age(seconds: float) -> str:
    """Human readable age: seconds, minutes or hours."""
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds} seconds ago"
    if seconds < 3600:
        return f"{seconds // 60} minutes ago"
    return f"{seconds // 3600} hours ago"


class TableRenderer:
    """
    Draws the monitoring view onto a Terminal.

    Features:
    - Sorted table with row markers relative to the previous render
    - Masking and match highlighting per cell
    - Fixed footer whose status lines can be refreshed on their own
    - Detail view for the most recently updated topic
    """

    def __init__(
        self,
        terminal: Terminal,
        matcher: Optional[PatternMatcher] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.terminal = terminal
        self.matcher = matcher or PatternMatcher()
        self._clock = clock

    # ------------------------------------------------------------------
    # Full render
    # ------------------------------------------------------------------

    def draw(self, session: Session) -> int:
        """
        Repaint table and footer.

        Returns:
            Number of rows replaced by a placeholder
        """
        table, errors = self.build_table(session)

        self.terminal.clear()
        self.terminal.print(table)

        footer = self.build_footer(session)
        self.terminal.move_to(self.terminal.height - len(footer))
        for i, line in enumerate(footer):
            self.terminal.print(line, end="" if i == len(footer) - 1 else "\n")

        session.view.notice = None
        if errors:
            logger.warning("Rendered rows with placeholders", errors=errors)
        return errors

    def build_table(self, session: Session) -> Tuple[Table, int]:
        view = session.view
        sort_key = view.sort_key

        table = Table(box=box.SQUARE, show_lines=False, expand=False)
        topic_header = Text("Topic 📂", style="bold yellow") if sort_key == SortKey.LABEL else "Topic"
        time_header = Text("Arrival Time 🕒", style="bold yellow") if sort_key == SortKey.TIME else "Arrival Time"
        table.add_column(HEADERS[0], width=10, justify="right", no_wrap=True)
        table.add_column(topic_header, width=view.topic_width, no_wrap=True, overflow="ellipsis")
        table.add_column(HEADERS[2], width=view.payload_width, no_wrap=True, overflow="ellipsis")
        table.add_column(HEADERS[3], width=10, justify="center", no_wrap=True)
        table.add_column(HEADERS[4], width=15, justify="center", no_wrap=True)
        table.add_column(time_header, width=20, justify="right", no_wrap=True)

        entries = sort_entries(session.store.entries(), sort_key)
        total = len(entries)
        errors = 0
        for index, entry in enumerate(entries):
            try:
                row = self.build_row(session, index, entry, total)
            except Exception as e:
                errors += 1
                logger.warning(
                    "Failed to format row",
                    topic=entry.label,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                row = (str(index + 1), PLACEHOLDER, PLACEHOLDER, "", "", "")
            table.add_row(*row)
        return table, errors

    def build_row(self, session: Session, index: int, entry: StoredEntry, total: int) -> Tuple:
        settings = session.settings
        scheduler = session.scheduler
        view = session.view

        action = ""
        if entry.cleared:
            action = "🧹 Cleared"
        elif entry.retained and settings.display.clear_retained:
            action = "🔄 Will clear"
        if entry.contains_control_codes and not entry.cleared:
            action = "🎨 Has colors"

        row_label = Text(str(index + 1))
        if settings.debug:
            age = int(self._clock() - entry.last_update)
            row_label.append(f" ({age}s)")

        marker = row_marker(index, total, scheduler.last_rendered_count, scheduler.auto_refresh)
        if marker != RowMarker.NONE:
            symbol, style, action_label = MARKER_STYLES[marker]
            row_label = Text(symbol, style=style) + row_label
            row_label.stylize(style)
            if action_label:
                action = Text(action_label, style=style)

        topic = Text(session.masker.mask(strip_ansi(entry.label)))

        payload_raw = session.masker.mask(truncate_payload(entry.payload, entry.contains_control_codes))
        if entry.contains_control_codes:
            payload = Text.from_ansi(payload_raw)
        else:
            payload = Text(payload_raw)

        match = entry.match_info
        if match is not None and view.highlight_enabled and match.matched_pattern:
            if match.label_matched:
                self.highlight(topic, match.matched_pattern)
            if match.payload_matched and not entry.contains_control_codes:
                self.highlight(payload, match.matched_pattern)

        retained = "✅ Yes" if entry.retained else "❌ No"
        arrival = datetime.fromtimestamp(entry.last_update).strftime("%H:%M:%S")
        return (row_label, topic, payload, retained, action, arrival)

    def highlight(self, text: Text, pattern: str) -> int:
        """Style every case-insensitive wildcard match of pattern in text."""
        regex = self.matcher.compile_wildcard(pattern)
        if regex is None:
            return 0
        count = 0
        for found in regex.finditer(text.plain):
            if found.end() > found.start():
                text.stylize(HIGHLIGHT_STYLE, found.start(), found.end())
                count += 1
        return count

    # ------------------------------------------------------------------
    # Footer and status lines
    # ------------------------------------------------------------------

    def build_footer(self, session: Session) -> List[Text]:
        scheduler = session.scheduler
        view = session.view
        entries = session.store.entries()
        total = len(entries)

        lines: List[Text] = [Text("─" * max(0, self.terminal.width - 2))]

        if view.sort_key == SortKey.TIME:
            ordering = Text.assemble(
                ("Messages ordered by", "bold"), ": Chronological (",
                ("#1 = oldest", "bold cyan"), " → ", (f"#{total} = newest", "bright_black"), ") 🕒",
            )
        else:
            ordering = Text.assemble(
                ("Messages ordered by", "bold"), ": Topic name (",
                ("alphabetical A-Z", "bold cyan"), ") 📂",
            )
        lines.append(ordering)

        previous = scheduler.last_rendered_count
        if scheduler.auto_refresh and previous > 0:
            new_count = max(0, total - previous)
            legend = Text.assemble(
                ("◉", "on magenta"), " First msg | ",
                ("▲", "on blue"), " Prev start | ",
                ("⚓", "on cyan"), " Prev end | ",
            )
            if new_count > 0:
                legend.append_text(Text.assemble(("✨", "on green"), f" {new_count} new messages since last refresh"))
            else:
                legend.append("No new messages since last refresh")
            lines.append(legend)

        lines.append(self._summary_line(session, entries))

        if scheduler.degraded:
            rate = Text(
                f"Using slower refresh rate ({scheduler.interval_ms // 1000}s) due to large dataset",
                style="bold yellow",
            )
        else:
            rate = Text(f"Standard refresh rate ({scheduler.interval_ms // 1000}s)")
        lines.append(Text(f"📊 Showing all {total} messages | ") + rate)

        lines.append(self.buffer_status_line(session))
        lines.append(self.time_line(session))

        if view.notice:
            lines.append(Text(view.notice, style="bold yellow"))
        else:
            lines.append(self.key_help_line(session))

        lines.append(self.refresh_status_line(session))
        return lines

    def _summary_line(self, session: Session, entries: Sequence[StoredEntry]) -> Text:
        settings = session.settings
        filter_engine = session.filter_engine
        masker = session.masker

        parts = ["🔄 Live mode" if settings.display.live else "📌 Retained-only mode"]
        if filter_engine.exclude:
            count = len(filter_engine.exclude)
            parts.append(f"🚫 Excluding {count} pattern{'s' if count > 1 else ''}")
        if filter_engine.include:
            parts.append(
                f"🔍 Filtering for {', '.join(filter_engine.include)} (mode: {filter_engine.mode.value})"
            )
        if masker.has_patterns:
            parts.append(f"🎭 Masking {'ON' if masker.enabled else 'OFF'} ({masker.preserve.value})")

        colored = sum(1 for e in entries if e.contains_control_codes)
        if colored:
            parts.append(f"🎨 {colored} message{'s' if colored > 1 else ''} with color codes")

        retained = sum(1 for e in entries if e.retained)
        cleared = sum(1 for e in entries if e.cleared)
        parts.append(f"Last updated: {datetime.fromtimestamp(self._clock()).strftime('%H:%M:%S')}")
        parts.append(f"Total topics: {len(entries)}")
        parts.append(f"Retained: {retained}")
        parts.append(f"Cleared: {cleared}")
        return Text(" | ".join(parts))

    def buffer_status_line(self, session: Session) -> Text:
        pending = len(session.queue)
        if pending == 0:
            return Text("")
        batch_size = session.settings.scheduler.batch_size
        rate = max(1, round(batch_size * 1000 / session.scheduler.interval_ms))
        eta = math.ceil(pending / rate)
        return Text(f"Buffer status: Processing ~{rate} msgs/sec | Est. time to process all: {eta} sec")

    def time_line(self, session: Session) -> Text:
        pending = len(session.queue)
        style = ""
        if pending > 500:
            style = "bold red"
        elif pending > 100:
            style = "bold yellow"
        now = datetime.fromtimestamp(self._clock()).strftime("%Y-%m-%d %H:%M:%S")
        return Text(f"Current time: {now} | ") + Text(f"Queue: {pending} pending", style=style)

    def key_help_line(self, session: Session) -> Text:
        sort = "🕒 time" if session.view.sort_key == SortKey.TIME else "📂 topic"
        auto = "ON" if session.scheduler.auto_refresh else "OFF"
        return Text(KEY_HELP.format(auto=auto, sort=sort))

    def refresh_status_line(self, session: Session) -> Text:
        scheduler = session.scheduler
        if scheduler.auto_refresh:
            return Text(
                f"Auto-refresh: ON - Next refresh in {scheduler.countdown_seconds}s",
                style="bold green",
            )
        return Text("Auto-refresh: OFF - Press r to refresh manually", style="bold yellow")

    def draw_status(self, session: Session) -> None:
        """Refresh only the bottom status rows, leaving the table untouched."""
        height = self.terminal.height
        self.terminal.write_line_at(height - 1, self.refresh_status_line(session))
        self.terminal.write_line_at(height - 3, self.time_line(session))
        self.terminal.write_line_at(height - 4, self.buffer_status_line(session))

    def draw_notice(self, text: str) -> None:
        """Show a one-off message on the key help row."""
        self.terminal.write_line_at(self.terminal.height - 2, Text(text, style="bold yellow"))

    # ------------------------------------------------------------------
    # Other views
    # ------------------------------------------------------------------

    def draw_detail(self, session: Session) -> Optional[StoredEntry]:
        """Full view of the most recently updated topic."""
        self.terminal.clear()
        entry = session.store.most_recent()

        if entry is None:
            self.terminal.print("No messages received yet.")
            self.terminal.print("\nPress any key to return...")
            return None

        cap = session.settings.display.detail_payload_cap
        masker = session.masker
        lines: List[Text] = [
            Text("\n=== Detailed Topic Information ===", style="bold"),
            Text(f"Full Topic: {masker.mask(entry.label)}"),
        ]
        if len(entry.payload) > cap:
            lines.append(Text(f"Payload (first {cap}/{len(entry.payload)} chars):"))
            lines.append(Text.from_ansi(masker.mask(entry.payload[:cap]) + "..."))
        else:
            lines.append(Text("Payload: ") + Text.from_ansi(masker.mask(entry.payload)))

        lines.append(Text(f"Retained: {'Yes' if entry.retained else 'No'}"))
        arrival = datetime.fromtimestamp(entry.last_update).strftime("%Y-%m-%d %H:%M:%S")
        lines.append(Text(f"Arrival Time: {arrival}"))
        lines.append(Text(f"Received: {relative_age(self._clock() - entry.last_update)}"))
        if entry.cleared:
            lines.append(Text("Status: Cleared"))
        lines.append(Text("\nPress any key to return to the table view..."))

        for line in lines:
            self.terminal.print(line)
        return entry

    def draw_banner(self, session: Session) -> None:
        """Connection banner shown until the first render."""
        settings = session.settings
        broker = settings.broker
        masker = session.masker
        lines = [
            f"Connected to MQTT broker: {broker.host}:{broker.port}",
            f"Subscribed to topic: {broker.topic}",
            "Mode: " + ("🔄 Live (all messages)" if settings.display.live else "📌 Retained only (filtered)"),
        ]
        if session.filter_engine.exclude:
            lines.append(f"Excluding topics: {', '.join(session.filter_engine.exclude)}")
        if session.filter_engine.include:
            lines.append(
                f"Filtering messages matching: {', '.join(session.filter_engine.include)} "
                f"(mode: {session.filter_engine.mode.value})"
            )
        if masker.has_patterns:
            lines.append(
                f"Masking: {'ON' if masker.enabled else 'OFF'} - Patterns: "
                f"{', '.join(masker.patterns)} (preserve: {masker.preserve.value})"
            )
        self.terminal.clear()
        self.terminal.print(Panel("\n".join(lines), box=box.DOUBLE, style="bold green", expand=False))
