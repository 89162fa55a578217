"""
Single-key command interpreter.

Keys map onto a closed set of commands; every command has exactly one
handler, checked when the controller is built. A command finishes its state
change before triggering the render it needs.
"""

from enum import Enum
from typing import Callable, Dict

import structlog

from mqttsight.core.scheduler import RenderScheduler, RenderTrigger
from mqttsight.core.session import Session
from mqttsight.models.message import SortKey
from mqttsight.ui.render import TableRenderer

logger = structlog.get_logger(__name__)


class Command(str, Enum):
    SHOW_DETAIL = "show_detail"
    WIDEN = "widen"
    NARROW = "narrow"
    REFRESH = "refresh"
    TOGGLE_AUTO_REFRESH = "toggle_auto_refresh"
    TOGGLE_SORT = "toggle_sort"
    SORT_BY_LABEL = "sort_by_label"
    SORT_BY_TIME = "sort_by_time"
    TOGGLE_HIGHLIGHT = "toggle_highlight"
    TOGGLE_MASKING = "toggle_masking"
    QUIT = "quit"
    SHOW_TABLE = "show_table"


KEY_BINDINGS: Dict[str, Command] = {
    "i": Command.SHOW_DETAIL,
    "+": Command.WIDEN,
    "=": Command.WIDEN,
    "-": Command.NARROW,
    "_": Command.NARROW,
    "r": Command.REFRESH,
    "a": Command.TOGGLE_AUTO_REFRESH,
    "s": Command.TOGGLE_SORT,
    "1": Command.SORT_BY_LABEL,
    "2": Command.SORT_BY_TIME,
    "f": Command.TOGGLE_HIGHLIGHT,
    "m": Command.TOGGLE_MASKING,
    "\x03": Command.QUIT,
}


def command_for_key(key: str) -> Command:
    """Any unbound key returns to the table view."""
    return KEY_BINDINGS.get(key, Command.SHOW_TABLE)


class ViewController:
    """Applies keyboard commands to the session and triggers renders."""

    def __init__(
        self,
        session: Session,
        scheduler: RenderScheduler,
        renderer: TableRenderer,
        on_quit: Callable[[], None],
    ) -> None:
        self.session = session
        self.scheduler = scheduler
        self.renderer = renderer
        self.on_quit = on_quit
        self._handlers: Dict[Command, Callable[[], None]] = {
            Command.SHOW_DETAIL: self._show_detail,
            Command.WIDEN: self._widen,
            Command.NARROW: self._narrow,
            Command.REFRESH: self._refresh,
            Command.TOGGLE_AUTO_REFRESH: self._toggle_auto_refresh,
            Command.TOGGLE_SORT: self._toggle_sort,
            Command.SORT_BY_LABEL: lambda: self._set_sort(SortKey.LABEL),
            Command.SORT_BY_TIME: lambda: self._set_sort(SortKey.TIME),
            Command.TOGGLE_HIGHLIGHT: self._toggle_highlight,
            Command.TOGGLE_MASKING: self._toggle_masking,
            Command.QUIT: self._quit,
            Command.SHOW_TABLE: self._refresh,
        }
        missing = set(Command) - set(self._handlers)
        if missing:
            raise RuntimeError(f"Commands without handlers: {sorted(c.value for c in missing)}")

    def handle_key(self, key: str) -> Command:
        command = command_for_key(key)
        logger.debug("Key command", key=repr(key), command=command.value)
        self._handlers[command]()
        return command

    def _render(self) -> None:
        self.session.view.showing_detail = False
        self.scheduler.force_render(RenderTrigger.KEY)

    def _show_detail(self) -> None:
        self.session.view.showing_detail = True
        self.renderer.draw_detail(self.session)

    def _widen(self) -> None:
        view = self.session.view
        step = self.session.settings.display.width_step
        view.topic_width += step
        view.payload_width += step
        self._render()

    def _narrow(self) -> None:
        view = self.session.view
        display = self.session.settings.display
        if view.topic_width > display.min_topic_width:
            view.topic_width -= display.width_step
        if view.payload_width > display.min_payload_width:
            view.payload_width -= display.width_step
        self._render()

    def _refresh(self) -> None:
        self._render()

    def _toggle_auto_refresh(self) -> None:
        self.session.view.showing_detail = False
        self.scheduler.toggle_auto_refresh()

    def _toggle_sort(self) -> None:
        view = self.session.view
        view.sort_key = SortKey.LABEL if view.sort_key == SortKey.TIME else SortKey.TIME
        self._render()

    def _set_sort(self, sort_key: SortKey) -> None:
        self.session.view.sort_key = sort_key
        self._render()

    def _toggle_highlight(self) -> None:
        view = self.session.view
        view.highlight_enabled = not view.highlight_enabled
        view.notice = f"Pattern highlighting {'enabled' if view.highlight_enabled else 'disabled'}"
        self._render()

    def _toggle_masking(self) -> None:
        masker = self.session.masker
        if not masker.has_patterns:
            self.renderer.draw_notice("No mask patterns configured. Use -x/--mask option to set them.")
            return
        enabled = masker.toggle()
        self.session.view.notice = (
            f"Masking {'enabled' if enabled else 'disabled'} ({masker.preserve.value} mode)"
        )
        self._render()

    def _quit(self) -> None:
        logger.info("Quit requested from keyboard")
        self.on_quit()
