"""
Terminal control operations.

Rendering code calls these semantic operations instead of writing escape
sequences, so it can run against a recording console in tests.
"""

from typing import Any, Optional

import structlog
from rich.console import Console
from rich.control import Control
from rich.segment import ControlType

logger = structlog.get_logger(__name__)

ERASE_WHOLE_LINE = 2


class Terminal:
    """Cursor, screen and output operations over a rich Console."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(highlight=False)
        self._active = False

    @property
    def width(self) -> int:
        return self.console.size.width

    @property
    def height(self) -> int:
        return self.console.size.height

    @property
    def active(self) -> bool:
        return self._active

    def enter(self) -> None:
        """Switch to the alternate screen and hide the cursor."""
        self.console.set_alt_screen(True)
        self.console.show_cursor(False)
        self.clear()
        self._active = True

    def restore(self) -> None:
        """Show the cursor and leave the alternate screen; safe to call twice."""
        if not self._active:
            return
        self._active = False
        self.console.show_cursor(True)
        self.console.set_alt_screen(False)
        logger.debug("Terminal restored")

    def clear(self) -> None:
        self.console.control(Control.clear(), Control.home())

    def move_to(self, row: int, column: int = 0) -> None:
        self.console.control(Control.move_to(max(0, column), max(0, row)))

    def clear_line(self) -> None:
        self.console.control(Control((ControlType.ERASE_IN_LINE, ERASE_WHOLE_LINE)))

    def write_line_at(self, row: int, renderable: Any) -> None:
        """Replace a single screen row."""
        self.move_to(row)
        self.clear_line()
        self.console.print(renderable, end="", no_wrap=True, overflow="ellipsis", crop=True)

    def print(self, *renderables: Any, end: str = "\n") -> None:
        self.console.print(*renderables, end=end)
