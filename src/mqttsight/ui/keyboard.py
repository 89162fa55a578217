"""
Non-blocking single-key input.

Puts stdin in cbreak mode and registers it with the event loop, so key
handlers run on the same thread as every other handler.
"""

import asyncio
import os
import sys
from typing import Any, Callable, Optional, TextIO

import structlog

try:
    import termios
    import tty
except ImportError:  # pragma: no cover - Windows
    termios = None  # type: ignore[assignment]
    tty = None  # type: ignore[assignment]

logger = structlog.get_logger(__name__)

ESCAPE = "\x1b"


class KeyboardReader:
    """Feeds key presses from a TTY to a callback."""

    def __init__(self, on_key: Callable[[str], Any], stream: Optional[TextIO] = None) -> None:
        self.on_key = on_key
        self.stream = stream or sys.stdin
        self._fd: Optional[int] = None
        self._old_settings: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def active(self) -> bool:
        return self._fd is not None

    def start(self, loop: asyncio.AbstractEventLoop) -> bool:
        """Enable key input; returns False when stdin is not a terminal."""
        if termios is None or tty is None or not self.stream.isatty():
            logger.warning("Raw mode not supported, interactive commands disabled")
            return False

        self._fd = self.stream.fileno()
        self._old_settings = termios.tcgetattr(self._fd)
        tty.setcbreak(self._fd)
        self._loop = loop
        loop.add_reader(self._fd, self._on_readable)
        return True

    def close(self) -> None:
        """Unregister from the loop and restore the terminal mode."""
        if self._fd is None:
            return
        if self._loop is not None:
            self._loop.remove_reader(self._fd)
        if termios is not None and self._old_settings is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._old_settings)
        self._fd = None
        self._old_settings = None
        self._loop = None

    def _on_readable(self) -> None:
        if self._fd is None:
            return
        try:
            data = os.read(self._fd, 32)
        except OSError as e:
            logger.warning("Keyboard read failed", error=str(e))
            return
        self.feed(data.decode("utf-8", "ignore"))

    def feed(self, chunk: str) -> None:
        """Dispatch a chunk of input; escape sequences count as one key."""
        if not chunk:
            return
        if chunk.startswith(ESCAPE):
            self.on_key(chunk)
            return
        for key in chunk:
            self.on_key(key)
