"""
Monitoring session lifecycle.

Wires transport, pipeline, scheduler, renderer and keyboard together and
guarantees that timers are stopped and the terminal restored on every exit
path: quit key, signal, transport failure or unexpected error.
"""

import asyncio
import signal
from typing import Any, Dict, Optional

import structlog
from rich.console import Console

from mqttsight.config import Settings
from mqttsight.core.metrics import MetricsCollector
from mqttsight.core.pipeline import IngestionPipeline
from mqttsight.core.scheduler import RenderScheduler
from mqttsight.core.session import Session
from mqttsight.transport.mqtt import MqttTransport
from mqttsight.ui.controller import ViewController
from mqttsight.ui.keyboard import KeyboardReader
from mqttsight.ui.render import TableRenderer
from mqttsight.ui.terminal import Terminal

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class MonitorApp:
    """One monitoring run against one broker subscription."""

    def __init__(
        self,
        settings: Settings,
        console: Optional[Console] = None,
        transport: Optional[Any] = None,
        metrics: Optional[MetricsCollector] = None,
        keyboard: Optional[KeyboardReader] = None,
    ) -> None:
        self.settings = settings
        self.session = Session.from_settings(settings, metrics=metrics)
        self.terminal = Terminal(console)
        self.renderer = TableRenderer(self.terminal)
        self.scheduler = RenderScheduler(self.session, self.renderer)
        self.transport = transport or MqttTransport(settings.broker)
        self.pipeline = IngestionPipeline(
            self.session,
            self.scheduler,
            clear_retained=self.clear_retained if settings.display.clear_retained else None,
        )
        self.controller = ViewController(
            self.session,
            self.scheduler,
            self.renderer,
            on_quit=self.request_stop,
        )
        self.keyboard = keyboard or KeyboardReader(self.controller.handle_key)
        self._stop_event: Optional[asyncio.Event] = None
        self._exit_code = EXIT_OK
        self._signals_installed = False

    async def run(self) -> int:
        """
        Run until quit or signal.

        Returns:
            Process exit code

        Raises:
            TransportError: if connecting or subscribing fails
        """
        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        loop.set_exception_handler(self._on_loop_error)
        self.transport.set_handlers(on_message=self.pipeline.handle_message, on_offline=self.on_offline)

        if self.settings.metrics_port:
            self.session.metrics.serve(self.settings.metrics_port)

        self.terminal.enter()
        try:
            self._install_signal_handlers(loop)
            await self.transport.connect()
            self.renderer.draw_banner(self.session)
            await self.transport.subscribe(self.settings.broker.topic)

            self.scheduler.start()
            self.keyboard.start(loop)
            logger.info("Monitoring started", topic=self.settings.broker.topic)

            await self._stop_event.wait()
            return self._exit_code
        finally:
            await self.shutdown(loop)

    async def shutdown(self, loop: asyncio.AbstractEventLoop) -> None:
        """Release everything acquired by run()."""
        try:
            self.pipeline.stop()
            await self.scheduler.stop()
        finally:
            try:
                self.keyboard.close()
                self._remove_signal_handlers(loop)
                self.terminal.restore()
            finally:
                await self.transport.close()
        logger.info("Monitoring stopped", exit_code=self._exit_code)

    def request_stop(self, exit_code: int = EXIT_OK) -> None:
        if exit_code != EXIT_OK:
            self._exit_code = exit_code
        if self._stop_event is not None:
            self._stop_event.set()

    def on_offline(self, reason: str) -> None:
        """Transient disconnects are reported, not fatal; the client reconnects."""
        self.session.view.notice = f"Disconnected from broker ({reason})"
        if not self.session.view.showing_detail:
            self.renderer.draw_notice(self.session.view.notice)

    def clear_retained(self, label: str) -> None:
        self.transport.clear_retained(label, on_done=lambda ok, error: self.on_cleared(label, ok, error))

    def on_cleared(self, label: str, success: bool, error: Optional[str] = None) -> None:
        self.session.metrics.record_clear(success)
        if not success:
            logger.error("Error clearing retained message", topic=label, error=error)
            return
        logger.debug("Cleared retained message", topic=label)
        if self.session.store.mark_cleared(label):
            if not self.session.view.showing_detail:
                self.renderer.draw_status(self.session)
            self.scheduler.request_render()

    def _on_loop_error(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.error(
            "Unrecoverable runtime error",
            message=context.get("message"),
            error=str(exc) if exc else None,
            error_type=type(exc).__name__ if exc else None,
            exc_info=exc,
        )
        self.request_stop(EXIT_FAILURE)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.request_stop)
            self._signals_installed = True
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers not supported on this platform")

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        if not self._signals_installed:
            return
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        self._signals_installed = False
