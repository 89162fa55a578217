"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

import io
import os
from typing import Any, Callable, Dict, Generator, List
from unittest.mock import patch

import pytest
from rich.console import Console

from mqttsight.config import Settings, build_settings
from mqttsight.core.metrics import MetricsCollector
from mqttsight.core.session import Session
from mqttsight.ui.terminal import Terminal


class FakeClock:
    """Manually advanced clock for time-dependent code."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingRenderer:
    """Renderer double that counts draws."""

    def __init__(self) -> None:
        self.draws = 0
        self.status_draws = 0
        self.notices: List[str] = []
        self.details = 0

    def draw(self, session: Session) -> int:
        self.draws += 1
        return 0

    def draw_status(self, session: Session) -> None:
        self.status_draws += 1

    def draw_notice(self, text: str) -> None:
        self.notices.append(text)

    def draw_detail(self, session: Session) -> Any:
        self.details += 1
        return session.store.most_recent()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch) -> Generator[None, None, None]:
    """Run every test in an empty directory without MQTTSIGHT_* variables."""
    monkeypatch.chdir(tmp_path)
    with patch.dict(os.environ):
        for key in list(os.environ):
            if key.startswith("MQTTSIGHT_"):
                del os.environ[key]
        yield


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Build settings from nested overrides."""
    def _make(**overrides: Dict[str, Any]) -> Settings:
        return build_settings(overrides=overrides)
    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def make_session(clock, metrics) -> Callable[[Settings], Session]:
    def _make(settings: Settings) -> Session:
        return Session.from_settings(settings, metrics=metrics, clock=clock)
    return _make


@pytest.fixture
def session(make_session, settings) -> Session:
    return make_session(settings)


@pytest.fixture
def console() -> Console:
    return Console(
        file=io.StringIO(),
        force_terminal=True,
        width=200,
        height=50,
        color_system="truecolor",
    )


@pytest.fixture
def terminal(console) -> Terminal:
    return Terminal(console)


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()

