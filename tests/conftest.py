"""
ChatRelay - Configuration for pytest.
"""

import pytest
import sys
import os

# Add the project directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class FakeClock:
    """Controllable stand-in for time.time."""

    def __init__(self, start: float = 1700000000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class ManualTimer:
    """Timer that only fires when the test says so."""

    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired

    def fire(self):
        if self.active:
            self.fired = True
            self.callback()


class ManualTimerFactory:
    """timer_factory for the spam detector, driven by a FakeClock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.timers = []

    def __call__(self, delay: float, callback):
        timer = ManualTimer(self.clock() + delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self):
        return [t for t in self.timers if t.active]

    def run_due(self):
        """Fire every active timer whose due time has passed."""
        for timer in list(self.timers):
            if timer.active and timer.due <= self.clock():
                timer.fire()


@pytest.fixture
def clock():
    """A fake clock starting at 2023-11-14T22:13:20Z."""
    return FakeClock()


@pytest.fixture
def timers(clock):
    """A manual timer factory bound to the fake clock."""
    return ManualTimerFactory(clock)


@pytest.fixture
def config(tmp_path):
    """Create a test configuration with all defaults."""
    from chatrelay.config import Config
    return Config(settings_path=str(tmp_path / "SETTINGS.py"))


@pytest.fixture
def app(config):
    """Create a test Flask application."""
    from chatrelay import create_app
    from chatrelay.services import stop_services

    config.WEB_DEBUG = True
    app = create_app(config, auto_cleanup=False)
    app.config['TESTING'] = True

    yield app

    stop_services()


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()
