"""
Shared test fixtures for the Paletten hub test suite.

Provides:
- File-backed SQLite database with the history tables created
- History repository wired to the test database
- A controllable clock, a recording dispatcher and a failing history store
- A factory for HeatingCoordinator instances

Usage:
    def test_example(make_coordinator, fake_clock):
        coordinator = make_coordinator(desired=20)
        coordinator.handle_reading(reading("L1", 18, fake_clock()))
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import paho.mqtt.client as mqtt
import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.control_loops.heating_coordinator import HeatingCoordinator
from app.domain.control import ControlConfig
from app.domain.exceptions import DispatchError, StorageError
from app.domain.heating import HeaterCommand, LocationControlState, Reading
from infrastructure.database.repositories.history import HistoryRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

# ---------------------------------------------------------------------------
# Logging: keep test output quiet
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)


# ========================== Helpers ========================================


class DummyMessage:
    def __init__(self, topic: str, payload: bytes):
        self.topic = topic
        self.payload = payload


class DummyMessageInfo:
    def __init__(self, rc=mqtt.MQTT_ERR_SUCCESS, published=True, wait_error=None):
        self.rc = rc
        self._published = published
        self._wait_error = wait_error
        self.waited = None

    def wait_for_publish(self, timeout=None):
        self.waited = timeout
        if self._wait_error is not None:
            raise self._wait_error

    def is_published(self):
        return self._published


class DummyClient:
    """Stands in for paho's Client; ``loop`` completes the CONNACK on first call."""

    def __init__(self, connect_error=None):
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.connect_error = connect_error
        self.connect_calls = 0
        self.subscriptions = []
        self.published = []
        self.next_publish = DummyMessageInfo()
        self.disconnected = False
        self._pending_connack = False

    def connect(self, host, port, keepalive):
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error
        self._pending_connack = True
        return 0

    def loop(self, timeout=1.0):
        if self._pending_connack:
            self._pending_connack = False
            self.on_connect(self, None, {}, 0, None)
        time.sleep(0.01)
        return mqtt.MQTT_ERR_SUCCESS

    def subscribe(self, topic, qos=0):
        self.subscriptions.append((topic, qos))
        return (mqtt.MQTT_ERR_SUCCESS, len(self.subscriptions))

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))
        return self.next_publish

    def disconnect(self):
        self.disconnected = True


class FakeClock:
    """Deterministic UTC clock; call it to read, ``advance`` to move it.

    ``monotonic`` advances with ``advance`` but ignores ``step_wall``, which
    models an NTP correction of the wall clock.
    """

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        self.elapsed = 0.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.elapsed

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        self.elapsed += seconds
        return self.now

    def step_wall(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingDispatcher:
    """Collects dispatched commands; raises ``fail_with`` while it is set."""

    def __init__(self):
        self.commands: list[HeaterCommand] = []
        self.attempts: list[HeaterCommand] = []
        self.fail_with: DispatchError | None = None

    def dispatch(self, command: HeaterCommand) -> None:
        self.attempts.append(command)
        if self.fail_with is not None:
            raise self.fail_with
        self.commands.append(command)


class FlakyHistory:
    """History store that fails the next ``failures`` appends, then records."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.readings: list[Reading] = []
        self.events = []

    def _maybe_fail(self) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("disk I/O error")

    def record_reading(self, reading: Reading) -> None:
        self._maybe_fail()
        self.readings.append(reading)

    def record_heater_event(self, event) -> None:
        self._maybe_fail()
        self.events.append(event)


def make_reading(location: str, temperature: int, timestamp: datetime, humidity: int = 40) -> Reading:
    return Reading(location=location, timestamp=timestamp, temperature=temperature, humidity=humidity)


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler(tmp_path):
    """File-backed SQLite database with the history tables created.

    A file (not ``:memory:``) so connections opened by worker threads see
    the same data.
    """
    handler = SQLiteDatabaseHandler(str(tmp_path / "history.db"))
    handler.init_db()
    yield handler
    handler.close_all()


@pytest.fixture()
def history_repo(db_handler):
    """HistoryRepository backed by the test DB."""
    return HistoryRepository(db_handler)


# ========================== Control Fixtures ===============================


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture()
def flaky_history():
    return FlakyHistory()


@pytest.fixture()
def make_coordinator(flaky_history, dispatcher, fake_clock):
    """Factory for a single-location coordinator (L1 -> heater H1)."""

    def _make(
        *,
        desired: float = 20,
        margin: float = 1.0,
        cooldown: float = 0.0,
        history=None,
        locations: list[LocationControlState] | None = None,
        **kwargs,
    ) -> HeatingCoordinator:
        states = locations or [LocationControlState(location="L1", heater_id="H1", desired_temperature=desired)]
        return HeatingCoordinator(
            states,
            history if history is not None else flaky_history,
            dispatcher,
            ControlConfig(margin=margin, cooldown_seconds=cooldown),
            clock=fake_clock,
            monotonic=fake_clock.monotonic,
            **kwargs,
        )

    return _make
