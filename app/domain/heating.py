"""
Heating Domain Objects
======================
Readings, heater commands/events and the per-location control state.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class HeaterState(str, Enum):
    """Commanded state of a heater relay as believed by the coordinator."""

    UNKNOWN = "unknown"
    OFF = "off"
    ON = "on"

    @classmethod
    def from_active(cls, is_active: bool) -> "HeaterState":
        return cls.ON if is_active else cls.OFF


@dataclass(frozen=True)
class Reading:
    """A single temperature/humidity observation from one location."""

    location: str
    timestamp: datetime
    temperature: int
    humidity: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "timestamp": self.timestamp.isoformat(),
            "temperature": self.temperature,
            "humidity": self.humidity,
        }


@dataclass(frozen=True)
class HeaterCommand:
    """Request to set a heater device to on/off."""

    shelly_id: str
    is_active: bool
    timestamp: datetime

    @property
    def state(self) -> HeaterState:
        return HeaterState.from_active(self.is_active)


@dataclass(frozen=True)
class HeaterEvent:
    """A heater state transition as recorded in history."""

    shelly_id: str
    is_active: bool
    timestamp: datetime

    @classmethod
    def from_command(cls, command: HeaterCommand) -> "HeaterEvent":
        return cls(shelly_id=command.shelly_id, is_active=command.is_active, timestamp=command.timestamp)


@dataclass
class LocationControlState:
    """
    Mutable control state for one configured location.

    Owned by the HeatingCoordinator; every read-modify-write goes through
    ``lock`` so two readings for the same location never race.
    """

    location: str
    heater_id: str
    desired_temperature: float
    heater_name: str | None = None
    last_reading: Reading | None = None
    current_heater_state: HeaterState = HeaterState.UNKNOWN
    last_transition_at: datetime | None = None
    # monotonic reading taken with last_transition_at; cooldown is measured on it
    last_transition_mono: float | None = field(default=None, repr=False, compare=False)
    enabled: bool = True
    divergent: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def heater_label(self) -> str:
        if self.heater_name:
            return f"{self.heater_name} ({self.heater_id})"
        return self.heater_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "heater_id": self.heater_id,
            "heater_name": self.heater_name,
            "desired_temperature": self.desired_temperature,
            "last_reading": self.last_reading.to_dict() if self.last_reading else None,
            "heater_state": self.current_heater_state.value,
            "last_transition_at": self.last_transition_at.isoformat() if self.last_transition_at else None,
            "enabled": self.enabled,
            "divergent": self.divergent,
        }
