"""
Domain Package
==============
Readings, heater commands and events, per-location control state and the
exception hierarchy. Nothing in here talks to MQTT or SQLite.
"""

from .control import ControlConfig, ControlMetrics
from .heating import HeaterCommand, HeaterEvent, HeaterState, LocationControlState, Reading

__all__ = [
    "ControlConfig",
    "ControlMetrics",
    "HeaterCommand",
    "HeaterEvent",
    "HeaterState",
    "LocationControlState",
    "Reading",
]
