"""
Enums Module
============

Enumeration types shared across the hub.
"""

from app.enums.events import DecisionOutcome, HeaterPayloadFormat, LocationSource

__all__ = [
    "DecisionOutcome",
    "HeaterPayloadFormat",
    "LocationSource",
]
