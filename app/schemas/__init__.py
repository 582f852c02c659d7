"""
Schemas Module
==============

Pydantic models for validating MQTT payloads in and out of the hub.
"""

from app.schemas.telemetry import HeaterCommandPayload, SetpointPayload, TelemetryPayload

__all__ = [
    "HeaterCommandPayload",
    "SetpointPayload",
    "TelemetryPayload",
]
