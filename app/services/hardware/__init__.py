"""
Hardware Service Layer
======================
Services on the MQTT boundary of the hub.

Services:
- TelemetryIngestService: decodes sensor/control messages into Readings and requests
- CommandDispatchService: publishes heater on/off commands with bounded retry

Architecture:
    ConnectionSupervisor (event stream)
      ├─ TelemetryIngestService ─► HeatingCoordinator
      └─ CommandDispatchService ◄─ HeatingCoordinator
"""

from app.services.hardware.command_dispatch_service import CommandDispatchService
from app.services.hardware.telemetry_ingest_service import TelemetryIngestService

__all__ = [
    "CommandDispatchService",
    "TelemetryIngestService",
]
