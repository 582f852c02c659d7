"""
Telemetry Ingest Service
========================

Turns inbound MQTT messages into Readings and control requests.

Topics (with the default prefixes)::

    temperature/<location>             sensor reading, JSON {"temperature", "humidity", ["timestamp"]}
    heating/<location>/setpoint        new setpoint, bare number or {"desired_temperature": n}
    heating/<location>/auto            "true" / "false", toggles automatic control

With ``LocationSource.PAYLOAD`` sensors may publish anywhere under the
sensor prefix and the location is read from the payload's ``location``
field instead of the topic.

Malformed messages are logged and counted, never raised; the driving loop
keeps consuming.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from app.control_loops.heating_coordinator import HeatingCoordinator
from app.domain.exceptions import HubError, MalformedTelemetryError, UnconfiguredLocationError
from app.domain.heating import Reading
from app.enums import LocationSource
from app.hardware.mqtt.broker_events import MessageReceived
from app.schemas.telemetry import SetpointPayload, TelemetryPayload

logger = logging.getLogger(__name__)

_TRUE = {"true", "on", "1", "yes"}
_FALSE = {"false", "off", "0", "no"}


@dataclass
class IngestMetrics:
    messages: int = 0
    readings: int = 0
    malformed: int = 0
    control_messages: int = 0
    unroutable: int = 0


class TelemetryIngestService:
    """Decodes sensor and control messages and hands them to the coordinator."""

    def __init__(
        self,
        coordinator: HeatingCoordinator,
        *,
        sensor_topic_prefix: str = "temperature",
        control_topic_prefix: str = "heating",
        location_source: LocationSource = LocationSource.TOPIC,
    ):
        self.coordinator = coordinator
        self.sensor_prefix = sensor_topic_prefix.strip("/")
        self.control_prefix = control_topic_prefix.strip("/")
        self.location_source = location_source
        self.metrics = IngestMetrics()
        self._metrics_lock = threading.Lock()

    def topic_filters(self) -> list[str]:
        """Subscription filters for every topic this service understands."""
        if self.location_source is LocationSource.PAYLOAD:
            sensor = f"{self.sensor_prefix}/#"
        else:
            sensor = f"{self.sensor_prefix}/+"
        return [
            sensor,
            f"{self.control_prefix}/+/setpoint",
            f"{self.control_prefix}/+/auto",
        ]

    # ------------------------------------------------------------------ routing

    def handle_message(self, message: MessageReceived) -> None:
        """
        Route one inbound message.

        Guaranteed not to raise, so a bad message never stops the driving loop.
        """
        self._bump("messages")
        topic = message.topic
        try:
            control = self._control_target(topic)
            if control is not None:
                location, action = control
                self._bump("control_messages")
                if action == "setpoint":
                    self.coordinator.submit_setpoint(location, self.parse_setpoint(message.payload))
                else:
                    self.coordinator.submit_enabled(location, self.parse_auto(message.payload))
            elif self._is_sensor_topic(topic):
                reading = self.parse_reading(topic, message.payload, message.received_at)
                self._bump("readings")
                self.coordinator.submit_reading(reading)
            else:
                self._bump("unroutable")
                logger.warning("Unroutable MQTT topic: %s", topic)

        except MalformedTelemetryError as exc:
            self._bump("malformed")
            logger.warning("Dropped malformed message on %s: %s", topic, exc)
        except UnconfiguredLocationError as exc:
            logger.warning("Ignored control message on %s: %s", topic, exc)
        except HubError as exc:
            logger.error("Failed to handle message on %s: %s", topic, exc)
        except Exception as exc:
            logger.exception("Unexpected error handling message on %s: %s", topic, exc)

    def _control_target(self, topic: str) -> tuple[str, str] | None:
        parts = topic.split("/")
        prefix = self.control_prefix.split("/")
        if len(parts) != len(prefix) + 2 or parts[: len(prefix)] != prefix:
            return None
        location, action = parts[-2], parts[-1]
        if not location or action not in ("setpoint", "auto"):
            return None
        return location, action

    def _is_sensor_topic(self, topic: str) -> bool:
        if self.location_source is LocationSource.PAYLOAD:
            return topic == self.sensor_prefix or topic.startswith(self.sensor_prefix + "/")
        return topic.startswith(self.sensor_prefix + "/")

    # ------------------------------------------------------------------ parsing

    def parse_reading(self, topic: str, payload: bytes, received_at: datetime) -> Reading:
        """Decode a sensor message; raise MalformedTelemetryError if it is not one."""
        try:
            data = TelemetryPayload.model_validate_json(payload)
        except ValidationError as exc:
            raise MalformedTelemetryError(
                f"invalid telemetry payload: {exc.errors(include_url=False)}",
                detail={"topic": topic},
            ) from exc

        if self.location_source is LocationSource.PAYLOAD:
            location = data.location
            if not location:
                raise MalformedTelemetryError("payload has no location", detail={"topic": topic})
        else:
            location = topic[len(self.sensor_prefix) + 1:]
            if not location or "/" in location:
                raise MalformedTelemetryError(f"cannot derive location from topic {topic!r}", detail={"topic": topic})

        return Reading(
            location=location,
            timestamp=data.timestamp or received_at,
            temperature=data.temperature,
            humidity=data.humidity,
        )

    @staticmethod
    def parse_setpoint(payload: bytes) -> float:
        try:
            raw = json.loads(payload)
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedTelemetryError(f"setpoint is not a number: {payload[:32]!r}") from exc

        if isinstance(raw, bool):
            raise MalformedTelemetryError("setpoint must be a number, not a boolean")
        if isinstance(raw, (int, float)):
            raw = {"desired_temperature": raw}
        try:
            return SetpointPayload.model_validate(raw).desired_temperature
        except ValidationError as exc:
            raise MalformedTelemetryError(f"invalid setpoint: {exc.errors(include_url=False)}") from exc

    @staticmethod
    def parse_auto(payload: bytes) -> bool:
        text = payload.decode("utf-8", errors="replace").strip().strip('"').lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise MalformedTelemetryError(f"auto flag must be true or false, got {text[:32]!r}")

    # ------------------------------------------------------------------ status

    def _bump(self, counter: str) -> None:
        with self._metrics_lock:
            setattr(self.metrics, counter, getattr(self.metrics, counter) + 1)

    def get_status(self) -> dict[str, Any]:
        with self._metrics_lock:
            metrics = asdict(self.metrics)
        return {
            "sensor_prefix": self.sensor_prefix,
            "control_prefix": self.control_prefix,
            "location_source": self.location_source.value,
            "metrics": metrics,
        }
