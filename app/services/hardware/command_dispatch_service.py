"""
Command Dispatch Service
========================

Publishes heater on/off commands to the relay's command topic and retries
transient publish failures with bounded exponential backoff.

Commands are published with QoS 1 and the retain flag, so a relay that
reconnects picks up the last commanded state from the broker. While the
broker session is down, dispatch fails fast with NotConnectedError instead
of queuing.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Protocol

from app.domain.exceptions import DispatchError, NotConnectedError
from app.domain.heating import HeaterCommand
from app.enums import HeaterPayloadFormat
from app.schemas.telemetry import HeaterCommandPayload
from app.utils.backoff import next_delay

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(
        self, topic: str, payload: str, *, qos: int = 1, retain: bool = False, timeout: float | None = None
    ) -> None: ...


@dataclass
class DispatchMetrics:
    dispatched: int = 0
    retries: int = 0
    failures: int = 0


class CommandDispatchService:
    """Delivers HeaterCommands through an MQTT publisher."""

    def __init__(
        self,
        publisher: Publisher,
        *,
        topic_template: str = "shellies/shelly1-{shelly_id}/relay/0/command",
        payload_format: HeaterPayloadFormat = HeaterPayloadFormat.JSON,
        max_attempts: int = 3,
        backoff_base_s: float = 0.5,
        backoff_cap_s: float = 5.0,
        publish_timeout_s: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            publisher: Object with a ``publish`` method, normally the ConnectionSupervisor
            topic_template: Command topic, ``{shelly_id}`` is replaced by the heater id
            payload_format: JSON body or the relay's native "on"/"off"
            max_attempts: Publish attempts per command, including the first
            backoff_base_s: Delay before the first retry, doubled after each failure
            backoff_cap_s: Upper bound for a single retry delay
            publish_timeout_s: How long to wait for the broker to acknowledge a publish
            sleep: Injected for tests
        """
        self.publisher = publisher
        self.topic_template = topic_template
        self.payload_format = payload_format
        self.max_attempts = max(1, max_attempts)
        self.backoff_base_s = backoff_base_s
        self.backoff_cap_s = backoff_cap_s
        self.publish_timeout_s = publish_timeout_s
        self._sleep = sleep
        self.metrics = DispatchMetrics()
        self._metrics_lock = threading.Lock()

    def topic_for(self, shelly_id: str) -> str:
        return self.topic_template.format(shelly_id=shelly_id)

    def encode(self, command: HeaterCommand) -> str:
        if self.payload_format is HeaterPayloadFormat.SHELLY:
            return "on" if command.is_active else "off"
        return HeaterCommandPayload(
            is_active=command.is_active,
            timestamp=command.timestamp.isoformat(),
        ).model_dump_json()

    def dispatch(self, command: HeaterCommand) -> None:
        """
        Publish a command and wait for the broker to acknowledge it.

        Raises:
            NotConnectedError: The broker session is down (no retry)
            DispatchError: Every attempt failed
        """
        topic = self.topic_for(command.shelly_id)
        payload = self.encode(command)
        last_error: DispatchError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                self.publisher.publish(topic, payload, qos=1, retain=True, timeout=self.publish_timeout_s)
            except NotConnectedError:
                self._bump("failures")
                logger.warning("Heater %s command %s not sent: broker not connected", command.shelly_id, payload)
                raise
            except DispatchError as exc:
                last_error = exc
                if attempt < self.max_attempts:
                    delay = next_delay(attempt, self.backoff_base_s, self.backoff_cap_s)
                    self._bump("retries")
                    logger.warning(
                        "Publish to %s failed (attempt %d/%d), retrying in %.2fs: %s",
                        topic, attempt, self.max_attempts, delay, exc,
                    )
                    self._sleep(delay)
                continue

            self._bump("dispatched")
            logger.info("MQTT: heater %s -> %s on %s", command.shelly_id, command.state.value, topic)
            return

        self._bump("failures")
        raise DispatchError(
            f"Heater {command.shelly_id} command not delivered after {self.max_attempts} attempts: {last_error}",
            detail={"shelly_id": command.shelly_id, "topic": topic, "attempts": self.max_attempts},
        ) from last_error

    def _bump(self, counter: str) -> None:
        with self._metrics_lock:
            setattr(self.metrics, counter, getattr(self.metrics, counter) + 1)

    def get_status(self) -> dict[str, Any]:
        with self._metrics_lock:
            metrics = asdict(self.metrics)
        return {
            "topic_template": self.topic_template,
            "payload_format": self.payload_format.value,
            "max_attempts": self.max_attempts,
            "metrics": metrics,
        }
