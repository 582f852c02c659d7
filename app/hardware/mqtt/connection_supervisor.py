"""
    Connection Supervisor: owns the single broker session.

    It connects and reconnects with capped exponential backoff, re-issues
    every subscription after each (re)connect before announcing readiness,
    and turns paho callbacks into one stream of typed events consumed by the
    hub's driving loop. Publishing while disconnected fails fast.

    A session only counts as healthy once it has stayed up for
    ``stable_after_s``; one the broker drops sooner is backed off like a
    refused connect. Every new session gets a fresh paho client, so QoS 1
    commands that failed on the old one are never re-sent.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterator

import paho.mqtt.client as mqtt

from app.domain.exceptions import DispatchError, NotConnectedError
from app.hardware.mqtt.broker_events import (
    BrokerEvent,
    Connected,
    ConnectionFailed,
    Disconnected,
    MessageReceived,
)
from app.hardware.mqtt.client_factory import create_mqtt_client
from app.utils.backoff import next_delay
from app.utils.time import utc_now

_mqtt_logger = logging.getLogger("paletten.mqtt")

_STOP = object()


@dataclass
class HealthStatus:
    """Broker session health as reported by ``ConnectionSupervisor.get_status``."""

    is_connected: bool = False
    last_error: str | None = None
    last_error_time: datetime | None = None
    connection_attempts: int = 0
    reconnects: int = 0
    successful_publishes: int = 0
    failed_publishes: int = 0
    active_subscriptions: int = 0

    def mark_connected(self, subscriptions: int) -> None:
        self.is_connected = True
        self.active_subscriptions = subscriptions
        self.last_error = None
        self.last_error_time = None

    def mark_disconnected(self, reason: str | None = None) -> None:
        self.is_connected = False
        self.active_subscriptions = 0
        if reason:
            self.record_error(reason)

    def record_error(self, error: Exception | str) -> None:
        self.last_error = str(error)
        self.last_error_time = utc_now()

    def record_publish(self, ok: bool) -> None:
        if ok:
            self.successful_publishes += 1
        else:
            self.failed_publishes += 1

    def to_dict(self) -> dict[str, Any]:
        total = self.successful_publishes + self.failed_publishes
        return {
            "is_connected": self.is_connected,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "connection_attempts": self.connection_attempts,
            "reconnects": self.reconnects,
            "successful_publishes": self.successful_publishes,
            "failed_publishes": self.failed_publishes,
            "active_subscriptions": self.active_subscriptions,
            "publish_success_rate": round(self.successful_publishes / total * 100, 2) if total else 0.0,
        }


def _is_failure(reason_code: Any) -> bool:
    is_failure = getattr(reason_code, "is_failure", None)
    if is_failure is None:
        return reason_code != 0
    return bool(is_failure)


class ConnectionSupervisor:
    """
    Owns connect/reconnect to the broker and the inbound event stream.

    The network loop runs on its own thread (``start``); callbacks only
    enqueue events, so a slow consumer never blocks the MQTT keepalive.
    """

    def __init__(
        self,
        broker: str,
        port: int,
        client_id: str = "",
        *,
        keepalive: int = 60,
        reconnect_base_s: float = 1.0,
        reconnect_cap_s: float = 60.0,
        reconnect_ceiling_s: float = 900.0,
        stable_after_s: float = 30.0,
        client: Any | None = None,
        client_factory: Callable[[], Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            broker: The MQTT broker address.
            port: The MQTT broker port.
            client_id: The MQTT client ID.
            keepalive: MQTT keepalive in seconds.
            reconnect_base_s: First reconnect delay.
            reconnect_cap_s: Largest single reconnect delay.
            reconnect_ceiling_s: Give up after being disconnected this long (0 = never).
            stable_after_s: Uptime after which a session resets the backoff.
            client: Pre-built client reused for every session (tests inject a stub).
            client_factory: Builds the paho client for each new session.
            clock: Monotonic clock for backoff, ceiling and session uptime.
        """
        self.broker = broker
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self.reconnect_base_s = reconnect_base_s
        self.reconnect_cap_s = reconnect_cap_s
        self.reconnect_ceiling_s = reconnect_ceiling_s
        self.stable_after_s = stable_after_s
        self._clock = clock

        if client is not None:
            self._client_factory: Callable[[], Any] = lambda: client
        else:
            self._client_factory = client_factory or (lambda: create_mqtt_client(client_id=client_id))
        self.client = self._bind(self._client_factory())
        self._client_used = False

        self.health_status = HealthStatus()
        self._subscriptions: dict[str, int] = {}
        self._subscriptions_lock = threading.Lock()
        # put() must stay reentrant: close_stream runs inside signal handlers
        self._events: queue.SimpleQueue = queue.SimpleQueue()
        self._connected = threading.Event()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._stream_taken = False
        self._session_open = False
        self._session_acked = False
        self._ever_connected = False
        self._failed_attempts = 0
        self._disconnected_since: float | None = None
        self._session_started: float | None = None

    def _bind(self, client: Any) -> Any:
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        return client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def add_subscription(self, topic: str, qos: int = 1) -> None:
        """Register a topic filter; it is (re)subscribed on every connect."""
        with self._subscriptions_lock:
            self._subscriptions[topic] = qos
        if self.is_connected:
            self._subscribe(topic, qos)

    @property
    def subscriptions(self) -> list[str]:
        with self._subscriptions_lock:
            return list(self._subscriptions)

    def start(self) -> None:
        """Start the network thread (connect, loop, reconnect)."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._disconnected_since = self._clock()
        self._thread = threading.Thread(target=self._run, name="MqttSupervisor", daemon=True)
        self._thread.start()
        _mqtt_logger.info("Connection supervisor started for %s:%s", self.broker, self.port)

    def events(self) -> Iterator[BrokerEvent]:
        """
        The inbound event stream: lazy, endless until ``close_stream`` and
        single-consumer (a second call raises RuntimeError).
        """
        if self._stream_taken:
            raise RuntimeError("Broker event stream already consumed")
        self._stream_taken = True
        return self._iter_events()

    def _iter_events(self) -> Iterator[BrokerEvent]:
        while True:
            event = self._events.get()
            if event is _STOP:
                return
            yield event

    def close_stream(self) -> None:
        """End the event stream; the network session stays up."""
        self._events.put(_STOP)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the network thread and disconnect from the broker."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                _mqtt_logger.warning("MQTT network thread did not stop within %.1fs", timeout)
        if self._session_open:
            try:
                self.client.disconnect()
            except (OSError, ValueError) as exc:
                _mqtt_logger.error("Error disconnecting from MQTT broker: %s", exc)
            self._session_open = False
        self._connected.clear()
        self.health_status.mark_disconnected()
        _mqtt_logger.info("Disconnected from MQTT broker.")

    def publish(self, topic: str, payload: str | bytes, *, qos: int = 1, retain: bool = False,
                timeout: float | None = None) -> None:
        """
        Publish and, for QoS > 0, wait for the broker acknowledgment.

        Raises:
            NotConnectedError: the session is down (no queuing).
            DispatchError: the publish was rejected or not acknowledged in time.
        """
        if not self.is_connected:
            self.health_status.record_publish(False)
            raise NotConnectedError(f"Not connected to broker; cannot publish to {topic}", detail={"topic": topic})

        client = self.client
        msg_info = client.publish(topic, payload, qos=qos, retain=retain)
        if msg_info.rc == mqtt.MQTT_ERR_NO_CONN:
            self.health_status.record_publish(False)
            raise NotConnectedError(f"Broker connection lost while publishing to {topic}", detail={"topic": topic})
        if msg_info.rc != mqtt.MQTT_ERR_SUCCESS:
            self.health_status.record_publish(False)
            raise DispatchError(
                f"Failed to publish to {topic}: MQTT result code {msg_info.rc}",
                detail={"topic": topic, "rc": msg_info.rc},
            )

        if qos > 0 and timeout is not None:
            try:
                msg_info.wait_for_publish(timeout=timeout)
            except (RuntimeError, ValueError) as exc:
                self.health_status.record_publish(False)
                self.health_status.record_error(exc)
                raise DispatchError(f"Publish to {topic} not delivered: {exc}", detail={"topic": topic}) from exc
            if not msg_info.is_published():
                self.health_status.record_publish(False)
                raise DispatchError(
                    f"Publish to {topic} not acknowledged within {timeout:.1f}s",
                    detail={"topic": topic, "timeout": timeout},
                )

        self.health_status.record_publish(True)
        _mqtt_logger.debug("Published to %s: %s", topic, payload)

    # ------------------------------------------------------------------
    # Network loop
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while not self._stop_event.is_set():
            if not self._session_open:
                self._try_connect()
                continue

            rc = self.client.loop(timeout=1.0)
            if self._stop_event.is_set():
                return
            if rc == mqtt.MQTT_ERR_SUCCESS:
                self._settle_session()
            elif not self._session_lost(rc):
                return

    def _try_connect(self) -> None:
        if self._client_used:
            self.client = self._bind(self._client_factory())
        self._client_used = True
        self.health_status.connection_attempts += 1
        try:
            self.client.connect(self.broker, self.port, self.keepalive)
        except (OSError, ValueError) as exc:
            self._register_failure(exc)
            return
        self._session_open = True

    def _settle_session(self) -> None:
        """Reset the backoff once the current session has stayed up long enough."""
        if not self._session_acked or self._session_started is None:
            return
        if self._failed_attempts == 0 and self._disconnected_since is None:
            return
        if self._clock() - self._session_started >= self.stable_after_s:
            self._failed_attempts = 0
            self._disconnected_since = None
            _mqtt_logger.debug("MQTT session stable for %.0fs; backoff reset", self.stable_after_s)

    def _session_lost(self, rc: int) -> bool:
        """Close out a dropped session and back off; False once the ceiling is hit."""
        acked = self._session_acked
        self._session_open = False
        self._session_acked = False
        if self.is_connected:
            # paho normally reports this via on_disconnect already
            self._handle_connection_loss(f"network loop error rc={rc}")
        if not acked:
            return self._register_failure(f"session closed before CONNACK (rc={rc})")
        uptime = self._clock() - self._session_started if self._session_started is not None else 0.0
        return self._register_failure(f"session dropped after {uptime:.1f}s (rc={rc})")

    def _register_failure(self, error: Exception | str) -> bool:
        """Back off after a failed attempt; return False once the ceiling is hit."""
        self._failed_attempts += 1
        self.health_status.record_error(error)

        if self._disconnected_since is None:
            self._disconnected_since = self._clock()
        down_for = self._clock() - self._disconnected_since
        if self.reconnect_ceiling_s and down_for >= self.reconnect_ceiling_s:
            _mqtt_logger.critical(
                "Broker %s:%s unreachable for %.0fs after %d attempts; giving up",
                self.broker,
                self.port,
                down_for,
                self._failed_attempts,
            )
            self._events.put(ConnectionFailed(reason=str(error), attempts=self._failed_attempts))
            self._stop_event.set()
            return False

        delay = next_delay(self._failed_attempts, self.reconnect_base_s, self.reconnect_cap_s)
        if self._failed_attempts == 1 or self._failed_attempts % 10 == 0:
            _mqtt_logger.warning(
                "Error connecting to MQTT broker %s:%s (%d failures): %s. Retrying in %.1fs",
                self.broker,
                self.port,
                self._failed_attempts,
                error,
                delay,
            )
        self._stop_event.wait(delay)
        return True

    def _handle_connection_loss(self, reason: str) -> None:
        self._connected.clear()
        self.health_status.mark_disconnected(reason)
        if self._disconnected_since is None:
            self._disconnected_since = self._clock()
        _mqtt_logger.warning("Lost connection to MQTT broker: %s", reason)
        self._events.put(Disconnected(reason=reason))

    def _subscribe(self, topic: str, qos: int) -> bool:
        result, _mid = self.client.subscribe(topic, qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            _mqtt_logger.error("Failed to subscribe to topic %s: result code %s", topic, result)
            return False
        _mqtt_logger.info("Subscribed to topic %s", topic)
        return True

    # ------------------------------------------------------------------
    # paho callbacks (network thread; must not raise)
    # ------------------------------------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if _is_failure(reason_code):
            _mqtt_logger.error("Broker refused connection: %s", reason_code)
            self.health_status.record_error(f"connack: {reason_code}")
            return

        with self._subscriptions_lock:
            subscriptions = list(self._subscriptions.items())
        subscribed = sum(1 for topic, qos in subscriptions if self._subscribe(topic, qos))

        self._session_acked = True
        reconnect = self._ever_connected
        self._ever_connected = True
        if reconnect:
            self.health_status.reconnects += 1
        self._session_started = self._clock()
        self.health_status.mark_connected(subscribed)
        self._connected.set()
        _mqtt_logger.info(
            "%s MQTT broker %s:%s (%d subscriptions)",
            "Reconnected to" if reconnect else "Connected to",
            self.broker,
            self.port,
            subscribed,
        )
        self._events.put(Connected(reconnect=reconnect))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if self._stop_event.is_set():
            return
        if self.is_connected:
            self._handle_connection_loss(str(reason_code))

    def _on_message(self, client, userdata, msg) -> None:
        self._events.put(MessageReceived(topic=str(msg.topic), payload=bytes(msg.payload), received_at=utc_now()))

    def get_status(self) -> dict[str, Any]:
        return {
            "broker": f"{self.broker}:{self.port}",
            "subscriptions": self.subscriptions,
            "health": self.health_status.to_dict(),
        }
