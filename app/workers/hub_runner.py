"""
Hub driving loop.

A single consumer of the connection supervisor's event stream. Messages are
decoded by the ingest service and fanned out to per-location workers;
connection events only change what is logged, except ``ConnectionFailed``,
which ends the run with :class:`ConnectionLostError`.

Shutdown (``request_stop``) closes the stream, then waits for in-flight
location work up to the configured deadline so no heater command is left
half-issued.
"""

from __future__ import annotations

import logging
import threading

from app.control_loops.heating_coordinator import HeatingCoordinator
from app.control_loops.location_workers import LocationWorkers
from app.domain.exceptions import ConnectionLostError
from app.hardware.mqtt.broker_events import Connected, ConnectionFailed, Disconnected, MessageReceived
from app.hardware.mqtt.connection_supervisor import ConnectionSupervisor
from app.services.hardware.telemetry_ingest_service import TelemetryIngestService

logger = logging.getLogger(__name__)


class HubRunner:
    def __init__(
        self,
        supervisor: ConnectionSupervisor,
        ingest: TelemetryIngestService,
        coordinator: HeatingCoordinator,
        workers: LocationWorkers | None = None,
        *,
        shutdown_deadline_s: float = 10.0,
    ):
        self.supervisor = supervisor
        self.ingest = ingest
        self.coordinator = coordinator
        self.workers = workers
        self.shutdown_deadline_s = shutdown_deadline_s
        self._stopping = threading.Event()
        self.clean_shutdown = True

        for topic in self.ingest.topic_filters():
            self.supervisor.add_subscription(topic, qos=1)

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def request_stop(self) -> None:
        """Ask the driving loop to finish; safe to call from a signal handler."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        logger.info("Shutdown requested")
        self.supervisor.close_stream()

    def run(self) -> None:
        """
        Consume broker events until stopped.

        Raises:
            ConnectionLostError: the broker stayed unreachable past the reconnect ceiling
        """
        try:
            for event in self.supervisor.events():
                if isinstance(event, MessageReceived):
                    if not self._stopping.is_set():
                        self.ingest.handle_message(event)
                elif isinstance(event, Connected):
                    if event.reconnect:
                        logger.info("Broker session restored; resuming ingest")
                        self.coordinator.submit_reconcile_divergent()
                    else:
                        logger.info("Broker session ready; controlling %d locations", len(self.coordinator.locations))
                elif isinstance(event, Disconnected):
                    logger.warning("Broker session lost (%s); heater commands fail fast until reconnect", event.reason)
                elif isinstance(event, ConnectionFailed):
                    raise ConnectionLostError(
                        f"Broker unreachable after {event.attempts} attempts: {event.reason}",
                        detail={"attempts": event.attempts},
                    )
        finally:
            self._drain()

    def _drain(self) -> None:
        if self.workers is None:
            return
        self.clean_shutdown = self.workers.shutdown(self.shutdown_deadline_s)
        if self.clean_shutdown:
            logger.info("All location work finished")
