from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from app.config import AppConfig, LocationSettings
from app.control_loops.heating_coordinator import HeatingCoordinator
from app.control_loops.location_workers import LocationWorkers
from app.domain.heating import LocationControlState
from app.hardware.mqtt.connection_supervisor import ConnectionSupervisor
from app.services.hardware.command_dispatch_service import CommandDispatchService
from app.services.hardware.telemetry_ingest_service import TelemetryIngestService
from app.workers.hub_runner import HubRunner
from infrastructure.database.repositories.history import HistoryRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Aggregate and manage the hub's services."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    history_repo: HistoryRepository
    audit_logger: AuditLogger
    supervisor: ConnectionSupervisor
    dispatcher: CommandDispatchService
    workers: LocationWorkers
    coordinator: HeatingCoordinator
    ingest: TelemetryIngestService
    runner: HubRunner

    @classmethod
    def build(
        cls,
        config: AppConfig,
        locations: Iterable[LocationSettings],
        *,
        mqtt_client: Any | None = None,
    ) -> "ServiceContainer":
        """
        Wire every service together. Opens the history database (and creates
        its tables) but does not connect to the broker; call
        ``supervisor.start()`` for that.

        Args:
            config: Runtime configuration
            locations: Controlled locations and their heaters
            mqtt_client: Pre-built paho client (tests inject a stub)
        """
        locations = list(locations)
        logger.info("Building ServiceContainer for %d locations...", len(locations))

        database = SQLiteDatabaseHandler(config.database_path)
        database.init_db()
        history_repo = HistoryRepository(database)
        audit_logger = AuditLogger(config.audit_log_path, level=config.log_level)

        supervisor = ConnectionSupervisor(
            config.mqtt_broker_host,
            config.mqtt_broker_port,
            config.mqtt_client_id,
            keepalive=config.mqtt_keepalive,
            reconnect_base_s=config.reconnect_base_seconds,
            reconnect_cap_s=config.reconnect_cap_seconds,
            reconnect_ceiling_s=config.reconnect_ceiling_seconds,
            stable_after_s=config.reconnect_stable_seconds,
            client=mqtt_client,
        )
        dispatcher = CommandDispatchService(
            supervisor,
            topic_template=config.heater_topic_template,
            payload_format=config.heater_payload_format,
            max_attempts=config.dispatch_max_attempts,
            backoff_base_s=config.dispatch_backoff_base_seconds,
            backoff_cap_s=config.dispatch_backoff_cap_seconds,
            publish_timeout_s=config.publish_timeout_seconds,
        )

        states = [
            LocationControlState(
                location=item.location,
                heater_id=item.heater_id,
                desired_temperature=item.desired_temperature,
                heater_name=item.name,
            )
            for item in locations
        ]
        workers = LocationWorkers(state.location for state in states)
        coordinator = HeatingCoordinator(
            states,
            history_repo,
            dispatcher,
            config.control_config(),
            audit_logger=audit_logger,
            workers=workers,
        )
        ingest = TelemetryIngestService(
            coordinator,
            sensor_topic_prefix=config.sensor_topic_prefix,
            control_topic_prefix=config.control_topic_prefix,
            location_source=config.location_source,
        )
        runner = HubRunner(
            supervisor,
            ingest,
            coordinator,
            workers,
            shutdown_deadline_s=config.shutdown_deadline_seconds,
        )

        logger.info("ServiceContainer built successfully.")
        return cls(
            config=config,
            database=database,
            history_repo=history_repo,
            audit_logger=audit_logger,
            supervisor=supervisor,
            dispatcher=dispatcher,
            workers=workers,
            coordinator=coordinator,
            ingest=ingest,
            runner=runner,
        )

    def get_status(self) -> dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "broker": self.supervisor.get_status(),
            "ingest": self.ingest.get_status(),
            "dispatch": self.dispatcher.get_status(),
            "control": self.coordinator.get_status(),
        }

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        self.workers.shutdown(self.config.shutdown_deadline_seconds)
        self.supervisor.shutdown()
        self.database.close_all()
        self.audit_logger.close()
        logger.info("ServiceContainer shutdown complete.")
