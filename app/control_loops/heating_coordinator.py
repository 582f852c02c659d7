"""
Heating Coordinator
===================
Per-location hysteresis control for on/off heaters.

Every reading is appended to history first, then evaluated against the
location's setpoint. A transition is dispatched to the heater, recorded as a
heater event and logged to the audit trail. Readings for locations with no
configured heater are persisted only.

Flow::

    Reading ─► persist ─► hysteresis ─► cooldown ─► dispatch ─► heater event
                            │ no change            │ failed
                            ▼                      ▼
                     reconcile if divergent   mark divergent, retry next reading

Work for a single location is serialized by the location's lock (and, when
``LocationWorkers`` is attached, by its single-thread executor), so commands
for one heater always leave in decision order.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Iterable, Protocol

from app.control_loops.hysteresis import decide
from app.control_loops.location_workers import LocationWorkers
from app.domain.control import ControlConfig, ControlMetrics
from app.domain.exceptions import DispatchError, StorageError, UnconfiguredLocationError
from app.domain.heating import HeaterCommand, HeaterEvent, HeaterState, LocationControlState, Reading
from app.enums import DecisionOutcome
from app.utils.time import utc_now
from infrastructure.database.repositories.base import HistoryStore
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


class HeaterDispatcher(Protocol):
    def dispatch(self, command: HeaterCommand) -> None: ...


class HeatingCoordinator:
    """Owns the control state of every configured location."""

    def __init__(
        self,
        states: Iterable[LocationControlState],
        history: HistoryStore,
        dispatcher: HeaterDispatcher,
        config: ControlConfig | None = None,
        *,
        audit_logger: AuditLogger | None = None,
        workers: LocationWorkers | None = None,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ControlConfig()
        self.history = history
        self.dispatcher = dispatcher
        self.audit_logger = audit_logger
        self.workers = workers
        self._clock = clock
        self._monotonic = monotonic

        self._states: dict[str, LocationControlState] = {}
        for state in states:
            if state.location in self._states:
                raise ValueError(f"Duplicate location: {state.location}")
            state.enabled = state.enabled and self.config.enabled_by_default
            self._states[state.location] = state

        self.metrics = ControlMetrics()
        self._metrics_lock = threading.Lock()

        logger.info(
            "HeatingCoordinator initialized for %d locations (margin=%.2f, cooldown=%.0fs)",
            len(self._states),
            self.config.margin,
            self.config.cooldown_seconds,
        )

    # ------------------------------------------------------------------ lookup

    @property
    def locations(self) -> list[str]:
        return list(self._states)

    def has_location(self, location: str) -> bool:
        return location in self._states

    def get_state(self, location: str) -> LocationControlState:
        try:
            return self._states[location]
        except KeyError:
            raise UnconfiguredLocationError(
                f"No heater configured for location '{location}'", detail={"location": location}
            ) from None

    # -------------------------------------------------------------- submission

    def submit_reading(self, reading: Reading) -> None:
        """Hand a reading to the location's worker, or process it inline."""
        if self.workers is not None and reading.location in self.workers:
            self.workers.submit(reading.location, self.handle_reading, reading)
        else:
            self.handle_reading(reading)

    def submit_setpoint(self, location: str, value: float) -> None:
        self.get_state(location)
        if self.workers is not None and location in self.workers:
            self.workers.submit(location, self.set_desired_temperature, location, value)
        else:
            self.set_desired_temperature(location, value)

    def submit_enabled(self, location: str, enabled: bool) -> None:
        self.get_state(location)
        if self.workers is not None and location in self.workers:
            self.workers.submit(location, self.set_enabled, location, enabled)
        else:
            self.set_enabled(location, enabled)

    def submit_reconcile_divergent(self) -> None:
        """Queue a re-dispatch for every location whose heater may disagree with us."""
        for location, state in self._states.items():
            if not state.divergent:
                continue
            if self.workers is not None and location in self.workers:
                self.workers.submit(location, self.reconcile, location)
            else:
                self.reconcile(location)

    # -------------------------------------------------------------- operations

    def handle_reading(self, reading: Reading) -> DecisionOutcome:
        """Persist a reading and apply the hysteresis rule for its location."""
        self._bump("readings")
        state = self._states.get(reading.location)
        if state is None:
            self._persist_reading(reading)
            self._bump("unconfigured_readings")
            logger.debug("Reading for unconfigured location %s stored without control", reading.location)
            return DecisionOutcome.UNCONFIGURED

        with state.lock:
            self._persist_reading(reading)
            state.last_reading = reading
            return self._evaluate(state)

    def set_desired_temperature(self, location: str, value: float) -> DecisionOutcome:
        """Change a setpoint and re-evaluate against the last reading."""
        state = self.get_state(location)
        with state.lock:
            previous = state.desired_temperature
            state.desired_temperature = float(value)
            logger.info("Setpoint for %s changed %.1f -> %.1f", location, previous, state.desired_temperature)
            self._audit(
                "setpoint_changed", state.heater_id, "applied",
                location=location, previous=previous, desired=state.desired_temperature,
            )
            return self._evaluate(state)

    def set_enabled(self, location: str, enabled: bool) -> DecisionOutcome:
        """Turn automatic control for a location on or off."""
        state = self.get_state(location)
        with state.lock:
            state.enabled = bool(enabled)
            logger.info("Automatic control for %s %s", location, "enabled" if enabled else "disabled")
            self._audit("auto_control", state.heater_id, "applied", location=location, enabled=state.enabled)
            if not state.enabled:
                return DecisionOutcome.DISABLED
            return self._evaluate(state)

    def reconcile(self, location: str) -> DecisionOutcome:
        """Re-send the believed heater state if the last command was not confirmed."""
        state = self.get_state(location)
        with state.lock:
            if not state.divergent or state.current_heater_state is HeaterState.UNKNOWN:
                return DecisionOutcome.NO_CHANGE
            return self._reconcile(state)

    # --------------------------------------------------------------- internals

    def _evaluate(self, state: LocationControlState) -> DecisionOutcome:
        reading = state.last_reading
        if reading is None:
            return DecisionOutcome.NO_CHANGE
        if not state.enabled:
            return DecisionOutcome.DISABLED

        target = decide(
            state.current_heater_state, reading.temperature, state.desired_temperature, self.config.margin
        )
        if target is None:
            if state.divergent and state.current_heater_state is not HeaterState.UNKNOWN:
                return self._reconcile(state)
            return DecisionOutcome.NO_CHANGE

        now = self._clock()
        mono_now = self._monotonic()
        if state.last_transition_mono is not None:
            elapsed = mono_now - state.last_transition_mono
            if elapsed < self.config.cooldown_seconds:
                self._bump("suppressed_by_cooldown")
                logger.info(
                    "Holding %s %s for %s: cooldown has %.0fs left",
                    state.heater_label,
                    state.current_heater_state.value,
                    state.location,
                    self.config.cooldown_seconds - elapsed,
                )
                return DecisionOutcome.COOLDOWN_ACTIVE

        previous = state.current_heater_state
        command = HeaterCommand(shelly_id=state.heater_id, is_active=target is HeaterState.ON, timestamp=now)
        delivered = self._dispatch(state, command)

        state.current_heater_state = target
        state.last_transition_at = now
        state.last_transition_mono = mono_now
        state.divergent = not delivered
        with self._metrics_lock:
            self.metrics.transitions += 1
            self.metrics.last_transition_time = now

        self._persist_event(HeaterEvent.from_command(command))
        logger.info(
            "%s: heater %s %s -> %s (temperature=%s, setpoint=%.1f)",
            state.location,
            state.heater_label,
            previous.value,
            target.value,
            reading.temperature,
            state.desired_temperature,
        )
        self._audit(
            "heater_transition",
            state.heater_id,
            "applied" if delivered else "divergent",
            location=state.location,
            from_state=previous.value,
            to_state=target.value,
            temperature=reading.temperature,
            desired=state.desired_temperature,
        )
        return DecisionOutcome.TRANSITION

    def _reconcile(self, state: LocationControlState) -> DecisionOutcome:
        command = HeaterCommand(
            shelly_id=state.heater_id,
            is_active=state.current_heater_state is HeaterState.ON,
            timestamp=self._clock(),
        )
        if not self._dispatch(state, command):
            return DecisionOutcome.NO_CHANGE
        state.divergent = False
        self._bump("reconciliations")
        logger.info("%s: heater %s confirmed %s", state.location, state.heater_label, state.current_heater_state.value)
        self._audit("heater_reconciled", state.heater_id, "applied", location=state.location,
                    state=state.current_heater_state.value)
        return DecisionOutcome.RECONCILE

    def _dispatch(self, state: LocationControlState, command: HeaterCommand) -> bool:
        try:
            self.dispatcher.dispatch(command)
            return True
        except DispatchError as exc:
            self._bump("dispatch_failures")
            logger.error(
                "Command %s for heater %s (%s) not confirmed, believed state may diverge: %s",
                command.state.value,
                state.heater_label,
                state.location,
                exc,
            )
            return False

    def _persist_reading(self, reading: Reading) -> None:
        try:
            self.history.record_reading(reading)
        except StorageError as exc:
            self._bump("storage_failures")
            logger.error("History write failed for %s, control continues: %s", reading.location, exc)

    def _persist_event(self, event: HeaterEvent) -> None:
        try:
            self.history.record_heater_event(event)
        except StorageError as exc:
            self._bump("storage_failures")
            logger.error("Heater event write failed for %s, control continues: %s", event.shelly_id, exc)

    def _bump(self, counter: str) -> None:
        with self._metrics_lock:
            setattr(self.metrics, counter, getattr(self.metrics, counter) + 1)

    def _audit(self, action: str, resource: str, outcome: str, **metadata: Any) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_event("coordinator", action, resource, outcome, **metadata)

    # ------------------------------------------------------------------ status

    def get_status(self) -> dict[str, Any]:
        locations = {}
        for location, state in self._states.items():
            with state.lock:
                locations[location] = state.to_dict()
        with self._metrics_lock:
            metrics = self.metrics.to_dict()
        return {
            "locations": locations,
            "metrics": metrics,
            "margin": self.config.margin,
            "cooldown_seconds": self.config.cooldown_seconds,
        }
