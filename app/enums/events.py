from enum import Enum


class DecisionOutcome(str, Enum):
    """Outcome of evaluating one reading against a location's control state."""

    TRANSITION = "transition"
    RECONCILE = "reconcile"
    NO_CHANGE = "no_change"
    COOLDOWN_ACTIVE = "cooldown_active"
    DISABLED = "disabled"
    UNCONFIGURED = "unconfigured"


class LocationSource(str, Enum):
    """Where Telemetry Ingest takes a reading's location from."""

    TOPIC = "topic"
    PAYLOAD = "payload"


class HeaterPayloadFormat(str, Enum):
    """Wire format of outbound heater commands."""

    JSON = "json"
    SHELLY = "shelly"
