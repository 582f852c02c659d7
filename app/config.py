"""
Configuration for the Paletten heating hub
==========================================
Runtime settings loaded from environment variables, plus the list of
controlled locations loaded from a JSON file.

Example locations file::

    {
      "locations": [
        {"location": "living_room", "desired_temperature": 21,
         "heater_id": "C4402D", "name": "Spisebord"}
      ]
    }
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from app.domain.control import ControlConfig
from app.domain.exceptions import ConfigurationError
from app.enums import HeaterPayloadFormat, LocationSource


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("PALETTEN_ENV", "production"))
    database_path: str = field(default_factory=lambda: os.getenv("PALETTEN_DATABASE_PATH", "database/history.db"))
    locations_path: str = field(
        default_factory=lambda: os.getenv("PALETTEN_LOCATIONS_FILE", "config/locations.json")
    )

    # Broker session
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("PALETTEN_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("PALETTEN_MQTT_PORT", 1883))
    mqtt_client_id: str = field(default_factory=lambda: os.getenv("PALETTEN_MQTT_CLIENT_ID", "paletten-cloud-hub"))
    mqtt_keepalive: int = field(default_factory=lambda: _env_int("PALETTEN_MQTT_KEEPALIVE", 5))
    reconnect_base_seconds: float = field(default_factory=lambda: _env_float("PALETTEN_RECONNECT_BASE", 1.0))
    reconnect_cap_seconds: float = field(default_factory=lambda: _env_float("PALETTEN_RECONNECT_CAP", 60.0))
    # 0 disables the ceiling (retry forever)
    reconnect_ceiling_seconds: float = field(
        default_factory=lambda: _env_float("PALETTEN_RECONNECT_CEILING", 900.0)
    )
    # a session shorter than this counts as a failed attempt
    reconnect_stable_seconds: float = field(
        default_factory=lambda: _env_float("PALETTEN_RECONNECT_STABLE", 30.0)
    )

    # Topics
    sensor_topic_prefix: str = field(default_factory=lambda: os.getenv("PALETTEN_SENSOR_TOPIC_PREFIX", "temperature"))
    control_topic_prefix: str = field(default_factory=lambda: os.getenv("PALETTEN_CONTROL_TOPIC_PREFIX", "heating"))
    location_source: LocationSource = field(
        default_factory=lambda: LocationSource(os.getenv("PALETTEN_LOCATION_SOURCE", "topic").lower())
    )
    heater_topic_template: str = field(
        default_factory=lambda: os.getenv("PALETTEN_HEATER_TOPIC", "shellies/shelly1-{shelly_id}/relay/0/command")
    )
    heater_payload_format: HeaterPayloadFormat = field(
        default_factory=lambda: HeaterPayloadFormat(os.getenv("PALETTEN_HEATER_PAYLOAD_FORMAT", "shelly").lower())
    )

    # Control loop
    hysteresis_margin: float = field(default_factory=lambda: _env_float("PALETTEN_HYSTERESIS_MARGIN", 1.0))
    cooldown_seconds: float = field(default_factory=lambda: _env_float("PALETTEN_COOLDOWN_SECONDS", 300.0))
    control_enabled: bool = field(default_factory=lambda: _env_bool("PALETTEN_CONTROL_ENABLED", True))

    # Command dispatch
    publish_timeout_seconds: float = field(default_factory=lambda: _env_float("PALETTEN_PUBLISH_TIMEOUT", 5.0))
    dispatch_max_attempts: int = field(default_factory=lambda: _env_int("PALETTEN_DISPATCH_MAX_ATTEMPTS", 3))
    dispatch_backoff_base_seconds: float = field(
        default_factory=lambda: _env_float("PALETTEN_DISPATCH_BACKOFF_BASE", 0.5)
    )
    dispatch_backoff_cap_seconds: float = field(
        default_factory=lambda: _env_float("PALETTEN_DISPATCH_BACKOFF_CAP", 5.0)
    )

    shutdown_deadline_seconds: float = field(default_factory=lambda: _env_float("PALETTEN_SHUTDOWN_DEADLINE", 10.0))

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("PALETTEN_LOG_LEVEL", "INFO"))
    log_path: str = field(default_factory=lambda: os.getenv("PALETTEN_LOG_PATH", "logs/hub.log"))
    audit_log_path: str = field(default_factory=lambda: os.getenv("PALETTEN_AUDIT_LOG_PATH", "logs/audit.log"))
    mqtt_log_path: str = field(default_factory=lambda: os.getenv("PALETTEN_MQTT_LOG_PATH", "logs/mqtt.log"))

    def validate(self) -> None:
        """Raise ConfigurationError if values are out of range."""
        problems: list[str] = []
        if not 0 < self.mqtt_broker_port < 65536:
            problems.append(f"mqtt_broker_port out of range: {self.mqtt_broker_port}")
        if self.hysteresis_margin < 0:
            problems.append("hysteresis_margin must be >= 0")
        if self.cooldown_seconds < 0:
            problems.append("cooldown_seconds must be >= 0")
        if self.dispatch_max_attempts < 1:
            problems.append("dispatch_max_attempts must be >= 1")
        if self.reconnect_base_seconds <= 0 or self.reconnect_cap_seconds < self.reconnect_base_seconds:
            problems.append("reconnect backoff requires 0 < base <= cap")
        if self.reconnect_ceiling_seconds < 0:
            problems.append("reconnect_ceiling_seconds must be >= 0")
        if self.reconnect_stable_seconds < 0:
            problems.append("reconnect_stable_seconds must be >= 0")
        if "{shelly_id}" not in self.heater_topic_template:
            problems.append("heater_topic_template must contain '{shelly_id}'")
        if not self.sensor_topic_prefix.strip("/"):
            problems.append("sensor_topic_prefix must not be empty")
        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems), detail={"problems": problems})

    def control_config(self) -> ControlConfig:
        return ControlConfig(
            margin=self.hysteresis_margin,
            cooldown_seconds=self.cooldown_seconds,
            enabled_by_default=self.control_enabled,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "environment": self.environment,
            "database_path": self.database_path,
            "mqtt_broker": f"{self.mqtt_broker_host}:{self.mqtt_broker_port}",
            "sensor_topic_prefix": self.sensor_topic_prefix,
            "control_topic_prefix": self.control_topic_prefix,
            "location_source": self.location_source.value,
            "heater_topic_template": self.heater_topic_template,
            "heater_payload_format": self.heater_payload_format.value,
            "hysteresis_margin": self.hysteresis_margin,
            "cooldown_seconds": self.cooldown_seconds,
        }


class LocationSettings(BaseModel):
    """One controlled location and the heater that serves it."""

    location: str = Field(min_length=1)
    desired_temperature: float = Field(ge=-50, le=100)
    heater_id: str = Field(min_length=1)
    name: str | None = None

    @field_validator("location", "heater_id")
    @classmethod
    def _no_topic_separators(cls, value: str) -> str:
        value = value.strip()
        if not value or any(ch in value for ch in "/+#"):
            raise ValueError("must be non-empty and must not contain '/', '+' or '#'")
        return value


class LocationsFile(BaseModel):
    locations: list[LocationSettings] = Field(min_length=1)

    @field_validator("locations")
    @classmethod
    def _unique(cls, value: list[LocationSettings]) -> list[LocationSettings]:
        names = [item.location for item in value]
        heaters = [item.heater_id for item in value]
        if len(set(names)) != len(names):
            raise ValueError("duplicate location")
        if len(set(heaters)) != len(heaters):
            raise ValueError("duplicate heater_id")
        return value


def parse_locations(raw: Any) -> list[LocationSettings]:
    """Validate an already-decoded locations document."""
    if isinstance(raw, list):
        raw = {"locations": raw}
    try:
        return LocationsFile.model_validate(raw).locations
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid locations configuration: {exc}") from exc


def load_locations(path: str | Path) -> list[LocationSettings]:
    """Read and validate the locations file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigurationError(f"Locations file not found: {path}") from None
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Unable to read locations file {path}: {exc}") from exc
    return parse_locations(raw)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    try:
        config = AppConfig()
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    config.validate()
    return config
