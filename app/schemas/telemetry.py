"""
Telemetry Schemas
=================

Pydantic models for inbound sensor messages and control messages, and for
the JSON heater command payload published to the relay.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.time import coerce_datetime


class TelemetryPayload(BaseModel):
    """A sensor message such as ``{"temperature": 21, "humidity": 40}``."""

    model_config = ConfigDict(extra="ignore")

    temperature: int = Field(..., ge=-50, le=100, strict=True)
    humidity: int = Field(..., ge=0, le=100, strict=True)
    timestamp: datetime | None = None
    location: str | None = Field(None, min_length=1)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime | None:
        if value is None:
            return None
        parsed = coerce_datetime(value)
        if parsed is None:
            raise ValueError(f"unrecognised timestamp: {value!r}")
        return parsed


class SetpointPayload(BaseModel):
    """Setpoint change, either a bare number or ``{"desired_temperature": 21}``."""

    desired_temperature: float = Field(..., ge=-50, le=100, allow_inf_nan=False)


class HeaterCommandPayload(BaseModel):
    """JSON body published to a heater's command topic."""

    is_active: bool
    timestamp: str
