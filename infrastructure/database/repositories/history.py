from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta
from typing import Any

from app.domain.exceptions import StorageError
from app.domain.heating import HeaterEvent, Reading
from app.utils.time import utc_now
from infrastructure.database.ops.history import HistoryOperations


class HistoryRepository:
    """History Store: append readings and heater events.

    Every failure surfaces as :class:`StorageError`; nothing is retried or
    buffered here.
    """

    def __init__(self, backend: HistoryOperations) -> None:
        self._backend = backend

    def record_reading(self, reading: Reading) -> None:
        try:
            self._backend.insert_reading(
                location=reading.location,
                temperature=reading.temperature,
                humidity=reading.humidity,
                timestamp=reading.timestamp,
            )
        except sqlite3.Error as exc:
            raise StorageError(
                f"Failed to insert reading for {reading.location}: {exc}",
                detail={"location": reading.location, "table": "history"},
            ) from exc

    def record_heater_event(self, event: HeaterEvent) -> None:
        try:
            self._backend.insert_heater_state(
                shelly_id=event.shelly_id,
                is_active=event.is_active,
                timestamp=event.timestamp,
            )
        except sqlite3.Error as exc:
            raise StorageError(
                f"Failed to insert heater event for {event.shelly_id}: {exc}",
                detail={"shelly_id": event.shelly_id, "table": "heater_history"},
            ) from exc

    def recent_readings(self, *, hours: int = 24, now: datetime | None = None) -> list[dict[str, Any]]:
        since = (now or utc_now()) - timedelta(hours=hours)
        try:
            return self._backend.get_readings_since(since)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to fetch reading history: {exc}") from exc

    def recent_heater_events(self, *, hours: int = 24, now: datetime | None = None) -> list[dict[str, Any]]:
        since = (now or utc_now()) - timedelta(hours=hours)
        try:
            return self._backend.get_heater_states_since(since)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to fetch heater history: {exc}") from exc
