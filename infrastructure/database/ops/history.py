from __future__ import annotations

from datetime import datetime
from typing import Any

from app.utils.time import sqlite_timestamp


class HistoryOperations:
    """Append-only history of readings and heater transitions.

    Callers get ``sqlite3.Error`` on failure; rows are committed before the
    methods return.
    """

    def insert_reading(
        self,
        *,
        location: str,
        temperature: int,
        humidity: int,
        timestamp: datetime,
    ) -> int | None:
        """
        Insert one sensor reading into ``history``.

        Args:
            location: Sensor location key
            temperature: Whole degrees
            humidity: Relative humidity percent
            timestamp: Observation time (stored as UTC)
        """
        with self.connection() as db:
            cursor = db.execute(
                "INSERT INTO history (timestamp, location, temperature, humidity) VALUES (?, ?, ?, ?)",
                (sqlite_timestamp(timestamp), location, int(temperature), int(humidity)),
            )
            return cursor.lastrowid

    def insert_heater_state(self, *, shelly_id: str, is_active: bool, timestamp: datetime) -> int | None:
        """Insert one heater transition into ``heater_history``."""
        with self.connection() as db:
            cursor = db.execute(
                "INSERT INTO heater_history (timestamp, shelly_id, is_active) VALUES (?, ?, ?)",
                (sqlite_timestamp(timestamp), shelly_id, bool(is_active)),
            )
            return cursor.lastrowid

    # --- History lookups -------------------------------------------------------
    def get_readings_since(self, since: datetime) -> list[dict[str, Any]]:
        """Readings newer than ``since``, oldest first."""
        with self.connection() as db:
            rows = db.execute(
                """
                SELECT timestamp, location, temperature, humidity
                FROM history
                WHERE timestamp > ?
                ORDER BY timestamp ASC, rowid ASC
                """,
                (sqlite_timestamp(since),),
            ).fetchall()
        return [dict(row) for row in rows]

    def get_heater_states_since(self, since: datetime) -> list[dict[str, Any]]:
        """Heater transitions newer than ``since``, oldest first."""
        with self.connection() as db:
            rows = db.execute(
                """
                SELECT timestamp, shelly_id, is_active
                FROM heater_history
                WHERE timestamp > ?
                ORDER BY timestamp ASC, rowid ASC
                """,
                (sqlite_timestamp(since),),
            ).fetchall()
        return [{**dict(row), "is_active": bool(row["is_active"])} for row in rows]
