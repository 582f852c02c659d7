"""Time helpers.

The hub works in aware UTC datetimes throughout. History rows keep the
SQLite ``DATETIME`` text form (``YYYY-MM-DD HH:MM:SS``, UTC) so that plain
string comparison orders them correctly.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

SQLITE_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """Return current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def sqlite_timestamp(dt: datetime) -> str:
    return as_utc(dt).strftime(SQLITE_FORMAT)


def coerce_datetime(value: Any) -> datetime | None:
    """
    Best-effort conversion of a sensor-supplied timestamp.

    Accepts a datetime, an ISO-8601 string (``Z`` suffix allowed) or epoch
    seconds. Returns an aware UTC datetime, or None when ``value`` is none of
    those.
    """
    if isinstance(value, datetime):
        return as_utc(value)

    # bool is an int subclass; True is not a timestamp
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None

    return None
