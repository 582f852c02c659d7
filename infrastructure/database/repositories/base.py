"""
Base Repository Protocol
========================

Structural contract for the History Store. The control coordinator only
depends on this protocol, so tests can hand it any object with the two
append methods and the persistence layer can be swapped without touching
the control loop.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from app.domain.heating import HeaterEvent, Reading


@runtime_checkable
class HistoryStore(Protocol):
    """Append-only sink for readings and heater transitions.

    Both methods return only once the row is durable and raise
    :class:`app.domain.exceptions.StorageError` otherwise.
    """

    def record_reading(self, reading: Reading) -> None: ...

    def record_heater_event(self, event: HeaterEvent) -> None: ...
