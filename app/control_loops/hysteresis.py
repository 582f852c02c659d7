"""
Hysteresis decision for a single on/off heater.

The heater switches on below ``desired - margin`` and off above
``desired + margin``; inside the band nothing changes. An ``UNKNOWN`` state
(nothing commanded since startup) is reconciled on the first reading that
falls outside the band, in either direction.
"""

from __future__ import annotations

from app.domain.heating import HeaterState


def decide(current: HeaterState, temperature: float, desired: float, margin: float) -> HeaterState | None:
    """
    Return the state to transition to, or None when no transition is due.

    Args:
        current: Last commanded heater state
        temperature: Latest reading
        desired: Setpoint for the location
        margin: Half-width of the dead band around the setpoint
    """
    if current is not HeaterState.ON and temperature < desired - margin:
        return HeaterState.ON
    if current is not HeaterState.OFF and temperature > desired + margin:
        return HeaterState.OFF
    return None
