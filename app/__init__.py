"""Paletten heating hub.

Telemetry-to-control coordination for home heaters: sensor readings arrive
over MQTT, each location's heater is switched with hysteresis and a
cooldown, and both readings and heater transitions are kept in SQLite.

Wiring lives in :mod:`app.services.container`; the process entry point is
``run_hub.py``.
"""
