"""
Control Loops Package
=====================

The control layer of the hub:
- Hysteresis decision for on/off heaters
- Per-location control state and cooldown
- Per-location serial workers

Architecture:
    Reading
       │
       ▼
    ┌─────────────────────────────────┐
    │   HeatingCoordinator            │  ← persist, decide, dispatch, record
    │     └─ hysteresis.decide()      │
    └─────────────────────────────────┘
       │                    │
       ▼                    ▼
    HistoryStore      CommandDispatchService
"""

from app.control_loops.heating_coordinator import HeatingCoordinator
from app.control_loops.hysteresis import decide
from app.control_loops.location_workers import LocationWorkers

__all__ = [
    "HeatingCoordinator",
    "LocationWorkers",
    "decide",
]
