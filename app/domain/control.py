"""
Control System Domain Objects
==============================
Dataclasses for heater control logic.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ControlConfig:
    """Configuration for the heater control loop."""
    margin: float = 1.0  # Hysteresis band either side of the setpoint
    cooldown_seconds: float = 300.0  # Minimum seconds between heater transitions
    enabled_by_default: bool = True


@dataclass
class ControlMetrics:
    """Counters for control loop activity."""
    readings: int = 0
    unconfigured_readings: int = 0
    transitions: int = 0
    suppressed_by_cooldown: int = 0
    storage_failures: int = 0
    dispatch_failures: int = 0
    reconciliations: int = 0
    last_transition_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'readings': self.readings,
            'unconfigured_readings': self.unconfigured_readings,
            'transitions': self.transitions,
            'suppressed_by_cooldown': self.suppressed_by_cooldown,
            'storage_failures': self.storage_failures,
            'dispatch_failures': self.dispatch_failures,
            'reconciliations': self.reconciliations,
            'last_transition_time': self.last_transition_time.isoformat() if self.last_transition_time else None,
        }
