"""Append-only audit trail for heater transitions.

Each record is one JSON object per line::

    {"at": "2026-01-01T06:00:00Z", "level": "INFO", "actor": "coordinator",
     "action": "heater_transition", "resource": "C4402D", "outcome": "applied",
     "meta": {"location": "stue", "to_state": "on"}}
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

AUDIT_LOGGER_NAME = "paletten.audit"

# Outcomes worth paging someone about
_ERROR_OUTCOMES = frozenset({"failed", "divergent"})


class _JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        at = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "at": at.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
        }
        entry.update(getattr(record, "audit", {}))
        return json.dumps(entry, default=str, ensure_ascii=False)


class AuditLogger:
    """Writes heater transitions and divergence to their own rotating file.

    A divergent transition (commanded but not confirmed) is logged at ERROR
    so it stands out when the trail is grepped after an incident.
    """

    def __init__(self, log_path: str, level: str = "INFO") -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self.logger.propagate = False

        # A second AuditLogger (tests, re-built container) takes over the file
        for stale in [h for h in self.logger.handlers if getattr(h, "_paletten_audit", False)]:
            self.logger.removeHandler(stale)
            stale.close()

        self._handler = RotatingFileHandler(
            filename=str(self.log_path),
            maxBytes=5 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8",
        )
        self._handler.setFormatter(_JsonLineFormatter())
        self._handler._paletten_audit = True  # type: ignore[attr-defined]
        self.logger.addHandler(self._handler)

    def log_event(self, actor: str, action: str, resource: str, outcome: str, **metadata: Any) -> None:
        entry: Dict[str, Any] = {"actor": actor, "action": action, "resource": resource, "outcome": outcome}
        if metadata:
            entry["meta"] = metadata
        level = logging.ERROR if outcome in _ERROR_OUTCOMES else logging.INFO
        self.logger.log(level, "%s %s %s", action, resource, outcome, extra={"audit": entry})

    def flush(self) -> None:
        self._handler.flush()

    def close(self) -> None:
        self.logger.removeHandler(self._handler)
        self._handler.close()
