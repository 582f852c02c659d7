import json
import logging

from infrastructure.logging import AuditLogger, configure_logging


def _entries(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_audit_entries_are_json_lines(tmp_path):
    path = tmp_path / "audit.log"
    audit = AuditLogger(str(path))
    try:
        audit.log_event("coordinator", "heater_transition", "C4402D", "applied", location="stue", to_state="on")
        audit.log_event("coordinator", "heater_transition", "C4402D", "divergent", location="stue")
        audit.flush()

        first, second = _entries(path)
        assert first["level"] == "INFO"
        assert second["level"] == "ERROR"
        assert first["at"].endswith("Z")
        assert {k: v for k, v in first.items() if k not in ("at", "level")} == {
            "actor": "coordinator",
            "action": "heater_transition",
            "resource": "C4402D",
            "outcome": "applied",
            "meta": {"location": "stue", "to_state": "on"},
        }
        assert second["outcome"] == "divergent"
    finally:
        audit.close()


def test_new_audit_logger_replaces_previous_handler(tmp_path):
    first = AuditLogger(str(tmp_path / "a.log"))
    second = AuditLogger(str(tmp_path / "b.log"))
    try:
        handlers = [h for h in logging.getLogger("paletten.audit").handlers if getattr(h, "_paletten_audit", False)]
        assert handlers == [second._handler]

        second.log_event("coordinator", "setpoint_changed", "stue", "applied")
        second.flush()
        assert (tmp_path / "a.log").read_text(encoding="utf-8") == ""
        assert _entries(tmp_path / "b.log")[0]["action"] == "setpoint_changed"
    finally:
        first.close()
        second.close()


def test_configure_logging_is_idempotent(tmp_path):
    root = logging.getLogger()
    before = [h for h in root.handlers if not getattr(h, "_paletten_handler", False)]

    configure_logging("DEBUG", str(tmp_path / "hub.log"), str(tmp_path / "mqtt.log"))
    configure_logging("INFO", str(tmp_path / "hub.log"), str(tmp_path / "mqtt.log"))

    ours = [h for h in root.handlers if getattr(h, "_paletten_handler", False)]
    mqtt_handlers = [h for h in logging.getLogger("paletten.mqtt").handlers if getattr(h, "_paletten_handler", False)]
    assert len(ours) == 2
    assert len(mqtt_handlers) == 1
    assert root.level == logging.INFO
    assert (tmp_path / "mqtt.log").exists()

    for handler in ours + mqtt_handlers:
        handler.close()
    root.handlers = before
    logging.getLogger("paletten.mqtt").handlers = []
