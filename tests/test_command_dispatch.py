import json
from datetime import datetime, timezone

import pytest

from app.domain.exceptions import DispatchError, NotConnectedError
from app.domain.heating import HeaterCommand
from app.enums import HeaterPayloadFormat
from app.services.hardware.command_dispatch_service import CommandDispatchService

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class StubPublisher:
    """Publisher that raises the queued errors in order, then succeeds."""

    def __init__(self, errors=()):
        self.errors = list(errors)
        self.calls = []

    def publish(self, topic, payload, *, qos=1, retain=False, timeout=None):
        self.calls.append({"topic": topic, "payload": payload, "qos": qos, "retain": retain, "timeout": timeout})
        if self.errors:
            raise self.errors.pop(0)


def _service(publisher, sleeps=None, **kwargs):
    recorded = sleeps if sleeps is not None else []
    return CommandDispatchService(publisher, sleep=recorded.append, **kwargs)


def test_json_command_on_shelly_topic():
    publisher = StubPublisher()
    service = _service(publisher)

    service.dispatch(HeaterCommand(shelly_id="C4402D", is_active=True, timestamp=NOW))

    call = publisher.calls[0]
    assert call["topic"] == "shellies/shelly1-C4402D/relay/0/command"
    assert json.loads(call["payload"]) == {"is_active": True, "timestamp": "2024-01-15T12:00:00+00:00"}
    assert call["qos"] == 1
    assert call["retain"] is True
    assert call["timeout"] == 5.0


def test_shelly_payload_format():
    publisher = StubPublisher()
    service = _service(publisher, payload_format=HeaterPayloadFormat.SHELLY)

    service.dispatch(HeaterCommand(shelly_id="10DB9C", is_active=True, timestamp=NOW))
    service.dispatch(HeaterCommand(shelly_id="10DB9C", is_active=False, timestamp=NOW))

    assert [c["payload"] for c in publisher.calls] == ["on", "off"]


def test_custom_topic_template():
    publisher = StubPublisher()
    service = _service(publisher, topic_template="heaters/{shelly_id}/set")

    service.dispatch(HeaterCommand(shelly_id="H1", is_active=False, timestamp=NOW))

    assert publisher.calls[0]["topic"] == "heaters/H1/set"


def test_transient_failure_is_retried_with_backoff():
    sleeps = []
    publisher = StubPublisher(errors=[DispatchError("timeout"), DispatchError("timeout")])
    service = _service(publisher, sleeps, max_attempts=3, backoff_base_s=0.5, backoff_cap_s=5.0)

    service.dispatch(HeaterCommand(shelly_id="H1", is_active=True, timestamp=NOW))

    assert len(publisher.calls) == 3
    assert sleeps == [0.5, 1.0]
    assert service.metrics.dispatched == 1
    assert service.metrics.retries == 2


def test_gives_up_after_max_attempts():
    sleeps = []
    publisher = StubPublisher(errors=[DispatchError("rc=4")] * 5)
    service = _service(publisher, sleeps, max_attempts=3)

    with pytest.raises(DispatchError) as exc_info:
        service.dispatch(HeaterCommand(shelly_id="H1", is_active=True, timestamp=NOW))

    assert not isinstance(exc_info.value, NotConnectedError)
    assert exc_info.value.detail["attempts"] == 3
    assert len(publisher.calls) == 3
    # No sleep after the final attempt
    assert len(sleeps) == 2
    assert service.metrics.failures == 1


def test_not_connected_fails_fast_without_retry():
    sleeps = []
    publisher = StubPublisher(errors=[NotConnectedError("down")])
    service = _service(publisher, sleeps, max_attempts=5)

    with pytest.raises(NotConnectedError):
        service.dispatch(HeaterCommand(shelly_id="H1", is_active=True, timestamp=NOW))

    assert len(publisher.calls) == 1
    assert sleeps == []


def test_single_attempt_configuration():
    publisher = StubPublisher(errors=[DispatchError("nope")])
    service = _service(publisher, max_attempts=1)

    with pytest.raises(DispatchError):
        service.dispatch(HeaterCommand(shelly_id="H1", is_active=True, timestamp=NOW))
    assert len(publisher.calls) == 1


def test_status_reports_metrics():
    service = _service(StubPublisher())
    service.dispatch(HeaterCommand(shelly_id="H1", is_active=True, timestamp=NOW))

    status = service.get_status()
    assert status["payload_format"] == "json"
    assert status["metrics"] == {"dispatched": 1, "retries": 0, "failures": 0}
