import json
from datetime import datetime, timezone

import pytest

from app.domain.exceptions import MalformedTelemetryError
from app.domain.heating import HeaterState
from app.enums import LocationSource
from app.hardware.mqtt.broker_events import MessageReceived
from app.services.hardware.telemetry_ingest_service import TelemetryIngestService

RECEIVED = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def _message(topic: str, payload) -> MessageReceived:
    if not isinstance(payload, bytes):
        payload = json.dumps(payload).encode()
    return MessageReceived(topic=topic, payload=payload, received_at=RECEIVED)


@pytest.fixture()
def coordinator(make_coordinator):
    return make_coordinator(desired=20)


@pytest.fixture()
def ingest(coordinator):
    return TelemetryIngestService(coordinator)


def test_topic_filters(ingest):
    assert ingest.topic_filters() == ["temperature/+", "heating/+/setpoint", "heating/+/auto"]


def test_topic_filters_payload_mode(coordinator):
    service = TelemetryIngestService(coordinator, location_source=LocationSource.PAYLOAD)
    assert service.topic_filters()[0] == "temperature/#"


def test_reading_location_comes_from_topic(ingest, flaky_history):
    ingest.handle_message(_message("temperature/L1", {"temperature": 21, "humidity": 40}))

    reading = flaky_history.readings[0]
    assert reading.location == "L1"
    assert reading.temperature == 21
    assert reading.humidity == 40
    assert reading.timestamp == RECEIVED


def test_payload_timestamp_wins_over_receipt_time(ingest, flaky_history):
    ingest.handle_message(
        _message("temperature/L1", {"temperature": 21, "humidity": 40, "timestamp": "2024-01-15T11:59:30Z"})
    )

    assert flaky_history.readings[0].timestamp == datetime(2024, 1, 15, 11, 59, 30, tzinfo=timezone.utc)


def test_epoch_timestamp_accepted(ingest):
    reading = ingest.parse_reading("temperature/L1", b'{"temperature": 1, "humidity": 2, "timestamp": 0}', RECEIVED)
    assert reading.timestamp == datetime(1970, 1, 1, tzinfo=timezone.utc)


def test_reading_drives_the_heater(ingest, dispatcher):
    ingest.handle_message(_message("temperature/L1", {"temperature": 15, "humidity": 40}))

    assert dispatcher.commands[0].is_active is True


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"\xff\xfe",
        b"[1, 2]",
        b"21",
        {"humidity": 40},
        {"temperature": 21},
        {"temperature": 21.5, "humidity": 40},
        {"temperature": "21", "humidity": 40},
        {"temperature": True, "humidity": 40},
        {"temperature": 150, "humidity": 40},
        {"temperature": 21, "humidity": 101},
        {"temperature": 21, "humidity": -1},
        {"temperature": 21, "humidity": 40, "timestamp": "yesterday"},
    ],
)
def test_malformed_payload_is_rejected(ingest, payload):
    if not isinstance(payload, bytes):
        payload = json.dumps(payload).encode()
    with pytest.raises(MalformedTelemetryError):
        ingest.parse_reading("temperature/L1", payload, RECEIVED)


def test_malformed_message_does_not_affect_next_one(ingest, flaky_history, dispatcher):
    ingest.handle_message(_message("temperature/L1", b"{garbage"))
    ingest.handle_message(_message("temperature/L1", {"temperature": 15, "humidity": 40}))
    ingest.handle_message(_message("temperature/L2", {"temperature": "hot"}))
    ingest.handle_message(_message("temperature/L1", {"temperature": 16, "humidity": 41}))

    assert [r.temperature for r in flaky_history.readings] == [15, 16]
    assert len(dispatcher.commands) == 1
    assert ingest.metrics.malformed == 2
    assert ingest.metrics.readings == 2


def test_unconfigured_location_is_still_stored(ingest, flaky_history, dispatcher):
    ingest.handle_message(_message("temperature/garage", {"temperature": 5, "humidity": 70}))

    assert [r.location for r in flaky_history.readings] == ["garage"]
    assert dispatcher.attempts == []


def test_payload_location_mode(coordinator, flaky_history):
    service = TelemetryIngestService(coordinator, location_source=LocationSource.PAYLOAD)

    service.handle_message(_message("temperature", {"temperature": 20, "humidity": 40, "location": "L1"}))
    service.handle_message(_message("temperature/sensor-7", {"temperature": 20, "humidity": 40}))

    assert [r.location for r in flaky_history.readings] == ["L1"]
    assert service.metrics.malformed == 1


def test_setpoint_topic_updates_desired_temperature(ingest, coordinator):
    ingest.handle_message(_message("heating/L1/setpoint", b"22.5"))

    assert coordinator.get_state("L1").desired_temperature == 22.5


def test_setpoint_accepts_json_object(ingest, coordinator):
    ingest.handle_message(_message("heating/L1/setpoint", {"desired_temperature": 18}))

    assert coordinator.get_state("L1").desired_temperature == 18.0


@pytest.mark.parametrize("payload", [b"warm", b"true", b"500", b"NaN", b'{"desired_temperature": "x"}'])
def test_bad_setpoint_is_ignored(ingest, coordinator, payload):
    ingest.handle_message(_message("heating/L1/setpoint", payload))

    assert coordinator.get_state("L1").desired_temperature == 20.0
    assert ingest.metrics.malformed == 1


def test_auto_topic_toggles_control(ingest, coordinator, dispatcher):
    ingest.handle_message(_message("heating/L1/auto", b"false"))
    ingest.handle_message(_message("temperature/L1", {"temperature": 10, "humidity": 40}))
    assert coordinator.get_state("L1").enabled is False
    assert dispatcher.attempts == []

    ingest.handle_message(_message("heating/L1/auto", b"true"))
    assert coordinator.get_state("L1").enabled is True
    assert coordinator.get_state("L1").current_heater_state is HeaterState.ON


def test_bad_auto_payload_is_ignored(ingest, coordinator):
    ingest.handle_message(_message("heating/L1/auto", b"maybe"))

    assert coordinator.get_state("L1").enabled is True
    assert ingest.metrics.malformed == 1


def test_control_message_for_unknown_location_is_contained(ingest, flaky_history):
    ingest.handle_message(_message("heating/attic/setpoint", b"20"))
    ingest.handle_message(_message("temperature/L1", {"temperature": 20, "humidity": 40}))

    assert len(flaky_history.readings) == 1


def test_unroutable_topic_is_counted(ingest):
    ingest.handle_message(_message("something/else", b"{}"))

    assert ingest.metrics.unroutable == 1


def test_unexpected_errors_never_escape(coordinator):
    class Exploding:
        def submit_reading(self, reading):
            raise RuntimeError("boom")

    service = TelemetryIngestService(Exploding())
    service.handle_message(_message("temperature/L1", {"temperature": 20, "humidity": 40}))

    assert service.metrics.readings == 1
