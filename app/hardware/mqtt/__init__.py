from app.hardware.mqtt.broker_events import BrokerEvent, Connected, ConnectionFailed, Disconnected, MessageReceived
from app.hardware.mqtt.client_factory import create_mqtt_client
from app.hardware.mqtt.connection_supervisor import ConnectionSupervisor, HealthStatus

__all__ = [
    "BrokerEvent",
    "Connected",
    "ConnectionFailed",
    "ConnectionSupervisor",
    "Disconnected",
    "HealthStatus",
    "MessageReceived",
    "create_mqtt_client",
]
