"""
Helpers for constructing paho-mqtt clients.

The hub uses the paho-mqtt 2.x callback API (VERSION2), where
``on_connect``/``on_disconnect`` receive a ``ReasonCode`` and properties.
Sessions are clean: subscriptions do not survive a reconnect and are
re-issued by the connection supervisor.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

import paho.mqtt.client as mqtt


def create_mqtt_client(client_id: str = "", **kwargs: Any) -> mqtt.Client:
    """
    Build an MQTT v3.1.1 client using the VERSION2 callback signatures.

    Args:
        client_id: Optional client identifier.
        kwargs: Extra keyword arguments forwarded to the client constructor.
    """
    client_kwargs: Dict[str, Any] = {
        "callback_api_version": mqtt.CallbackAPIVersion.VERSION2,
        "client_id": client_id or "",
        # Keep MQTT v3.1.1 protocol by default for broker compatibility.
        "protocol": kwargs.pop("protocol", mqtt.MQTTv311),
        "clean_session": kwargs.pop("clean_session", True),
    }
    client_kwargs.update(kwargs)

    client = mqtt.Client(**client_kwargs)
    client.enable_logger(logging.getLogger("paletten.mqtt.paho"))
    return client
