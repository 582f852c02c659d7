"""
Typed events produced by the connection supervisor.

The driving loop consumes one stream of these; nothing else reaches the
control coordinator from the broker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from app.utils.time import utc_now


@dataclass(frozen=True)
class MessageReceived:
    topic: str
    payload: bytes
    received_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class Connected:
    """Session (re)established and every subscription re-issued."""

    reconnect: bool = False


@dataclass(frozen=True)
class Disconnected:
    reason: str = ""


@dataclass(frozen=True)
class ConnectionFailed:
    """Broker unreachable past the reconnect ceiling; the hub must exit."""

    reason: str
    attempts: int


BrokerEvent = MessageReceived | Connected | Disconnected | ConnectionFailed
