"""Centralized exception hierarchy for the heating hub.

All domain and service exceptions inherit from :class:`HubError` so that
the driving loop can contain a single base class for recoverable faults,
yet still match on specific subclasses where narrower handling is needed.

Hierarchy
---------
::

    HubError (base)
    ├── MalformedTelemetryError    (payload unparsable / out of range)
    ├── UnconfiguredLocationError  (reading for a location without control state)
    ├── StorageError               (history append failed)
    ├── DispatchError              (command publish failed after retries)
    │   └── NotConnectedError      (broker session down, fail fast)
    ├── ConnectionLostError        (reconnect ceiling exceeded, fatal)
    └── ConfigurationError         (missing / invalid config, fatal at startup)
"""

from __future__ import annotations


class HubError(Exception):
    """Base exception for all hub errors.

    Parameters
    ----------
    message:
        Human-readable description.
    detail:
        Optional machine-readable context dict attached to the error for
        structured logging.
    """

    fatal: bool = False

    def __init__(self, message: str = "", *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.detail = detail or {}


class MalformedTelemetryError(HubError):
    """Inbound sensor message could not be decoded into a reading."""


class UnconfiguredLocationError(HubError):
    """Reading or control message for a location with no control state."""


class StorageError(HubError):
    """History append failed; the control loop keeps running."""


class DispatchError(HubError):
    """Heater command could not be confirmed as delivered."""


class NotConnectedError(DispatchError):
    """Broker session is down; commands fail fast instead of queuing."""


class ConnectionLostError(HubError):
    """Broker stayed unreachable past the reconnect ceiling."""

    fatal = True


class ConfigurationError(HubError):
    """Missing or invalid configuration."""

    fatal = True
