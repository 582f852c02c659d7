"""
Service Organization
====================

**hardware/**
  Services that sit on the broker boundary: telemetry ingest (inbound
  sensor and control messages) and command dispatch (outbound heater
  commands).

**container.py**
  ServiceContainer wires configuration, storage, the broker session and
  the control loop together for ``run_hub``.
"""
