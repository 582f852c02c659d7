from infrastructure.logging.audit import AuditLogger
from infrastructure.logging.logging_config import configure_logging

__all__ = ["AuditLogger", "configure_logging"]
