"""
Process-wide logging setup.

Console output plus a size-bounded rotating file so an unattended host never
fills its disk. Broker session logs (``paletten.mqtt``) can additionally go
to their own file.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    level: str = "INFO",
    log_path: str | None = "logs/hub.log",
    mqtt_log_path: str | None = None,
) -> None:
    """Install console and rotating file handlers on the root logger.

    Safe to call more than once; handlers installed by a previous call are
    replaced rather than duplicated.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        if getattr(handler, "_paletten_handler", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console._paletten_handler = True  # type: ignore[attr-defined]
    root.addHandler(console)

    if log_path:
        root.addHandler(_rotating_handler(log_path, formatter))

    mqtt_logger = logging.getLogger("paletten.mqtt")
    for handler in list(mqtt_logger.handlers):
        if getattr(handler, "_paletten_handler", False):
            mqtt_logger.removeHandler(handler)
            handler.close()
    if mqtt_log_path:
        mqtt_logger.addHandler(_rotating_handler(mqtt_log_path, formatter))

    # paho logs every PINGREQ at DEBUG
    logging.getLogger("paletten.mqtt.paho").setLevel(logging.WARNING)


def _rotating_handler(path: str, formatter: logging.Formatter) -> RotatingFileHandler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10MB max per file
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    handler._paletten_handler = True  # type: ignore[attr-defined]
    return handler
