"""Command-line entry point for the Paletten heating hub.

Exit codes: 0 after a graceful shutdown (SIGINT/SIGTERM), 1 on a fatal
runtime error such as losing the broker past the reconnect ceiling or an
unusable history database, 2 when the configuration is missing or invalid.
"""
from __future__ import annotations

import argparse
import contextlib
import logging
import signal
import sqlite3

from app.config import load_config, load_locations
from app.domain.exceptions import ConfigurationError, HubError
from app.services.container import ServiceContainer
from infrastructure.logging import configure_logging

logger = logging.getLogger("run_hub")

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="paletten-hub", description="MQTT heating controller with SQLite history")
    parser.add_argument("--locations", help="Path to the locations JSON file (overrides PALETTEN_LOCATIONS_FILE)")
    parser.add_argument("--database", help="Path to the SQLite history database (overrides PALETTEN_DATABASE_PATH)")
    parser.add_argument("--log-level", help="Log level (overrides PALETTEN_LOG_LEVEL)")
    args = parser.parse_args(argv)

    try:
        config = load_config()
        if args.locations:
            config.locations_path = args.locations
        if args.database:
            config.database_path = args.database
        if args.log_level:
            config.log_level = args.log_level
        configure_logging(config.log_level, config.log_path, config.mqtt_log_path)
        locations = load_locations(config.locations_path)
    except ConfigurationError as exc:
        # Logging may not be configured yet
        logging.basicConfig(level=logging.INFO)
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    try:
        container = ServiceContainer.build(config, locations)
    except (sqlite3.Error, OSError) as exc:
        logger.critical("Cannot open history database %s: %s", config.database_path, exc)
        return EXIT_RUNTIME_ERROR

    def _signal_handler(signum: int, _frame: object) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        container.runner.request_stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(OSError, ValueError):
            signal.signal(sig, _signal_handler)

    logger.info(
        "Paletten hub starting: broker %s:%s, %d locations",
        config.mqtt_broker_host,
        config.mqtt_broker_port,
        len(locations),
    )
    container.supervisor.start()
    exit_code = EXIT_OK
    try:
        container.runner.run()
    except HubError as exc:
        if not exc.fatal:
            raise
        logger.critical("Fatal: %s", exc)
        exit_code = EXIT_RUNTIME_ERROR
    finally:
        container.shutdown()

    if exit_code == EXIT_OK:
        logger.info("Hub stopped.")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
