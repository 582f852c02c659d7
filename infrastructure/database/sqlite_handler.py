import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from infrastructure.database.ops.history import HistoryOperations

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"

# journal_mode=WAL lets history lookups read while a location worker appends;
# synchronous=FULL makes a committed append survive power loss.
_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=FULL",
    "PRAGMA temp_store=MEMORY",
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS history (
        timestamp DATETIME NOT NULL,
        location TEXT NOT NULL,
        temperature TINYINT NOT NULL,
        humidity TINYINT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS history_timestamp_index ON history (timestamp)",
    """
    CREATE TABLE IF NOT EXISTS heater_history (
        timestamp DATETIME NOT NULL,
        shelly_id TEXT NOT NULL,
        is_active BOOLEAN NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS heater_history_timestamp_index ON heater_history (timestamp)",
)


class SQLiteDatabaseHandler(HistoryOperations):
    """SQLite access for the history tables, one connection per thread.

    Each location worker appends on its own thread and therefore on its own
    connection. ``:memory:`` gives every connection a separate database, so
    it only works for single-threaded callers.
    """

    def __init__(self, database_path: str, *, busy_timeout_s: float = 5.0) -> None:
        self._database_path = database_path
        self._busy_timeout_s = busy_timeout_s
        self._local = threading.local()
        self._open: list[sqlite3.Connection] = []
        self._open_lock = threading.Lock()

        if database_path != MEMORY_DB:
            folder = Path(database_path).parent
            if not folder.exists():
                folder.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", folder)

    @property
    def database_path(self) -> str:
        return self._database_path

    def init_db(self) -> None:
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        conn: Optional[sqlite3.Connection] = getattr(self._local, "conn", None)
        if conn is not None:
            return conn

        conn = sqlite3.connect(self._database_path, timeout=self._busy_timeout_s, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            for pragma in _PRAGMAS:
                conn.execute(pragma)
        except sqlite3.Error:
            conn.close()
            raise

        self._local.conn = conn
        with self._open_lock:
            self._open.append(conn)
        logger.debug("Opened SQLite connection to %s on %s", self._database_path, threading.current_thread().name)
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Yield this thread's connection; commit on success, roll back on error."""
        conn = self.get_db()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        conn.commit()

    def close_all(self) -> None:
        """Close every connection opened by any thread. Shutdown only."""
        with self._open_lock:
            pending, self._open = self._open, []
        for conn in pending:
            try:
                conn.close()
            except sqlite3.Error as exc:
                logger.warning("Error closing database connection: %s", exc)
        self._local = threading.local()

    def create_tables(self) -> None:
        with self.connection() as db:
            for statement in _SCHEMA:
                db.execute(statement)
        logger.info("History tables ready (%s)", self._database_path)
