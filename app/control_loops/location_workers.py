"""
Per-location serial executors.

Each configured location gets a single-thread executor, so work for one
location runs strictly in submission order while different locations run
concurrently and a slow publish for one heater never stalls another.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)


class LocationWorkers:
    def __init__(self, locations: Iterable[str]):
        self._executors: dict[str, ThreadPoolExecutor] = {
            location: ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"location-{location}")
            for location in locations
        }
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self._accepting = True

    def __contains__(self, location: str) -> bool:
        return location in self._executors

    def submit(self, location: str, fn: Callable[..., Any], *args: Any) -> Future | None:
        """Queue ``fn(*args)`` on the location's worker; None once shutting down."""
        executor = self._executors[location]
        with self._lock:
            if not self._accepting:
                logger.warning("Dropping work for %s: shutting down", location)
                return None
            future = executor.submit(fn, *args)
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Unhandled error in location worker: %s", exc, exc_info=exc)

    def shutdown(self, deadline_s: float) -> bool:
        """
        Stop accepting work and wait up to ``deadline_s`` for in-flight work.

        Returns True when everything finished before the deadline.
        """
        with self._lock:
            self._accepting = False
            pending = list(self._pending)

        finished = True
        if pending:
            logger.info("Waiting up to %.1fs for %d in-flight location tasks", deadline_s, len(pending))
            _done, not_done = wait(pending, timeout=deadline_s)
            if not_done:
                finished = False
                logger.error("%d location tasks still running at shutdown deadline", len(not_done))

        for executor in self._executors.values():
            executor.shutdown(wait=False, cancel_futures=True)
        return finished
