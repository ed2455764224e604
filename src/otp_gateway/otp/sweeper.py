"""Cancellable periodic background task used to purge expired records."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Runs *sweep* every *interval* seconds on a daemon thread.

    ``sweep`` returns the number of records it removed.  A failing pass is
    logged and the loop keeps going; only :meth:`stop` ends it.
    """

    def __init__(self, name: str, interval: float, sweep: Callable[[], int]) -> None:
        if interval <= 0:
            raise ValueError(f"sweep interval must be positive, got {interval}")
        self._name = name
        self._interval = interval
        self._sweep = sweep
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name=f"{self._name}-sweeper", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the loop to exit and wait for the thread (idempotent)."""
        self._stopped.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self) -> None:
        # Event.wait returns True as soon as stop() is called
        while not self._stopped.wait(self._interval):
            try:
                removed = self._sweep()
            except Exception:
                logger.exception("%s sweep failed", self._name)
                continue
            if removed:
                logger.debug("%s sweep removed %d expired record(s)", self._name, removed)
