"""
Background removal of expired session rows.

Expired rows are already invisible to lookups, so the sweep only reclaims
space. It runs on one daemon thread per store and never lets a database error
escape into request handling.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from ormsession.db.repository import SessionRepository
from ormsession.exceptions import SessionPersistenceError

logger = logging.getLogger(__name__)

DEFAULT_GC_INTERVAL = 600.0  # 10 minutes


class SessionGarbageCollector:
    """Periodically deletes rows whose ``expired_at`` has passed."""

    def __init__(
        self,
        repository: SessionRepository,
        now_func: Callable[[], datetime],
        interval: float = DEFAULT_GC_INTERVAL,
    ):
        if interval <= 0:
            raise ValueError("GC interval must be positive")
        self._repository = repository
        self._now_func = now_func
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"session-gc-{self._repository.table_name}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Session GC started for table %s (every %ss)",
            self._repository.table_name,
            self.interval,
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop scheduling sweeps.

        A sweep that is already running is allowed to finish. Pass ``timeout``
        to wait for the thread to exit.
        """
        self._stop_event.set()
        if timeout is not None and self._thread is not None:
            self._thread.join(timeout)
        logger.info("Session GC stopped for table %s", self._repository.table_name)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Unexpected error during session GC sweep")

    def sweep(self) -> int:
        """Run one cleanup pass and return the number of rows removed."""
        now = self._now_func()

        try:
            count = self._repository.count_expired(now)
        except SessionPersistenceError as e:
            # The count is only a shortcut; still try the delete
            logger.error(f"Session GC count failed: {e.__cause__ or e}")
            count = None

        if count == 0:
            return 0

        try:
            deleted = self._repository.delete_expired(now)
        except SessionPersistenceError as e:
            logger.error(f"Session GC delete failed: {e.__cause__ or e}")
            return 0

        if deleted:
            logger.info("Session GC removed %d expired session(s)", deleted)
        return deleted
