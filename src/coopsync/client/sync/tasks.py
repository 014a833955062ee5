"""Fire-and-forget background tasks.

This module provides:
- BackgroundTasks: Spawns daemon threads and tracks them until they settle
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Tracks fire-and-forget worker threads.

    Callers never wait for a spawned task. wait_idle() exists for shutdown
    paths and tests that need the reconciliations to settle; it must not be
    called from inside a task.

    Usage:
        tasks = BackgroundTasks()
        tasks.spawn("refresh-orders", refresh)
        ...
        tasks.wait_idle(timeout=10.0)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._threads: set[threading.Thread] = set()
        self._spawned = 0
        self._failed = 0

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        with self._lock:
            return len(self._threads)

    @property
    def spawned(self) -> int:
        """Total number of tasks started."""
        with self._lock:
            return self._spawned

    @property
    def failed(self) -> int:
        """Number of tasks that raised."""
        with self._lock:
            return self._failed

    def spawn(
        self,
        name: str,
        target: Callable[[], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> threading.Thread:
        """Run target in a new daemon thread.

        Args:
            name: Thread name.
            target: Work to run.
            on_error: Called with the exception if target raises.

        Returns:
            The started thread.
        """

        def run() -> None:
            try:
                target()
            except Exception as e:
                logger.exception("Background task %s failed", name)
                with self._lock:
                    self._failed += 1
                if on_error:
                    on_error(e)
            finally:
                with self._idle:
                    self._threads.discard(thread)
                    self._idle.notify_all()

        thread = threading.Thread(target=run, name=name, daemon=True)
        with self._lock:
            self._threads.add(thread)
            self._spawned += 1
        thread.start()
        return thread

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until every spawned task has finished.

        Args:
            timeout: Maximum time to wait in seconds (None = forever).

        Returns:
            True if all tasks finished, False on timeout.
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._threads, timeout=timeout)
