"""Periodic trigger — re-run the bulk repo sync on an interval."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from kubesync.config import SyncOptions
from kubesync.kubernetes.apply import ResourceApplier
from kubesync.sync.forward import repo_sync

logger = logging.getLogger(__name__)


class PeriodicSync:
    """Runs :func:`~kubesync.sync.forward.repo_sync` every *interval* seconds.

    At most one cycle is active at a time.  A trigger that fires while a
    cycle is still running is dropped rather than queued.
    """

    def __init__(
        self,
        options: SyncOptions,
        applier_factory: Callable[[], ResourceApplier],
        interval: float | None = None,
    ):
        self.options = options
        self.applier_factory = applier_factory
        self.interval = options.interval if interval is None else interval
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> bool:
        """Run one sync cycle.

        Returns:
            False if another cycle was already running, True otherwise.
            Cycle failures are logged, not raised.
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Repo sync already in progress, skipping this cycle")
            return False
        try:
            repo_sync(self.options, self.applier_factory())
        except Exception as e:
            logger.error("Periodic repo sync failed: %s", e)
        finally:
            self._lock.release()
        return True

    def start(self) -> None:
        """Start the background loop; the first cycle runs immediately."""
        if self.interval <= 0:
            raise ValueError(f"Sync interval must be positive: {self.interval}")
        if self.running:
            return
        self._stopped.clear()
        self._thread = threading.Thread(target=self._loop, name="kubesync-periodic", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop and wait for the current cycle to finish."""
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until stopped or *timeout* elapses; True if stopped."""
        return self._stopped.wait(timeout)

    def _loop(self) -> None:
        logger.info("Syncing %s every %s seconds", self.options.repo.slug if self.options.repo else "(none)", self.interval)
        while not self._stopped.is_set():
            self.run_once()
            self._stopped.wait(self.interval)
