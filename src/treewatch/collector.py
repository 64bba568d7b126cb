"""Worker loop that coalesces watch notifications into diff passes."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import WatcherConfig
from .differ import SnapshotDiffer
from .exceptions import ClosedWatchServiceError
from .watch_service import WatchHandle, WatchService

logger = logging.getLogger(__name__)


class EventCollector:
    """
    Drains the watch service and batches changed directories.

    While nothing is pending the loop blocks until a notification
    arrives. Once something is pending it waits at most
    event_process_timeout for more; when the window passes quietly every
    pending directory is diffed in arrival order and the set is cleared.
    A burst of writes to one directory therefore costs one diff pass.

    Every rescan_interval the collector also diffs every watched
    directory, so notifications lost by the native mechanism are
    eventually reconciled.
    """

    def __init__(
        self,
        service: WatchService,
        differ: SnapshotDiffer,
        running: threading.Event,
        on_error: Callable[[BaseException], None],
        config: WatcherConfig = None,
    ):
        """
        Initialize the collector.

        Args:
            service: Source of directory notifications
            differ: Differ run for each pending directory
            running: Cleared to stop the loop; the collector clears it on failure
            on_error: Called once with the cause of a fatal failure
            config: Watcher configuration
        """
        self.service = service
        self.differ = differ
        self.running = running
        self.on_error = on_error
        self.config = config or WatcherConfig()
        self._pending: Dict[Path, None] = {}
        self._next_reconcile: Optional[float] = None

    @property
    def pending(self) -> List[Path]:
        """Pending directories in insertion order."""
        return list(self._pending)

    def collect(self, handle: WatchHandle) -> None:
        """Mark a handle's directory pending, drain its events and re-arm it."""
        self._pending[handle.path] = None
        count = handle.poll_events()
        handle.reset()
        logger.debug(f"Pending {handle.path} ({count} event(s))")

    def flush(self) -> None:
        """Diff every pending directory, then clear the pending set."""
        if not self._pending:
            return
        pending = list(self._pending)
        logger.debug(f"Processing {len(pending)} pending director{'y' if len(pending) == 1 else 'ies'}")
        self.differ.process(pending)
        self._pending.clear()

    def reconcile(self) -> None:
        """
        Diff every watched directory.

        Recovers changes whose native notifications were lost, such as
        an inotify queue overflow that watchdog discards.
        """
        for path in self.differ.watched_paths():
            self._pending[path] = None
        logger.debug(f"Reconciling {len(self._pending)} directories")
        self.flush()
        self._schedule_reconcile()

    def _schedule_reconcile(self) -> None:
        interval = self.config.rescan_interval
        self._next_reconcile = None if interval is None else time.monotonic() + interval

    def _reconcile_due(self) -> bool:
        return self._next_reconcile is not None and time.monotonic() >= self._next_reconcile

    def _wait_for_next(self) -> Optional[WatchHandle]:
        if self._pending:
            handle = self.service.poll(self.config.event_process_timeout)
            if handle is None and self.running.is_set():
                self.flush()
            return handle
        if self._next_reconcile is None:
            return self.service.take()
        return self.service.poll(max(0.0, self._next_reconcile - time.monotonic()))

    def run(self) -> None:
        """Loop until the running flag is cleared or the service fails."""
        logger.debug("Event collector started")
        self._schedule_reconcile()
        while self.running.is_set():
            try:
                handle = self._wait_for_next()
                if handle is not None:
                    self.collect(handle)
                elif self.running.is_set() and self._reconcile_due():
                    self.reconcile()
            except ClosedWatchServiceError:
                self.running.clear()
            except Exception as e:
                self.running.clear()
                logger.error(f"Event collector stopped: {e}")
                try:
                    self.on_error(e)
                except Exception:
                    logger.exception("Error callback failed")
        logger.debug("Event collector stopped")
