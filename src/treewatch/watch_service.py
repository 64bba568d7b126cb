"""Per-directory watch subscriptions on top of the watchdog library."""

import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from watchdog.events import (
    EVENT_TYPE_CLOSED_NO_WRITE,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_OPENED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from .config import WatcherConfig
from .exceptions import (
    ClosedWatchServiceError,
    FatalWatchServiceError,
    TransientIoError,
)

logger = logging.getLogger(__name__)

# Access-only events leave directory listings untouched.
_IGNORED_EVENT_TYPES = frozenset({EVENT_TYPE_OPENED, EVENT_TYPE_CLOSED_NO_WRITE})

_WAKEUP = object()
_CLOSED = object()


class WatchHandle:
    """
    Subscription for a single directory, modelled on a watch key.

    A handle is queued on the service when its directory changes and
    stays signalled until the consumer re-arms it with reset(). Events
    arriving in between only bump the pending event count.
    """

    def __init__(self, service: "WatchService", path: Path):
        self.service = service
        self.path = path
        self.valid = True
        self._signalled = False
        self._events = 0

    def poll_events(self) -> int:
        """Drain and return the number of events since the last drain."""
        with self.service._lock:
            count = self._events
            self._events = 0
            return count

    def reset(self) -> bool:
        """
        Re-arm the handle.

        Returns:
            False if the handle was cancelled
        """
        return self.service._reset(self)

    def cancel(self) -> None:
        self.service.cancel(self)

    def __repr__(self) -> str:
        return f"WatchHandle({str(self.path)!r}, valid={self.valid})"


def affected_directories(event: FileSystemEvent) -> List[Path]:
    """
    Work out which directory listings a raw watchdog event touches.

    A created, deleted, modified or moved entry changes its parent's
    listing. A modified directory is itself the changed listing. A
    deleted directory also signals itself so its own snapshot is
    reconciled.
    """
    src = Path(os.fsdecode(event.src_path))
    if event.is_directory and event.event_type == EVENT_TYPE_MODIFIED:
        return [src]

    directories = [src.parent]
    if event.is_directory and event.event_type == EVENT_TYPE_DELETED:
        directories.append(src)
    dest_path = getattr(event, "dest_path", "")
    if dest_path:
        dest_parent = Path(os.fsdecode(dest_path)).parent
        if dest_parent not in directories:
            directories.append(dest_parent)
    return directories


class _RoutingEventHandler(FileSystemEventHandler):
    """Forwards watchdog events to the directory subscriptions they affect."""

    def __init__(self, service: "WatchService"):
        super().__init__()
        self.service = service

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in _IGNORED_EVENT_TYPES:
            return
        for directory in affected_directories(event):
            self.service.signal(directory)


class WatchService:
    """
    Native change notification for a directory tree.

    One recursive watchdog schedule covers the whole root; events are
    routed to the per-directory handles created by register(). Events
    for directories without a handle are dropped. With use_polling the
    stat-based PollingObserver replaces the platform observer.

    register(), cancel() and signal() may be called from any thread.
    poll() and take() belong to a single consumer.
    """

    def __init__(self, root: Path, config: Optional[WatcherConfig] = None):
        self.root = root
        self.config = config or WatcherConfig()
        self._handles: Dict[Path, WatchHandle] = {}
        self._queue: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._observer = None
        self._closed = False

    def open(self) -> None:
        """
        Start the observer for the root.

        Raises:
            FatalWatchServiceError: If the platform refuses the watch
        """
        if self.config.use_polling:
            observer = PollingObserver(timeout=self.config.polling_interval)
        else:
            observer = Observer()
        try:
            observer.schedule(_RoutingEventHandler(self), str(self.root), recursive=True)
            observer.start()
        except OSError as e:
            raise FatalWatchServiceError(f"Unable to watch {self.root}: {e}") from e
        self._observer = observer
        logger.debug(f"Watch service opened for {self.root} using {type(observer).__name__}")

    @property
    def is_open(self) -> bool:
        return self._observer is not None and not self._closed

    def register(self, path: Path) -> WatchHandle:
        """
        Subscribe to changes of a directory's listing.

        Args:
            path: Directory to subscribe

        Returns:
            The directory's handle; the existing one if already subscribed

        Raises:
            ClosedWatchServiceError: If the service is closed
            TransientIoError: If the path is not an existing directory
        """
        with self._lock:
            if self._closed:
                raise ClosedWatchServiceError("Watch service is closed")
            handle = self._handles.get(path)
            if handle is not None:
                return handle
            if not os.path.isdir(path):
                raise TransientIoError(f"Not a directory: {path}")
            handle = WatchHandle(self, path)
            self._handles[path] = handle
            return handle

    def cancel(self, handle: WatchHandle) -> None:
        with self._lock:
            handle.valid = False
            if self._handles.get(handle.path) is handle:
                del self._handles[handle.path]

    def signal(self, path: Path) -> bool:
        """
        Record a change in a directory and queue its handle.

        Also used to force a rescan, which is how lost-event overflow
        is handled: the next diff pass relists the whole directory.

        Returns:
            True if the directory is subscribed
        """
        with self._lock:
            handle = self._handles.get(path)
            if handle is None or not handle.valid:
                return False
            handle._events += 1
            if not handle._signalled:
                handle._signalled = True
                self._queue.put(handle)
            return True

    def _reset(self, handle: WatchHandle) -> bool:
        with self._lock:
            if not handle.valid:
                return False
            if handle._events:
                self._queue.put(handle)
            else:
                handle._signalled = False
            return True

    def poll(self, timeout: Optional[float] = None) -> Optional[WatchHandle]:
        """
        Wait for the next signalled handle.

        Args:
            timeout: Seconds to wait; None waits until a handle or wakeup arrives

        Returns:
            The next handle, or None on timeout or wakeup()

        Raises:
            ClosedWatchServiceError: If the service is or becomes closed
            FatalWatchServiceError: If the observer thread died
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self._closed:
                raise ClosedWatchServiceError("Watch service is closed")

            wait = self.config.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                wait = min(wait, remaining)

            try:
                item = self._queue.get(timeout=wait)
            except queue.Empty:
                self._check_alive()
                continue

            if item is _WAKEUP:
                return None
            if item is _CLOSED:
                raise ClosedWatchServiceError("Watch service is closed")
            if item.valid:
                return item

    def take(self) -> Optional[WatchHandle]:
        """Wait without a deadline for the next handle."""
        return self.poll(None)

    def wakeup(self) -> None:
        """Make a blocked poll() return None."""
        self._queue.put(_WAKEUP)

    def _check_alive(self) -> None:
        if self._observer is None or self._closed:
            return
        if not self._observer.is_alive():
            raise FatalWatchServiceError(f"Watch observer for {self.root} stopped unexpectedly")
        # An emitter dies on errors such as inotify watch exhaustion (ENOSPC)
        # or when the root itself goes away.
        for emitter in self._observer.emitters:
            if not emitter.is_alive():
                raise FatalWatchServiceError(f"Watch emitter for {emitter.watch.path} stopped unexpectedly")

    def close(self) -> None:
        """Stop the observer and invalidate all handles."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for handle in self._handles.values():
                handle.valid = False
            self._handles.clear()
        self._queue.put(_CLOSED)

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            logger.debug(f"Watch service closed for {self.root}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, path: Path) -> bool:
        with self._lock:
            return path in self._handles
