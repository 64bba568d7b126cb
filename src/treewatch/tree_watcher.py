"""Recursive directory tree watcher orchestrator."""

import logging
import threading
from pathlib import Path
from typing import Iterable, Optional, Union

from .collector import EventCollector
from .config import WatcherConfig
from .differ import SnapshotDiffer
from .exclusion import ExcludeFilter, ExcludePattern
from .exceptions import (
    ConfigurationError,
    WatcherAlreadyRunningError,
    WatcherNotRunningError,
)
from .listener import NotificationListener
from .registry import WatchRegistry
from .walker import walk_tree
from .watch_service import WatchService

logger = logging.getLogger(__name__)


class FileTreeWatcher:
    """
    Watches a whole directory tree and reports per-entry changes.

    startup() walks the tree on the calling thread and registers every
    accepted directory without reporting existing content. A single
    worker thread then owns the registry: it collects notifications,
    diffs changed directories and calls the listener.
    """

    def __init__(
        self,
        root: Union[str, Path],
        exclude_patterns: Iterable[ExcludePattern] = (),
        listener: Optional[NotificationListener] = None,
        config: Optional[WatcherConfig] = None,
    ):
        """
        Initialize the watcher.

        Args:
            root: Directory whose subtree is watched
            exclude_patterns: Glob strings or predicates over root-relative paths
            listener: Receiver of the change notifications
            config: Watcher configuration

        Raises:
            ConfigurationError: If root is not an existing directory or
                no listener is given
        """
        self.config = config or WatcherConfig()
        self.config.validate()

        root = Path(root)
        if not root.is_dir():
            raise ConfigurationError(f"Watch root is not an existing directory: {root}")
        if listener is None:
            raise ConfigurationError("A notification listener is required")

        self._root = root.resolve()
        self.listener = listener
        self.exclude_filter = ExcludeFilter(self.config.exclude_patterns)
        for pattern in exclude_patterns:
            self.exclude_filter.add(pattern)

        self._service: Optional[WatchService] = None
        self._registry: Optional[WatchRegistry] = None
        self._collector: Optional[EventCollector] = None
        self._worker: Optional[threading.Thread] = None
        self._running = threading.Event()
        self._started = False
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    def startup(self) -> None:
        """
        Start watching.

        Raises:
            WatcherAlreadyRunningError: If startup() was already called
            FatalWatchServiceError: If the native watch cannot be set up
        """
        with self._lock:
            if self._started:
                raise WatcherAlreadyRunningError(f"Watcher for {self._root} already started")
            self._started = True

        self._service = WatchService(self._root, self.config)
        self._service.open()
        self._running.set()

        self._registry = WatchRegistry(self._service)
        try:
            self._walk_tree_and_register()
        except Exception:
            self._running.clear()
            self._stopped = True
            self._service.close()
            raise

        differ = SnapshotDiffer(self._root, self._registry, self.exclude_filter, self.listener)
        self._collector = EventCollector(
            self._service,
            differ,
            self._running,
            self._on_fatal_error,
            self.config,
        )
        self._worker = threading.Thread(
            target=self._collector.run,
            name=f"FileTreeWatcher-{self._root.name or 'root'}",
            daemon=True,
        )
        self._worker.start()
        logger.info(f"Watching {self._root} ({len(self._registry)} directories)")
        self.listener.started(self._root)

    def _walk_tree_and_register(self) -> None:
        def accept(path: Path) -> bool:
            return self.exclude_filter.should_notify(path.relative_to(self._root))

        self._registry.register_directory(self._root)
        for entry in walk_tree(self._root, accept):
            if entry.is_directory:
                self._registry.register_directory(entry.path)

    def _on_fatal_error(self, cause: BaseException) -> None:
        self.listener.error_occurred(self._root, cause)

    def rescan(self, relative_path: str = ".") -> bool:
        """
        Ask the worker to diff a registered directory.

        The request travels through the watch service like any native
        notification, so the registry stays confined to the worker.

        Args:
            relative_path: Directory relative to the root

        Returns:
            True if the directory is watched

        Raises:
            WatcherNotRunningError: If the watcher is not running
        """
        if not self.is_running:
            raise WatcherNotRunningError(f"Watcher for {self._root} is not running")
        path = self._root if relative_path in ("", ".") else self._root / relative_path
        return self._service.signal(path)

    def shutdown(self) -> None:
        """
        Stop watching and release all watches.

        Never raises; problems during teardown are logged.
        """
        self._running.clear()
        with self._lock:
            if self._service is None or self._stopped:
                return
            self._stopped = True

        try:
            self._service.wakeup()
        except Exception as e:
            logger.warning(f"Unable to wake worker: {e}")

        worker_alive = False
        if self._worker is not None and self._worker is not threading.current_thread():
            self._worker.join(timeout=self.config.shutdown_timeout)
            worker_alive = self._worker.is_alive()
            if worker_alive:
                logger.warning(f"Worker for {self._root} did not terminate within {self.config.shutdown_timeout}s")

        # A worker still inside a diff pass owns the registry; closing the
        # service below invalidates its handles instead.
        if self._registry is not None and not worker_alive:
            try:
                count = self._registry.cancel_all()
                logger.debug(f"Cancelled {count} watch(es)")
            except Exception as e:
                logger.warning(f"Error cancelling watches: {e}")

        try:
            self._service.close()
        except Exception as e:
            logger.warning(f"Error closing watch service: {e}")

        logger.info(f"Stopped watching {self._root}")

    def __enter__(self):
        self.startup()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
