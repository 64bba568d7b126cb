"""Notification listener contract and a logging implementation."""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, TextIO

from .models import EventType, WatchEvent

logger = logging.getLogger(__name__)


class NotificationListener(ABC):
    """
    Receives the callbacks of a FileTreeWatcher.

    All callbacks run on the watcher's worker thread, one at a time. A
    slow callback delays the next diff pass; hand long work off to
    another thread. Paths are POSIX-style and relative to the root.
    """

    def started(self, root: Path) -> None:
        """Called once the initial tree walk is done and events flow."""
        pass

    @abstractmethod
    def path_created(self, root: Path, relative_path: str, is_directory: bool) -> None:
        pass

    @abstractmethod
    def path_updated(self, root: Path, relative_path: str, is_directory: bool) -> None:
        pass

    @abstractmethod
    def path_deleted(self, root: Path, relative_path: str, is_directory: bool) -> None:
        pass

    def error_occurred(self, root: Path, cause: BaseException) -> None:
        """Called once when the watcher stops because of a fatal error."""
        pass


class LoggingListener(NotificationListener):
    """
    Logs every notification and optionally writes it as a JSON line.

    Attributes:
        stream: Where JSON lines go; None disables JSON output
        failed: Set once error_occurred has been called
    """

    def __init__(self, stream: Optional[TextIO] = None, level: int = logging.INFO):
        self.stream = stream
        self.level = level
        self.failed = threading.Event()
        self.cause: Optional[BaseException] = None

    def started(self, root: Path) -> None:
        logger.info(f"Watching {root}")

    def path_created(self, root: Path, relative_path: str, is_directory: bool) -> None:
        self._emit(WatchEvent(EventType.CREATED, root, relative_path, is_directory))

    def path_updated(self, root: Path, relative_path: str, is_directory: bool) -> None:
        self._emit(WatchEvent(EventType.MODIFIED, root, relative_path, is_directory))

    def path_deleted(self, root: Path, relative_path: str, is_directory: bool) -> None:
        self._emit(WatchEvent(EventType.DELETED, root, relative_path, is_directory))

    def error_occurred(self, root: Path, cause: BaseException) -> None:
        logger.error(f"Watcher for {root} failed: {cause}")
        self.cause = cause
        self.failed.set()

    def _emit(self, event: WatchEvent) -> None:
        kind = "directory" if event.is_directory else "file"
        logger.log(self.level, f"{event.event_type.value} {kind}: {event.relative_path}")
        if self.stream is not None:
            self.stream.write(json.dumps(event.to_dict()) + "\n")
            self.stream.flush()
