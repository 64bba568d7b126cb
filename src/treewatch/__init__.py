"""
Tree Watcher Package

Recursive directory tree change notification. Watches a whole subtree,
coalesces bursts of native events per directory and diffs directory
snapshots into exact per-entry notifications.

Features:
- Per-entry CREATED, MODIFIED and DELETED notifications
- Synthesized creation events for directories created with content
- Subtree deletion reported entry by entry
- Coalescing window collapsing bursts into one diff pass per directory
- Glob or predicate exclusion of subtrees
- Native observers with a stat-based polling fallback
"""

from .models import (
    EventType,
    TreeEntry,
    DirectoryItem,
    WatchedDirectory,
    WatchEvent,
)

from .config import WatcherConfig

from .exceptions import (
    WatcherError,
    ConfigurationError,
    TransientIoError,
    WatchServiceError,
    FatalWatchServiceError,
    ClosedWatchServiceError,
    WatcherNotRunningError,
    WatcherAlreadyRunningError,
)

from .exclusion import ExcludeFilter, ExcludePattern, glob_matcher
from .walker import list_directory, walk_tree
from .watch_service import WatchService, WatchHandle
from .registry import WatchRegistry
from .listener import NotificationListener, LoggingListener
from .differ import SnapshotDiffer
from .collector import EventCollector
from .tree_watcher import FileTreeWatcher


__all__ = [
    # Models
    "EventType",
    "TreeEntry",
    "DirectoryItem",
    "WatchedDirectory",
    "WatchEvent",
    # Config
    "WatcherConfig",
    # Exceptions
    "WatcherError",
    "ConfigurationError",
    "TransientIoError",
    "WatchServiceError",
    "FatalWatchServiceError",
    "ClosedWatchServiceError",
    "WatcherNotRunningError",
    "WatcherAlreadyRunningError",
    # Components
    "ExcludeFilter",
    "ExcludePattern",
    "glob_matcher",
    "list_directory",
    "walk_tree",
    "WatchService",
    "WatchHandle",
    "WatchRegistry",
    "NotificationListener",
    "LoggingListener",
    "SnapshotDiffer",
    "EventCollector",
    # Main entry point
    "FileTreeWatcher",
]

__version__ = "0.1.0"
