"""Snapshot diffing of pending directories into change notifications."""

import logging
import os
from pathlib import Path
from typing import Iterable, List

from .exclusion import ExcludeFilter
from .exceptions import TransientIoError
from .listener import NotificationListener
from .models import DirectoryItem, EventType, WatchedDirectory
from .registry import WatchRegistry
from .walker import list_directory

logger = logging.getLogger(__name__)


class SnapshotDiffer:
    """
    Turns "directory D changed" into per-entry CREATED/MODIFIED/DELETED.

    Each pass relists a directory and compares it with the stored
    snapshot using the directory's generation counter: entries seen in
    the listing are stamped with the new generation, anything left with
    an older generation is gone. New subdirectories are registered and
    their whole content is reported as created, since native events
    only describe one level.
    """

    def __init__(
        self,
        root: Path,
        registry: WatchRegistry,
        exclude_filter: ExcludeFilter,
        listener: NotificationListener,
    ):
        self.root = root
        self.registry = registry
        self.exclude_filter = exclude_filter
        self.listener = listener
        self.passes = 0

    def relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def should_watch(self, path: Path) -> bool:
        return self.exclude_filter.should_notify(self.relative(path))

    def watched_paths(self) -> List[Path]:
        """Every registered directory, in registration order."""
        return self.registry.paths()

    def process(self, pending: Iterable[Path]) -> None:
        """Run a diff pass for each pending directory, in order."""
        for path in pending:
            self.process_directory(path)

    def process_directory(self, path: Path) -> None:
        watched = self.registry.get(path)
        if watched is None:
            # Already dropped while an ancestor was processed.
            logger.debug(f"Skipping unregistered directory: {path}")
            return

        self.passes += 1
        if not os.path.isdir(path):
            self._report_tree_removed(path)
            return

        try:
            entries = list_directory(path)
        except TransientIoError as e:
            if not os.path.isdir(path):
                self._report_tree_removed(path)
            else:
                logger.warning(f"Skipping diff pass: {e}")
            return

        generation = watched.increment_generation()
        for entry in entries:
            name = entry.path.name
            item = watched.get_item(name)
            if item is not None and item.is_directory != entry.is_directory:
                self._remove_item(watched, item)
                item = None

            if item is None:
                watched.add_item(DirectoryItem(name, entry.is_directory, entry.mtime))
                self._fire(EventType.CREATED, entry.path, entry.is_directory)
                if entry.is_directory:
                    self._register_new_tree(entry.path)
                continue

            if entry.is_regular_file and entry.mtime != item.mtime:
                self._fire(EventType.MODIFIED, entry.path, False)
            item.touch(entry.mtime)
            item.mark_seen(generation)

        for item in watched.stale_items():
            self._remove_item(watched, item)

    def _remove_item(self, watched: WatchedDirectory, item: DirectoryItem) -> None:
        watched.remove_item(item.name)
        path = watched.path / item.name
        if item.is_directory:
            self._report_tree_removed(path)
        self._fire(EventType.DELETED, path, item.is_directory)

    def _report_tree_removed(self, path: Path) -> None:
        """
        Report every entry still known below path as deleted and drop
        the watches, deepest directories first. The directory itself
        is reported by its parent.
        """
        for directory in self.registry.descendants_of(path) + [path]:
            watched = self.registry.cancel_directory(directory)
            if watched is None:
                continue
            for item in watched.items.values():
                self._fire(EventType.DELETED, directory / item.name, item.is_directory)

    def _register_new_tree(self, path: Path) -> None:
        """
        Register a newly discovered directory and everything below it,
        reporting each entry of the fresh snapshots as created.
        """
        stack = [path]
        while stack:
            directory = stack.pop()
            if directory in self.registry or not self.should_watch(directory):
                continue
            watched = self.registry.register_directory(directory)
            if watched is None:
                continue
            for item in list(watched.items.values()):
                child = directory / item.name
                self._fire(EventType.CREATED, child, item.is_directory)
                if item.is_directory:
                    stack.append(child)

    def _fire(self, event_type: EventType, path: Path, is_directory: bool) -> None:
        relative_path = self.relative(path)
        if not self.exclude_filter.should_notify(relative_path):
            return
        if event_type is EventType.CREATED:
            self.listener.path_created(self.root, relative_path, is_directory)
        elif event_type is EventType.MODIFIED:
            self.listener.path_updated(self.root, relative_path, is_directory)
        elif event_type is EventType.DELETED:
            self.listener.path_deleted(self.root, relative_path, is_directory)
