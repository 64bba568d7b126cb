"""Registry of watched directories and their snapshots."""

import logging
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .exceptions import TransientIoError
from .models import DirectoryItem, WatchedDirectory
from .walker import list_directory
from .watch_service import WatchService

logger = logging.getLogger(__name__)


class WatchRegistry:
    """
    Maps directory paths to their WatchedDirectory.

    Not thread-safe: after startup the registry is only touched by the
    watcher's worker thread.
    """

    def __init__(self, service: WatchService):
        """
        Initialize the registry.

        Args:
            service: Watch service that hands out directory subscriptions
        """
        self.service = service
        self._directories: Dict[Path, WatchedDirectory] = {}

    def register_directory(self, path: Path) -> Optional[WatchedDirectory]:
        """
        Subscribe to a directory and take its initial snapshot.

        No events are emitted for the entries found. Registering an
        already registered directory is a no-op.

        Args:
            path: Directory to register

        Returns:
            The WatchedDirectory, or None if the directory vanished
            before it could be listed
        """
        existing = self._directories.get(path)
        if existing is not None:
            return existing

        # Subscribe before listing so nothing slips between the two.
        try:
            handle = self.service.register(path)
        except TransientIoError as e:
            logger.debug(f"Skipping registration of {path}: {e}")
            return None
        try:
            entries = list_directory(path)
        except TransientIoError as e:
            if isinstance(e.__cause__, PermissionError):
                logger.warning(f"Directory dropped from observation: {e}")
            else:
                logger.debug(f"Skipping registration of {path}: {e}")
            self.service.cancel(handle)
            return None

        watched = WatchedDirectory(path, handle)
        for entry in entries:
            watched.add_item(DirectoryItem(entry.path.name, entry.is_directory, entry.mtime))
        self._directories[path] = watched
        return watched

    def cancel_directory(self, path: Path) -> Optional[WatchedDirectory]:
        """
        Cancel a directory's subscription and forget its snapshot.

        Returns:
            The removed WatchedDirectory, or None if it was not registered
        """
        watched = self._directories.pop(path, None)
        if watched is not None and watched.handle is not None:
            self.service.cancel(watched.handle)
        return watched

    def cancel_all(self) -> int:
        """
        Cancel every subscription.

        Returns:
            Number of directories cancelled
        """
        count = 0
        for path in list(self._directories):
            self.cancel_directory(path)
            count += 1
        return count

    def get(self, path: Path) -> Optional[WatchedDirectory]:
        return self._directories.get(path)

    def paths(self) -> List[Path]:
        return list(self._directories)

    def descendants_of(self, path: Path) -> List[Path]:
        """
        Registered directories strictly below a path, deepest first.
        """
        found = [p for p in self._directories if p != path and path in p.parents]
        found.sort(key=lambda p: len(p.parts), reverse=True)
        return found

    def __iter__(self) -> Iterator[WatchedDirectory]:
        return iter(list(self._directories.values()))

    def __len__(self) -> int:
        return len(self._directories)

    def __contains__(self, path: Path) -> bool:
        return path in self._directories
