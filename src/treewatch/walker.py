"""Directory listing and depth-first tree traversal."""

import logging
import os
import stat
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .exceptions import TransientIoError
from .models import TreeEntry

logger = logging.getLogger(__name__)


def list_directory(path: Path) -> List[TreeEntry]:
    """
    List the direct entries of a directory.

    Symbolic links are reported as entries and never followed. Entries
    that disappear between the listing and their stat are left out.

    Args:
        path: Directory to list

    Returns:
        Entries in the order the filesystem returned them

    Raises:
        TransientIoError: If the directory vanished or cannot be read
    """
    entries = []
    try:
        with os.scandir(path) as it:
            for entry in it:
                try:
                    info = entry.stat(follow_symlinks=False)
                except FileNotFoundError:
                    continue
                entries.append(TreeEntry(
                    Path(entry.path),
                    stat.S_ISDIR(info.st_mode),
                    info.st_mtime_ns,
                    stat.S_ISREG(info.st_mode),
                ))
    except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
        raise TransientIoError(f"Cannot list {path}: {e}") from e
    return entries


def walk_tree(
    root: Path,
    accept: Optional[Callable[[Path], bool]] = None,
) -> Iterator[TreeEntry]:
    """
    Lazily walk a tree depth-first, yielding every entry below root.

    Uses an explicit stack, so deeply nested trees do not hit the
    recursion limit. A directory is yielded before its contents.

    Args:
        root: Directory to start from (not itself yielded)
        accept: Optional predicate; rejected entries are neither yielded
            nor descended into

    Yields:
        TreeEntry for each accepted file and directory
    """
    stack = [root]
    while stack:
        directory = stack.pop()
        try:
            entries = list_directory(directory)
        except TransientIoError as e:
            logger.debug(f"Skipping directory during walk: {e}")
            continue

        subdirectories = []
        for entry in entries:
            if accept is not None and not accept(entry.path):
                continue
            yield entry
            if entry.is_directory:
                subdirectories.append(entry.path)

        stack.extend(reversed(subdirectories))
