"""Predicate deciding whether a root-relative path is observable."""

import fnmatch
from pathlib import PurePath, PurePosixPath
from typing import Callable, Iterable, List, Union

ExcludePattern = Union[str, Callable[[PurePath], bool]]


def _as_relative(path: Union[str, PurePath]) -> PurePosixPath:
    return PurePosixPath(PurePath(path).as_posix())


def glob_matcher(pattern: str) -> Callable[[PurePath], bool]:
    """
    Build a predicate from a glob pattern.

    The pattern matches when it matches the whole relative path, the
    entry name, or any ancestor directory of the path. ``build`` thus
    excludes everything below ``build/`` and ``*.tmp`` every temp file.
    """
    pattern = pattern.strip("/")

    def matches(path: PurePath) -> bool:
        relative = _as_relative(path)
        if fnmatch.fnmatch(relative.as_posix(), pattern):
            return True
        if fnmatch.fnmatch(relative.name, pattern):
            return True
        for parent in relative.parents:
            if parent == PurePosixPath("."):
                continue
            if fnmatch.fnmatch(parent.as_posix(), pattern) or fnmatch.fnmatch(parent.name, pattern):
                return True
        return False

    return matches


class ExcludeFilter:
    """
    Ordered collection of exclude patterns.

    Used for both decisions the watcher makes about a path: whether a
    directory gets a watch and whether an event is reported.
    """

    def __init__(self, patterns: Iterable[ExcludePattern] = ()):
        self._matchers: List[Callable[[PurePath], bool]] = []
        for pattern in patterns:
            self.add(pattern)

    def add(self, pattern: ExcludePattern) -> None:
        if isinstance(pattern, str):
            self._matchers.append(glob_matcher(pattern))
        elif callable(pattern):
            self._matchers.append(pattern)
        else:
            raise TypeError(f"exclude pattern must be a glob string or callable, got {pattern!r}")

    def should_notify(self, relative_path: Union[str, PurePath]) -> bool:
        """
        Check whether a root-relative path is observable.

        Args:
            relative_path: Path relative to the watch root

        Returns:
            True unless any pattern matches. The root itself is always observable.
        """
        relative = _as_relative(relative_path)
        if relative == PurePosixPath("."):
            return True
        for matcher in self._matchers:
            if matcher(relative):
                return False
        return True

    def __len__(self) -> int:
        return len(self._matchers)
