"""Data models for the tree watcher package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional
import time


class EventType(Enum):
    """Types of change notifications."""
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


class TreeEntry(NamedTuple):
    """A filesystem entry as seen by a listing or tree walk."""
    path: Path
    is_directory: bool
    mtime: int
    is_regular_file: bool = False


@dataclass
class DirectoryItem:
    """
    One entry of a watched directory's snapshot.

    Attributes:
        name: Single path segment of the entry
        is_directory: Whether the entry is a directory
        mtime: Last observed modification time in nanoseconds
        generation: Generation of the owning directory when last seen
    """
    name: str
    is_directory: bool
    mtime: int
    generation: int = 0

    def touch(self, mtime: int) -> None:
        self.mtime = mtime

    def mark_seen(self, generation: int) -> None:
        self.generation = generation


@dataclass
class WatchedDirectory:
    """
    A registered directory, its watch handle and its last snapshot.

    Items are kept in insertion order. An item whose generation differs
    from the directory's current generation was not seen by the latest
    diff pass.
    """
    path: Path
    handle: Any = None
    items: Dict[str, DirectoryItem] = field(default_factory=dict)
    generation: int = 0

    def get_item(self, name: str) -> Optional[DirectoryItem]:
        return self.items.get(name)

    def add_item(self, item: DirectoryItem) -> None:
        """Add an item stamped with the current generation."""
        item.mark_seen(self.generation)
        self.items[item.name] = item

    def remove_item(self, name: str) -> Optional[DirectoryItem]:
        return self.items.pop(name, None)

    def increment_generation(self) -> int:
        self.generation += 1
        return self.generation

    def stale_items(self) -> List[DirectoryItem]:
        """Items not seen during the current generation."""
        return [item for item in self.items.values() if item.generation != self.generation]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class WatchEvent:
    """
    A change notification as delivered to a listener.

    Attributes:
        event_type: CREATED, MODIFIED or DELETED
        root: The watch root
        relative_path: POSIX-style path relative to the root
        is_directory: Whether the entry is a directory
        timestamp: Unix timestamp when the event was emitted
    """
    event_type: EventType
    root: Path
    relative_path: str
    is_directory: bool = False
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.root.is_absolute():
            raise ValueError(f"root must be absolute: {self.root}")
        if Path(self.relative_path).is_absolute():
            raise ValueError(f"relative_path must be relative: {self.relative_path}")

    @property
    def path(self) -> Path:
        """Absolute path of the affected entry."""
        return self.root / self.relative_path

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "root": str(self.root),
            "relative_path": self.relative_path,
            "is_directory": self.is_directory,
            "timestamp": self.timestamp,
        }
