#!/usr/bin/env python3
"""
Directory tree watcher demo.

This example demonstrates:
1. Watching a tree that already has content (nothing is reported for it)
2. Creating, modifying, renaming and deleting files and directories
3. Excluding part of the tree

Usage:
    python examples/tree_demo.py

The demo will:
- Create a temporary directory structure
- Start a FileTreeWatcher on it
- Make changes and print the notifications as they arrive
- Clean up when done
"""

import os
import shutil
import sys
import tempfile
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from treewatch import FileTreeWatcher, NotificationListener, WatcherConfig


class PrintingListener(NotificationListener):
    """Prints every notification."""

    def started(self, root):
        print(f"[WATCHER] Watching {root}")

    def path_created(self, root, relative_path, is_directory):
        self._print("CREATED", relative_path, is_directory)

    def path_updated(self, root, relative_path, is_directory):
        self._print("UPDATED", relative_path, is_directory)

    def path_deleted(self, root, relative_path, is_directory):
        self._print("DELETED", relative_path, is_directory)

    def error_occurred(self, root, cause):
        print(f"[WATCHER] Stopped after error: {cause}")

    def _print(self, kind, relative_path, is_directory):
        suffix = "/" if is_directory else ""
        print(f"[LISTENER] {kind}: {relative_path}{suffix}")


def step(message: str):
    print(f"\n[DEMO] {message}")


def main():
    """Run the demo."""
    print("=" * 60)
    print("Directory Tree Watcher Demo")
    print("=" * 60)

    demo_dir = Path(tempfile.mkdtemp(prefix="treewatch_demo_"))
    print(f"\nDemo directory: {demo_dir}")

    # Existing content
    (demo_dir / "docs").mkdir()
    (demo_dir / "docs" / "readme.txt").write_text("Hello, World!")
    (demo_dir / "build").mkdir()

    config = WatcherConfig(event_process_timeout=0.5)
    # Each step waits for the coalescing window to pass
    settle = config.event_process_timeout + 0.5

    try:
        with FileTreeWatcher(demo_dir, ["build"], PrintingListener(), config):
            step("Creating a file...")
            (demo_dir / "docs" / "notes.txt").write_text("Some notes")
            time.sleep(settle)

            step("Modifying readme.txt...")
            readme = demo_dir / "docs" / "readme.txt"
            stat = readme.stat()
            os.utime(readme, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
            time.sleep(settle)

            step("Creating a nested tree in one go...")
            nested = demo_dir / "src" / "pkg"
            nested.mkdir(parents=True)
            (nested / "module.py").write_text("print('hi')")
            time.sleep(settle)

            step("Renaming notes.txt...")
            (demo_dir / "docs" / "notes.txt").rename(demo_dir / "docs" / "todo.txt")
            time.sleep(settle)

            step("Writing into the excluded build directory (no events expected)...")
            (demo_dir / "build" / "output.bin").write_bytes(b"\x00" * 16)
            time.sleep(settle)

            step("Deleting the src tree...")
            shutil.rmtree(demo_dir / "src")
            time.sleep(settle)

        print("\n" + "=" * 60)
        print("Demo completed successfully!")
        print("=" * 60)

    except KeyboardInterrupt:
        print("\n\nInterrupted!")

    finally:
        print(f"\nCleaning up demo directory: {demo_dir}")
        shutil.rmtree(demo_dir, ignore_errors=True)


if __name__ == "__main__":
    main()
