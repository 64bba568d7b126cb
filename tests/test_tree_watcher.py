"""End-to-end tests for the tree watcher."""

import os
import shutil
import threading
import time
from pathlib import Path

import pytest

from src.treewatch.config import WatcherConfig
from src.treewatch.exceptions import (
    ConfigurationError,
    WatcherAlreadyRunningError,
    WatcherNotRunningError,
)
from src.treewatch.listener import NotificationListener
from src.treewatch.tree_watcher import FileTreeWatcher
from src.treewatch.watch_service import _RoutingEventHandler


class RecordingListener(NotificationListener):
    """Thread-safe listener recording every callback."""

    def __init__(self):
        self.events = []
        self.started_roots = []
        self.errors = []
        self._lock = threading.Lock()

    def started(self, root):
        self.started_roots.append(root)

    def path_created(self, root, relative_path, is_directory):
        with self._lock:
            self.events.append(("created", relative_path, is_directory))

    def path_updated(self, root, relative_path, is_directory):
        with self._lock:
            self.events.append(("updated", relative_path, is_directory))

    def path_deleted(self, root, relative_path, is_directory):
        with self._lock:
            self.events.append(("deleted", relative_path, is_directory))

    def error_occurred(self, root, cause):
        self.errors.append(cause)

    def of_kind(self, kind):
        with self._lock:
            return sorted(path for k, path, _ in self.events if k == kind)

    def count(self):
        with self._lock:
            return len(self.events)


def wait_for_quiet(listener, expected=None, timeout=15.0, quiet=1.0):
    """
    Wait until the listener stops receiving events.

    With expected set, also wait until at least that many events arrived.
    """
    deadline = time.monotonic() + timeout
    last_count = -1
    last_change = time.monotonic()
    while time.monotonic() < deadline:
        count = listener.count()
        if count != last_count:
            last_count = count
            last_change = time.monotonic()
        elif time.monotonic() - last_change >= quiet:
            if expected is None or count >= expected:
                return
        time.sleep(0.05)


def create_tree(root, top=7, children=5, depth=3):
    """
    Create top directories under root, each expanded into children
    entries per level: two subdirectories and the rest files, with the
    deepest directories holding only files.

    Returns:
        Root-relative POSIX paths of everything created
    """
    created = []
    stack = [(Path(name), 1) for name in (f"dir{i}" for i in range(top))]
    for relative, _ in stack:
        (root / relative).mkdir()
        created.append(relative.as_posix())
    while stack:
        relative, level = stack.pop()
        for i in range(children):
            child = relative / f"item{i}"
            if level < depth and i < 2:
                (root / child).mkdir()
                stack.append((child, level + 1))
            else:
                (root / child).write_text(f"content of {child}")
            created.append(child.as_posix())
    return created


def bump_mtime(path, delta_ns=5_000_000_000):
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + delta_ns))


@pytest.fixture
def config():
    return WatcherConfig(event_process_timeout=0.3, poll_interval=0.1, shutdown_timeout=3.0)


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def make_watcher(tmp_path, listener, config):
    watchers = []

    def factory(exclude_patterns=(), **overrides):
        cfg = config
        if overrides:
            cfg = WatcherConfig(**{**config.__dict__, **overrides})
        watcher = FileTreeWatcher(tmp_path, exclude_patterns, listener, cfg)
        watchers.append(watcher)
        watcher.startup()
        time.sleep(0.3)
        return watcher

    yield factory
    for watcher in watchers:
        watcher.shutdown()


class TestFileTreeWatcherConstruction:
    """Construction and configuration failures."""

    def test_missing_root_raises(self, tmp_path, listener):
        with pytest.raises(ConfigurationError):
            FileTreeWatcher(tmp_path / "missing", listener=listener)

    def test_file_root_raises(self, tmp_path, listener):
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(ConfigurationError):
            FileTreeWatcher(target, listener=listener)

    def test_missing_listener_raises(self, tmp_path):
        with pytest.raises(ConfigurationError):
            FileTreeWatcher(tmp_path)

    def test_invalid_config_raises(self, tmp_path, listener):
        with pytest.raises(ConfigurationError):
            FileTreeWatcher(tmp_path, listener=listener, config=WatcherConfig(event_process_timeout=0))

    def test_root_is_resolved(self, tmp_path, listener):
        (tmp_path / "sub").mkdir()
        watcher = FileTreeWatcher(str(tmp_path / "sub" / ".."), listener=listener)
        assert watcher.root == tmp_path.resolve()
        assert watcher.is_running is False


class TestFileTreeWatcherLifecycle:
    """Startup, shutdown and requests."""

    def test_startup_notifies_started(self, tmp_path, listener, make_watcher):
        watcher = make_watcher()
        assert watcher.is_running is True
        assert listener.started_roots == [tmp_path.resolve()]

    def test_existing_content_is_silent(self, tmp_path, listener, make_watcher):
        create_tree(tmp_path, top=2, children=3, depth=2)
        make_watcher()
        wait_for_quiet(listener, quiet=0.8)
        assert listener.events == []

    def test_startup_twice_raises(self, make_watcher):
        watcher = make_watcher()
        with pytest.raises(WatcherAlreadyRunningError):
            watcher.startup()

    def test_shutdown_stops_and_is_idempotent(self, make_watcher):
        watcher = make_watcher()
        watcher.shutdown()
        watcher.shutdown()
        assert watcher.is_running is False

    def test_shutdown_before_startup(self, tmp_path, listener):
        watcher = FileTreeWatcher(tmp_path, listener=listener)
        watcher.shutdown()
        assert watcher.is_running is False

    def test_no_events_after_shutdown(self, tmp_path, listener, make_watcher):
        watcher = make_watcher()
        watcher.shutdown()

        (tmp_path / "late.txt").write_text("x")
        time.sleep(0.8)

        assert listener.events == []

    def test_context_manager(self, tmp_path, listener, config):
        with FileTreeWatcher(tmp_path, listener=listener, config=config) as watcher:
            assert watcher.is_running is True
        assert watcher.is_running is False

    def test_rescan(self, tmp_path, make_watcher):
        (tmp_path / "sub").mkdir()
        watcher = make_watcher()
        assert watcher.rescan() is True
        assert watcher.rescan("sub") is True
        assert watcher.rescan("missing") is False

    def test_failed_startup_releases_observer(self, tmp_path, listener, config, monkeypatch):
        def broken_walk(root, accept=None):
            raise OSError("I/O error")
            yield

        monkeypatch.setattr("src.treewatch.tree_watcher.walk_tree", broken_walk)
        watcher = FileTreeWatcher(tmp_path, listener=listener, config=config)

        with pytest.raises(OSError):
            watcher.startup()

        assert watcher.is_running is False
        assert watcher._service.is_open is False
        assert not watcher._service._observer.is_alive()
        assert listener.started_roots == []
        watcher.shutdown()

    def test_rescan_when_stopped_raises(self, tmp_path, listener):
        watcher = FileTreeWatcher(tmp_path, listener=listener)
        with pytest.raises(WatcherNotRunningError):
            watcher.rescan()

    def test_listener_failure_is_fatal(self, tmp_path, config):
        class FailingListener(RecordingListener):
            def path_created(self, root, relative_path, is_directory):
                raise RuntimeError("cannot keep up")

        listener = FailingListener()
        watcher = FileTreeWatcher(tmp_path, listener=listener, config=config)
        watcher.startup()
        try:
            (tmp_path / "a.txt").write_text("x")
            deadline = time.monotonic() + 5.0
            while watcher.is_running and time.monotonic() < deadline:
                time.sleep(0.05)

            assert watcher.is_running is False
            assert len(listener.errors) == 1
            assert isinstance(listener.errors[0], RuntimeError)

            (tmp_path / "b.txt").write_text("x")
            time.sleep(0.6)
            assert listener.events == []
            assert len(listener.errors) == 1
        finally:
            watcher.shutdown()


class TestFileTreeWatcherEvents:
    """Change notifications against a real filesystem."""

    def test_file_created(self, tmp_path, listener, make_watcher):
        make_watcher()
        (tmp_path / "new.txt").write_text("x")
        wait_for_quiet(listener, expected=1)
        assert listener.events == [("created", "new.txt", False)]

    def test_file_modified(self, tmp_path, listener, make_watcher):
        target = tmp_path / "a.txt"
        target.write_text("x")
        make_watcher()

        bump_mtime(target)
        wait_for_quiet(listener, expected=1)

        assert listener.events == [("updated", "a.txt", False)]

    def test_file_deleted(self, tmp_path, listener, make_watcher):
        target = tmp_path / "a.txt"
        target.write_text("x")
        make_watcher()

        target.unlink()
        wait_for_quiet(listener, expected=1)

        assert listener.events == [("deleted", "a.txt", False)]

    def test_rename_is_delete_and_create(self, tmp_path, listener, make_watcher):
        (tmp_path / "old.txt").write_text("x")
        make_watcher()

        (tmp_path / "old.txt").rename(tmp_path / "new.txt")
        wait_for_quiet(listener, expected=2)

        assert sorted(listener.events) == [
            ("created", "new.txt", False),
            ("deleted", "old.txt", False),
        ]

    def test_tree_creation(self, tmp_path, listener, make_watcher):
        make_watcher()

        created = create_tree(tmp_path)
        wait_for_quiet(listener, expected=len(created))

        assert listener.of_kind("created") == sorted(created)
        assert listener.of_kind("updated") == []
        assert listener.of_kind("deleted") == []
        assert listener.errors == []

    def test_tree_deletion(self, tmp_path, listener, make_watcher):
        created = create_tree(tmp_path)
        make_watcher()

        for child in list(tmp_path.iterdir()):
            shutil.rmtree(child)
        wait_for_quiet(listener, expected=len(created))

        assert listener.of_kind("deleted") == sorted(created)
        assert listener.of_kind("created") == []
        assert listener.of_kind("updated") == []

    def test_subtree_deletion_stays_inside(self, tmp_path, listener, make_watcher):
        create_tree(tmp_path, top=2, children=5, depth=2)
        make_watcher()

        shutil.rmtree(tmp_path / "dir0")
        wait_for_quiet(listener)

        deleted = listener.of_kind("deleted")
        assert deleted
        assert all(path == "dir0" or path.startswith("dir0/") for path in deleted)
        # 1 top directory, 2 subdirectories with 5 files each, 3 files
        assert len(deleted) == 1 + 2 + 10 + 3

    def test_all_files_updated(self, tmp_path, listener, make_watcher):
        create_tree(tmp_path, top=3, children=5, depth=2)
        make_watcher()

        files = sorted(
            path.relative_to(tmp_path).as_posix()
            for path in tmp_path.rglob("*") if path.is_file()
        )
        for relative in files:
            bump_mtime(tmp_path / relative)
        wait_for_quiet(listener, expected=len(files))

        assert listener.of_kind("updated") == files
        assert listener.of_kind("created") == []
        assert listener.of_kind("deleted") == []

    def test_rapid_writes_coalesce(self, tmp_path, listener, make_watcher):
        target = tmp_path / "busy.txt"
        target.write_text("start")
        watcher = make_watcher()
        passes_before = watcher._collector.differ.passes

        for i in range(1000):
            target.write_text(f"write {i}")
        bump_mtime(target)
        wait_for_quiet(listener, expected=1)

        assert listener.events == [("updated", "busy.txt", False)]
        assert watcher._collector.differ.passes - passes_before == 1

    def test_excluded_paths_never_reported(self, tmp_path, listener, make_watcher):
        (tmp_path / "ignored").mkdir()
        (tmp_path / "ignored" / "old.txt").write_text("x")
        make_watcher(exclude_patterns=["ignored", "*.tmp"])

        (tmp_path / "ignored" / "new.txt").write_text("x")
        bump_mtime(tmp_path / "ignored" / "old.txt")
        (tmp_path / "ignored" / "nested").mkdir()
        (tmp_path / "scratch.tmp").write_text("x")
        (tmp_path / "kept.txt").write_text("x")
        wait_for_quiet(listener, expected=1)

        assert listener.events == [("created", "kept.txt", False)]

    def test_polling_observer(self, tmp_path, listener, make_watcher):
        make_watcher(use_polling=True, polling_interval=0.1)

        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "a.txt").write_text("x")
        wait_for_quiet(listener, expected=2)

        assert listener.of_kind("created") == ["sub", "sub/a.txt"]

    def test_lost_notification_is_reconciled(self, tmp_path, listener, make_watcher, monkeypatch):
        make_watcher(rescan_interval=1.0)

        # Drop native notifications the way an overflowing inotify queue does
        monkeypatch.setattr(_RoutingEventHandler, "on_any_event", lambda self, event: None)
        (tmp_path / "lost.txt").write_text("x")
        (tmp_path / "lost_dir").mkdir()
        time.sleep(0.5)
        monkeypatch.undo()

        wait_for_quiet(listener, expected=2)

        assert sorted(listener.events) == [
            ("created", "lost.txt", False),
            ("created", "lost_dir", True),
        ]

    def test_reconcile_of_unchanged_tree_is_silent(self, tmp_path, listener, make_watcher):
        create_tree(tmp_path, top=2, children=3, depth=2)
        make_watcher(rescan_interval=0.2)

        time.sleep(1.0)

        assert listener.events == []

    def test_snapshot_matches_filesystem_after_quiet(self, tmp_path, listener, make_watcher):
        create_tree(tmp_path, top=2, children=4, depth=2)
        watcher = make_watcher()

        shutil.rmtree(tmp_path / "dir1")
        (tmp_path / "dir0" / "fresh").mkdir()
        (tmp_path / "dir0" / "fresh" / "f.txt").write_text("x")
        bump_mtime(tmp_path / "dir0" / "item3")
        wait_for_quiet(listener, expected=1)

        root = tmp_path.resolve()
        expected_dirs = {root}
        expected_dirs.update(p for p in root.rglob("*") if p.is_dir())
        assert set(watcher._registry.paths()) == expected_dirs
        for watched in watcher._registry:
            assert set(watched.items) == {p.name for p in watched.path.iterdir()}
        assert listener.errors == []
