"""
CLI for watching a directory tree.

Usage:
    treewatch watch /path/to/folder --exclude .git "*.tmp"
    treewatch watch /path/to/folder --json --timeout 0.5
    treewatch scan /path/to/folder --exclude node_modules
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import WatcherConfig
from .exceptions import ConfigurationError, WatcherError
from .exclusion import ExcludeFilter
from .listener import LoggingListener
from .tree_watcher import FileTreeWatcher
from .walker import walk_tree

logger = logging.getLogger("treewatch.cli")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def build_config(args) -> WatcherConfig:
    """Environment configuration with command-line flags applied on top."""
    config = WatcherConfig.from_env()
    if args.timeout is not None:
        config.event_process_timeout = args.timeout
    if args.polling:
        config.use_polling = True
    if args.polling_interval is not None:
        config.polling_interval = args.polling_interval
    if args.rescan_interval is not None:
        config.rescan_interval = args.rescan_interval or None
    config.validate()
    return config


def cmd_watch(args) -> int:
    """Watch a tree and report changes until interrupted."""
    config = build_config(args)
    listener = LoggingListener(stream=sys.stdout if args.json else None)
    watcher = FileTreeWatcher(args.root, args.exclude, listener, config)

    shutdown = GracefulShutdown()
    with watcher:
        logger.info("Press Ctrl+C to stop")
        while not shutdown.should_exit and watcher.is_running:
            listener.failed.wait(timeout=0.5)

    if listener.failed.is_set():
        logger.error(f"Watcher stopped after an error: {listener.cause}")
        return 1
    logger.info("Watcher stopped")
    return 0


def cmd_scan(args) -> int:
    """Print every observable entry of a tree once."""
    root = Path(args.root).resolve()
    if not root.is_dir():
        raise ConfigurationError(f"Watch root is not an existing directory: {root}")

    exclude_filter = ExcludeFilter(WatcherConfig.from_env().exclude_patterns + list(args.exclude))

    def accept(path: Path) -> bool:
        return exclude_filter.should_notify(path.relative_to(root))

    count = 0
    for entry in walk_tree(root, accept):
        suffix = "/" if entry.is_directory else ""
        print(f"{entry.path.relative_to(root).as_posix()}{suffix}")
        count += 1
    logger.info(f"{count} entries under {root}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="treewatch",
        description="Recursive directory tree change notification",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser("watch", help="Watch a directory tree")
    watch_parser.add_argument("root", help="Root directory to watch")
    watch_parser.add_argument("--exclude", nargs="*", default=[], help="Glob patterns of root-relative paths to exclude")
    watch_parser.add_argument("--timeout", type=float, default=None, help="Coalescing window in seconds (default: 2)")
    watch_parser.add_argument("--polling", action="store_true", help="Use stat-based polling instead of native events")
    watch_parser.add_argument("--polling-interval", type=float, default=None, help="Polling interval in seconds")
    watch_parser.add_argument("--rescan-interval", type=float, default=None, help="Seconds between full reconcile passes, 0 disables (default: 60)")
    watch_parser.add_argument("--json", action="store_true", help="Write events to stdout as JSON lines")
    watch_parser.set_defaults(func=cmd_watch)

    scan_parser = subparsers.add_parser("scan", help="List the observable entries of a tree")
    scan_parser.add_argument("root", help="Root directory to scan")
    scan_parser.add_argument("--exclude", nargs="*", default=[], help="Glob patterns of root-relative paths to exclude")
    scan_parser.set_defaults(func=cmd_scan)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        return args.func(args)
    except WatcherError as e:
        logger.error(str(e))
        return 2
