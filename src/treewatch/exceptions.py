"""Custom exceptions for the tree watcher package."""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class ConfigurationError(WatcherError):
    """Watch root or configuration is invalid."""
    pass


class TransientIoError(WatcherError):
    """Directory vanished or became unreadable between discovery and listing."""
    pass


class WatchServiceError(WatcherError):
    """Error related to the native watch service."""
    pass


class FatalWatchServiceError(WatchServiceError):
    """Native watch mechanism failed and cannot recover."""
    pass


class ClosedWatchServiceError(WatchServiceError):
    """Watch service has been closed."""
    pass


class WatcherNotRunningError(WatcherError):
    """Watcher is not running."""
    pass


class WatcherAlreadyRunningError(WatcherError):
    """Watcher is already running."""
    pass
