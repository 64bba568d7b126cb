"""Configuration for the tree watcher package."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .exceptions import ConfigurationError


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class WatcherConfig:
    """
    Configuration options for the tree watcher.

    Attributes:
        exclude_patterns: Glob patterns (root-relative) for paths to exclude
        event_process_timeout: Seconds of quiet before pending directories are diffed
        shutdown_timeout: Seconds to wait for the worker thread on shutdown
        poll_interval: Longest single blocking wait on the event queue
        use_polling: Use the stat-based polling observer instead of native events
        polling_interval: Scan interval of the polling observer in seconds
        rescan_interval: Seconds between full reconcile passes over every
            watched directory; None disables them
    """
    exclude_patterns: List[str] = field(default_factory=list)
    event_process_timeout: float = 2.0
    shutdown_timeout: float = 3.0
    poll_interval: float = 0.5
    use_polling: bool = False
    polling_interval: float = 1.0
    rescan_interval: Optional[float] = 60.0

    def validate(self) -> None:
        """
        Check that all durations are usable.

        Raises:
            ConfigurationError: If any duration is not positive
        """
        for name in ("event_process_timeout", "shutdown_timeout", "poll_interval", "polling_interval"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value!r}")
        if self.rescan_interval is not None and self.rescan_interval <= 0:
            raise ConfigurationError(f"rescan_interval must be positive or None, got {self.rescan_interval!r}")

    @classmethod
    def from_env(cls, prefix: str = "TREEWATCH_", environ: Optional[dict] = None) -> "WatcherConfig":
        """
        Build a configuration from environment variables.

        Args:
            prefix: Prefix of the variable names
            environ: Mapping to read instead of os.environ

        Returns:
            Configuration with defaults for unset variables

        Raises:
            ConfigurationError: If a variable holds an unparseable value
        """
        env = os.environ if environ is None else environ
        config = cls()

        excludes = env.get(f"{prefix}EXCLUDE")
        if excludes:
            config.exclude_patterns = [p.strip() for p in excludes.split(",") if p.strip()]

        numeric = {
            "EVENT_TIMEOUT": "event_process_timeout",
            "SHUTDOWN_TIMEOUT": "shutdown_timeout",
            "POLLING_INTERVAL": "polling_interval",
        }
        for suffix, attr in numeric.items():
            raw = env.get(f"{prefix}{suffix}")
            if raw is None:
                continue
            try:
                setattr(config, attr, float(raw))
            except ValueError:
                raise ConfigurationError(f"{prefix}{suffix} is not a number: {raw!r}")

        rescan = env.get(f"{prefix}RESCAN_INTERVAL")
        if rescan is not None:
            try:
                interval = float(rescan)
            except ValueError:
                raise ConfigurationError(f"{prefix}RESCAN_INTERVAL is not a number: {rescan!r}")
            # 0 turns periodic reconciling off
            config.rescan_interval = interval if interval != 0 else None

        polling = env.get(f"{prefix}POLLING")
        if polling is not None:
            config.use_polling = _env_bool(polling)

        config.validate()
        return config
