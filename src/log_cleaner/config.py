"""Configuration management for the log cleaner service."""

from __future__ import annotations

import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

import yaml

logger = logging.getLogger("log-cleaner")

T = TypeVar("T")

# Recognized keys, named as they appear in the config file
ROOT_DIRECTORY_KEY = "RootLogSearchDirectory"
DAYS_TO_KEEP_KEY = "DaysToKeep"
CHECK_INTERVAL_KEY = "CheckIntervalMinutes"
LOW_DISK_THRESHOLD_KEY = "LowDiskThresholdMB"

DEFAULT_DAYS_TO_KEEP = 7
DEFAULT_CHECK_INTERVAL_MINUTES = 15
DEFAULT_LOW_DISK_THRESHOLD_MB = 1000

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

_WINDOWS_VAR = re.compile(r"%([^%]+)%")


def expand_path(value: str) -> Path:
    """Expand ``%VAR%``, ``$VAR`` and ``~`` in a configured path."""
    # os.path.expandvars only understands %VAR% on Windows
    expanded = _WINDOWS_VAR.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    return Path(os.path.expanduser(os.path.expandvars(expanded)))


def default_root_directory() -> Path:
    """Get the built-in root log directory for this platform."""
    if sys.platform == "win32":
        return expand_path(r"%SystemDrive%\inetpub\logs")
    return Path("/inetpub/logs")


@dataclass(frozen=True)
class ConfigRead(Generic[T]):
    """Result of reading one key: the value and whether it fell back to the default."""

    value: T
    defaulted: bool


@dataclass(frozen=True)
class ConfigSnapshot:
    """Immutable sweep parameters for a single cycle."""

    root_directory: Path
    retention_days: int = DEFAULT_DAYS_TO_KEEP
    check_interval_minutes: int = DEFAULT_CHECK_INTERVAL_MINUTES
    low_disk_threshold_mb: int = DEFAULT_LOW_DISK_THRESHOLD_MB

    # Keys that fell back to their built-in default while building this snapshot
    defaulted: frozenset[str] = field(default_factory=frozenset)


def _parse_int(raw: Any, minimum: int) -> int | None:
    """Parse an integer setting, rejecting booleans, floats and out-of-range values."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        try:
            value = int(raw.strip())
        except ValueError:
            return None
    else:
        return None
    return value if value >= minimum else None


def _parse_path(raw: Any) -> Path | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    return expand_path(raw.strip())


class ConfigSource:
    """Flat key/value settings backed by a YAML file.

    The file is re-read on every call, so edits take effect on the next
    sweep cycle without restarting the service. A missing, unreadable or
    malformed file behaves like an empty mapping.
    """

    def __init__(self, config_path: Path | None = None) -> None:
        """Initialize the config source.

        Args:
            config_path: Path to config file. Uses default if None.

        """
        self.config_path = config_path if config_path is not None else self.get_config_path()

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the default configuration file path."""
        return Path.home() / ".config/log-cleaner/config.yaml"

    def read_all(self) -> dict[str, Any]:
        """Read the whole settings mapping.

        Returns:
            Parsed mapping, or an empty dict if the file is absent or invalid.

        """
        try:
            with self.config_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            logger.debug("Unable to read config %s: %s", self.config_path, e)
            return {}

        return data if isinstance(data, dict) else {}

    def _read(
        self,
        data: dict[str, Any],
        key: str,
        parse: Callable[[Any], T | None],
        default: T,
    ) -> ConfigRead[T]:
        value = parse(data[key]) if key in data else None
        if value is None:
            if key in data:
                logger.debug("Invalid value for %s: %r, using default %s", key, data[key], default)
            return ConfigRead(default, defaulted=True)
        return ConfigRead(value, defaulted=False)

    def read_root_directory(self, data: dict[str, Any] | None = None) -> ConfigRead[Path]:
        """Read the root log search directory."""
        data = self.read_all() if data is None else data
        return self._read(data, ROOT_DIRECTORY_KEY, _parse_path, default_root_directory())

    def read_days_to_keep(self, data: dict[str, Any] | None = None) -> ConfigRead[int]:
        """Read the number of days a log may go unwritten before deletion."""
        data = self.read_all() if data is None else data
        return self._read(data, DAYS_TO_KEEP_KEY, lambda raw: _parse_int(raw, 0), DEFAULT_DAYS_TO_KEEP)

    def read_check_interval(self, data: dict[str, Any] | None = None) -> ConfigRead[int]:
        """Read the sweep interval in minutes."""
        data = self.read_all() if data is None else data
        return self._read(
            data, CHECK_INTERVAL_KEY, lambda raw: _parse_int(raw, 1), DEFAULT_CHECK_INTERVAL_MINUTES
        )

    def read_low_disk_threshold(self, data: dict[str, Any] | None = None) -> ConfigRead[int]:
        """Read the free-space threshold (MB) below which emergency eviction starts."""
        data = self.read_all() if data is None else data
        return self._read(
            data, LOW_DISK_THRESHOLD_KEY, lambda raw: _parse_int(raw, 0), DEFAULT_LOW_DISK_THRESHOLD_MB
        )

    def snapshot(self) -> ConfigSnapshot:
        """Build a fresh snapshot, defaulting each field independently.

        Returns:
            Snapshot for one sweep cycle.

        """
        data = self.read_all()
        reads = {
            ROOT_DIRECTORY_KEY: self.read_root_directory(data),
            DAYS_TO_KEEP_KEY: self.read_days_to_keep(data),
            CHECK_INTERVAL_KEY: self.read_check_interval(data),
            LOW_DISK_THRESHOLD_KEY: self.read_low_disk_threshold(data),
        }
        defaulted = frozenset(key for key, read in reads.items() if read.defaulted)
        if defaulted:
            logger.debug("Using defaults for: %s", ", ".join(sorted(defaulted)))

        return ConfigSnapshot(
            root_directory=reads[ROOT_DIRECTORY_KEY].value,
            retention_days=reads[DAYS_TO_KEEP_KEY].value,
            check_interval_minutes=reads[CHECK_INTERVAL_KEY].value,
            low_disk_threshold_mb=reads[LOW_DISK_THRESHOLD_KEY].value,
            defaulted=defaulted,
        )

    def save_defaults(self) -> None:
        """Write a configuration file populated with the built-in defaults."""
        # Ensure directory exists
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        settings = ServiceSettings()
        data = {
            ROOT_DIRECTORY_KEY: str(default_root_directory()),
            DAYS_TO_KEEP_KEY: DEFAULT_DAYS_TO_KEEP,
            CHECK_INTERVAL_KEY: DEFAULT_CHECK_INTERVAL_MINUTES,
            LOW_DISK_THRESHOLD_KEY: DEFAULT_LOW_DISK_THRESHOLD_MB,
            "logging": {
                "file": str(settings.log_file),
                "level": settings.log_level,
            },
        }

        with self.config_path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


@dataclass
class ServiceSettings:
    """Settings read once when the service starts."""

    log_file: Path = field(
        default_factory=lambda: Path.home() / ".local/state/log-cleaner/log-cleaner.log"
    )
    log_level: str = "INFO"

    @classmethod
    def load(cls, source: ConfigSource) -> ServiceSettings:
        """Load service settings from the ``logging`` section of the config.

        Args:
            source: Config source to read from.

        Returns:
            Loaded settings.

        """
        settings = cls()
        logging_cfg = source.read_all().get("logging")
        if not isinstance(logging_cfg, dict):
            return settings

        if "file" in logging_cfg:
            settings.log_file = expand_path(str(logging_cfg["file"]))
        if "level" in logging_cfg:
            settings.log_level = str(logging_cfg["level"]).upper()

        return settings
