"""Sweep a log directory tree and delete stale or excess log files."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .config import ConfigSnapshot
    from .volume import VolumeSpaceProbe

LOG_FILE_PATTERN = "*.log"

_EPOCH = datetime.fromtimestamp(0, UTC)


class DeletionOutcome(Enum):
    """Result of evaluating one candidate file."""

    DELETED = "deleted"
    SKIPPED_NOT_ELIGIBLE = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class CandidateFile:
    """A log file found under the root directory.

    Timestamps are read from the filesystem on every access.
    """

    path: Path

    def exists(self) -> bool:
        try:
            return self.path.is_file()
        except OSError:
            return False

    @property
    def last_write(self) -> datetime:
        return datetime.fromtimestamp(self.path.stat().st_mtime, UTC)

    @property
    def last_access(self) -> datetime:
        return datetime.fromtimestamp(self.path.stat().st_atime, UTC)


def _access_order_key(candidate: CandidateFile) -> datetime:
    # Unreadable entries sort first and are skipped when processed
    try:
        return candidate.last_access
    except OSError:
        return _EPOCH


class _DiskPressure:
    """Low-disk check for one sweep cycle, re-evaluated on every call."""

    def __init__(self, sweeper: RetentionSweeper, snapshot: ConfigSnapshot) -> None:
        self.sweeper = sweeper
        self.snapshot = snapshot
        self._warned = False

    def crossed(self) -> bool:
        free_mb = self.sweeper.probe.free_space_mb(self.snapshot.root_directory)
        if free_mb is None:
            if not self._warned:
                self.sweeper.logger.warning(
                    "Cannot determine free space for %s, low-disk policy disabled this cycle",
                    self.snapshot.root_directory,
                )
                self._warned = True
            return False
        return free_mb < self.snapshot.low_disk_threshold_mb


class RetentionSweeper:
    """Applies the age and low-disk retention policies to a log directory tree."""

    def __init__(
        self,
        probe: VolumeSpaceProbe,
        logger: logging.Logger,
        *,
        pattern: str = LOG_FILE_PATTERN,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the sweeper.

        Args:
            probe: Free space probe for the low-disk policy.
            logger: Logger instance.
            pattern: Glob pattern selecting log files.
            clock: Returns the current UTC time. Defaults to the system clock.

        """
        self.probe = probe
        self.logger = logger
        self.pattern = pattern
        self._clock = clock or (lambda: datetime.now(UTC))

    def candidates(self, root: Path) -> list[CandidateFile]:
        """Find log files under a root, oldest-accessed first.

        Args:
            root: Directory to search recursively.

        Returns:
            Candidates sorted by ascending last-access time.

        """
        found: list[CandidateFile] = []
        try:
            for path in root.rglob(self.pattern):
                found.append(CandidateFile(path))
        except OSError as e:
            self.logger.warning("Error scanning %s: %s", root, e)

        return sorted(found, key=_access_order_key)

    @staticmethod
    def is_stale(candidate: CandidateFile, cutoff: datetime) -> bool:
        """Check whether a file was last written before the cutoff."""
        return candidate.last_write < cutoff

    def _process(
        self,
        candidate: CandidateFile,
        cutoff: datetime,
        pressure: _DiskPressure,
    ) -> DeletionOutcome:
        path = candidate.path

        # The file may have vanished since enumeration
        if not candidate.exists():
            return DeletionOutcome.SKIPPED_NOT_ELIGIBLE

        try:
            stale = self.is_stale(candidate, cutoff)
        except OSError:
            return DeletionOutcome.SKIPPED_NOT_ELIGIBLE

        if stale:
            reason = "stale"
        elif pressure.crossed():
            reason = "low disk space"
        else:
            return DeletionOutcome.SKIPPED_NOT_ELIGIBLE

        try:
            path.unlink()
        except OSError as e:
            self.logger.error("Error deleting log file: %s (%s)", path, e)
            return DeletionOutcome.FAILED

        self.logger.info("Deleted log file (%s): %s", reason, path)
        return DeletionOutcome.DELETED

    def _cutoff(self, retention_days: int) -> datetime:
        """Get the last-write time before which a file is stale."""
        try:
            return self._clock() - timedelta(days=retention_days)
        except OverflowError:
            # Retention reaches past the earliest representable date
            return datetime.min.replace(tzinfo=UTC)

    def sweep(self, snapshot: ConfigSnapshot) -> None:
        """Run one sweep cycle.

        Per-file failures are logged and never abort the sweep. A missing
        root directory makes the cycle a silent no-op.

        Args:
            snapshot: Parameters for this cycle.

        """
        root = snapshot.root_directory
        try:
            if not root.is_dir():
                return
        except OSError:
            return

        cutoff = self._cutoff(snapshot.retention_days)
        pressure = _DiskPressure(self, snapshot)
        outcomes: Counter[DeletionOutcome] = Counter()

        for candidate in self.candidates(root):
            outcomes[self._process(candidate, cutoff, pressure)] += 1

        self.logger.info(
            "Sweep of %s complete: deleted=%d, kept=%d, failed=%d",
            root,
            outcomes[DeletionOutcome.DELETED],
            outcomes[DeletionOutcome.SKIPPED_NOT_ELIGIBLE],
            outcomes[DeletionOutcome.FAILED],
        )
