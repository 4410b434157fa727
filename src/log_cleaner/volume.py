"""Free space lookup for the mounted volume holding a directory."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path, PurePath
from typing import Any, Callable

logger = logging.getLogger("log-cleaner")

BYTES_PER_MB = 1024 * 1024

PROC_MOUNTS = Path("/proc/self/mounts")


def _decode_mount_field(value: str) -> str:
    """Decode the octal escapes (``\\040`` for space, etc.) used in /proc/mounts."""
    return value.encode("latin-1").decode("unicode_escape").encode("latin-1").decode(
        "utf-8", errors="surrogateescape"
    )


def _ancestor_mounts(path: Path) -> list[Path]:
    return [p for p in (path, *path.parents) if os.path.ismount(p)]


def list_mount_points(path: Path | None = None) -> list[Path]:
    """List mounted volume roots.

    Args:
        path: Hint used on platforms without a mount table.

    Returns:
        Mount point paths, in no particular order.

    """
    if sys.platform == "win32" and hasattr(os, "listdrives"):
        return [Path(drive) for drive in os.listdrives()]

    try:
        with PROC_MOUNTS.open(encoding="latin-1") as f:
            return [Path(_decode_mount_field(line.split()[1])) for line in f if len(line.split()) > 1]
    except OSError as e:
        logger.debug("Unable to read mount table %s: %s", PROC_MOUNTS, e)

    return _ancestor_mounts(path.absolute()) if path is not None else []


def _parts(path: PurePath) -> tuple[str, ...]:
    parts = path.parts
    return tuple(p.casefold() for p in parts) if sys.platform == "win32" else parts


class VolumeSpaceProbe:
    """Resolves the volume containing a path and reports its free space."""

    def __init__(
        self,
        mount_points: Callable[[Path], list[Path]] = list_mount_points,
        disk_usage: Callable[[Path], Any] = shutil.disk_usage,
    ) -> None:
        """Initialize the probe.

        Args:
            mount_points: Callable listing mounted volume roots for a path.
            disk_usage: Callable returning usage for a volume root.

        """
        self._mount_points = mount_points
        self._disk_usage = disk_usage

    def resolve_volume(self, path: Path) -> Path | None:
        """Find the mounted volume holding a path.

        The mount point with the longest component-wise prefix match wins,
        so ``/var/log`` mounted separately beats ``/``.

        Args:
            path: Path to resolve.

        Returns:
            The volume root, or None if no mounted volume contains the path.

        """
        target = _parts(Path(os.path.abspath(path)))
        best: Path | None = None
        best_len = -1

        for mount in self._mount_points(path):
            mount_parts = _parts(mount)
            if len(mount_parts) > best_len and target[: len(mount_parts)] == mount_parts:
                best, best_len = mount, len(mount_parts)

        return best

    def free_space_mb(self, path: Path) -> int | None:
        """Get free space, in whole megabytes, on the volume holding a path.

        Args:
            path: Path whose volume should be queried.

        Returns:
            Free megabytes, or None if the volume is unknown or unreadable.

        """
        try:
            volume = self.resolve_volume(path)
            if volume is None:
                return None
            return self._disk_usage(volume).free // BYTES_PER_MB
        except OSError as e:
            logger.debug("Unable to query free space for %s: %s", path, e)
            return None
