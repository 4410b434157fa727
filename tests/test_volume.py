"""Tests for volume resolution and free space lookup."""

from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path

import pytest

from log_cleaner import volume
from log_cleaner.volume import BYTES_PER_MB, VolumeSpaceProbe, list_mount_points

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX mount paths")


def _usage(free_mb: int) -> shutil._ntuple_diskusage:
    """Build a disk usage result with the given free space."""
    return shutil._ntuple_diskusage(100_000 * BYTES_PER_MB, 0, free_mb * BYTES_PER_MB)


@posix_only
class TestResolveVolume:
    """Tests for longest-prefix volume matching."""

    @pytest.fixture
    def probe(self) -> VolumeSpaceProbe:
        """Create a probe with a fixed mount table."""
        mounts = [Path("/"), Path("/var"), Path("/var/log"), Path("/mnt/data")]
        return VolumeSpaceProbe(mount_points=lambda _path: mounts)

    def test_longest_prefix_wins(self, probe: VolumeSpaceProbe) -> None:
        """Test that the most specific mount point is chosen."""
        assert probe.resolve_volume(Path("/var/log/nginx/access.log")) == Path("/var/log")

    def test_component_wise_matching(self, probe: VolumeSpaceProbe) -> None:
        """Test that /var/logs is not treated as being under /var/log."""
        assert probe.resolve_volume(Path("/var/logs/app")) == Path("/var")

    def test_root_fallback(self, probe: VolumeSpaceProbe) -> None:
        """Test that unrelated paths resolve to the root volume."""
        assert probe.resolve_volume(Path("/srv/www")) == Path("/")

    def test_exact_mount_point(self, probe: VolumeSpaceProbe) -> None:
        """Test resolving a path that is itself a mount point."""
        assert probe.resolve_volume(Path("/mnt/data")) == Path("/mnt/data")

    def test_order_independent(self) -> None:
        """Test that mount table order does not change the result."""
        mounts = [Path("/var/log"), Path("/"), Path("/var")]
        probe = VolumeSpaceProbe(mount_points=lambda _path: mounts)

        assert probe.resolve_volume(Path("/var/log/x.log")) == Path("/var/log")

    def test_no_matching_volume(self) -> None:
        """Test that a path outside every mount resolves to None."""
        probe = VolumeSpaceProbe(mount_points=lambda _path: [Path("/mnt/data")])

        assert probe.resolve_volume(Path("/var/log")) is None


class TestFreeSpace:
    """Tests for free space reporting."""

    def test_free_space_in_whole_megabytes(self, tmp_path: Path) -> None:
        """Test conversion of free bytes to whole megabytes."""
        usage = shutil._ntuple_diskusage(10 * BYTES_PER_MB, 0, 5 * BYTES_PER_MB + 12345)
        probe = VolumeSpaceProbe(
            mount_points=lambda _path: [Path(tmp_path.anchor)],
            disk_usage=lambda _volume: usage,
        )

        assert probe.free_space_mb(tmp_path) == 5

    def test_queries_resolved_volume(self, tmp_path: Path) -> None:
        """Test that disk usage is requested for the resolved mount point."""
        queried: list[Path] = []

        def disk_usage(volume_root: Path) -> shutil._ntuple_diskusage:
            queried.append(volume_root)
            return _usage(250)

        probe = VolumeSpaceProbe(
            mount_points=lambda _path: [Path(tmp_path.anchor), tmp_path],
            disk_usage=disk_usage,
        )

        assert probe.free_space_mb(tmp_path / "logs") == 250
        assert queried == [tmp_path]

    def test_unknown_volume_returns_none(self, tmp_path: Path) -> None:
        """Test that an unresolvable path reports unknown free space."""
        probe = VolumeSpaceProbe(mount_points=lambda _path: [], disk_usage=lambda _v: _usage(1))

        assert probe.free_space_mb(tmp_path) is None

    def test_disk_usage_error_returns_none(self, tmp_path: Path) -> None:
        """Test that an OS error while querying is reported as unknown."""

        def failing(_volume: Path) -> shutil._ntuple_diskusage:
            raise OSError("device not ready")

        probe = VolumeSpaceProbe(mount_points=lambda _path: [Path(tmp_path.anchor)], disk_usage=failing)

        assert probe.free_space_mb(tmp_path) is None

    def test_real_filesystem(self, tmp_path: Path) -> None:
        """Test the default probe against the real filesystem."""
        free_mb = VolumeSpaceProbe().free_space_mb(tmp_path)

        assert free_mb is not None
        assert free_mb >= 0


@posix_only
class TestListMountPoints:
    """Tests for mount table enumeration."""

    def test_reads_proc_mounts(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test parsing a /proc/self/mounts style table."""
        table = tmp_path / "mounts"
        table.write_text(
            "/dev/sda1 / ext4 rw,relatime 0 0\n"
            "tmpfs /run tmpfs rw,nosuid 0 0\n"
            "/dev/sdb1 /mnt/my\\040disk ext4 rw 0 0\n"
        )
        monkeypatch.setattr(volume, "PROC_MOUNTS", table)

        mounts = list_mount_points()

        assert mounts == [Path("/"), Path("/run"), Path("/mnt/my disk")]

    def test_falls_back_to_ancestors(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the ancestor walk when no mount table is available."""
        monkeypatch.setattr(volume, "PROC_MOUNTS", tmp_path / "missing")

        mounts = list_mount_points(tmp_path)

        assert Path("/") in mounts
        assert all(tmp_path.is_relative_to(mount) for mount in mounts)

    def test_no_table_and_no_hint(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that nothing is returned without a table or a path hint."""
        monkeypatch.setattr(volume, "PROC_MOUNTS", tmp_path / "missing")

        assert list_mount_points() == []

    def test_unreadable_table_logged(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that a mount table that cannot be read is noted at debug level."""
        monkeypatch.setattr(volume, "PROC_MOUNTS", tmp_path / "missing")

        with caplog.at_level(logging.DEBUG, logger="log-cleaner"):
            mounts = list_mount_points(tmp_path)

        assert Path("/") in mounts
        assert any("Unable to read mount table" in r.getMessage() for r in caplog.records)
