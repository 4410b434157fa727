"""Main entry point for the log cleaner service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .config import (
    CHECK_INTERVAL_KEY,
    DAYS_TO_KEEP_KEY,
    LOW_DISK_THRESHOLD_KEY,
    ROOT_DIRECTORY_KEY,
    ConfigSource,
)
from .service import LogCleanerService


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments.

    """
    parser = argparse.ArgumentParser(
        prog="log-cleaner",
        description="Service that deletes stale log files and frees disk space",
    )

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to configuration file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command (default)
    run_parser = subparsers.add_parser("run", help="Run the service")
    run_parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit instead of running continuously",
    )

    # Scan command
    subparsers.add_parser("scan", help="List log files in eviction order without deleting")

    # Config command
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "--init",
        action="store_true",
        help="Create default configuration file",
    )
    config_parser.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )

    return parser.parse_args(argv)


def cmd_scan(source: ConfigSource, args: argparse.Namespace) -> int:
    """Execute scan command.

    Args:
        source: Config source.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    from .sweeper import RetentionSweeper
    from .volume import VolumeSpaceProbe

    console = Console()
    snapshot = source.snapshot()
    probe = VolumeSpaceProbe()
    sweeper = RetentionSweeper(probe, logging.getLogger("log-cleaner"))

    if not snapshot.root_directory.is_dir():
        console.print(f"[yellow]Root directory does not exist: {snapshot.root_directory}[/yellow]")
        return 0

    free_mb = probe.free_space_mb(snapshot.root_directory)
    if free_mb is None:
        console.print("[yellow]Free space unknown, low-disk policy inactive[/yellow]")
    else:
        style = "red" if free_mb < snapshot.low_disk_threshold_mb else "green"
        console.print(
            f"[{style}]Free space: {free_mb} MB (threshold {snapshot.low_disk_threshold_mb} MB)[/{style}]"
        )

    candidates = sweeper.candidates(snapshot.root_directory)
    if not candidates:
        console.print("[green]No log files found[/green]")
        return 0

    cutoff = datetime.now(UTC) - timedelta(days=snapshot.retention_days)
    table = Table(title=f"Found {len(candidates)} log files (eviction order)")
    table.add_column("File", style="cyan")
    table.add_column("Last write", style="dim")
    table.add_column("Last access", style="dim")
    table.add_column("Stale")

    for candidate in candidates:
        try:
            last_write = candidate.last_write
            last_access = candidate.last_access
        except OSError:
            continue
        stale = last_write < cutoff
        table.add_row(
            str(candidate.path),
            last_write.strftime("%Y-%m-%d %H:%M"),
            last_access.strftime("%Y-%m-%d %H:%M"),
            "[red]yes[/red]" if stale else "[green]no[/green]",
        )

    console.print(table)
    return 0


def cmd_config(source: ConfigSource, args: argparse.Namespace) -> int:
    """Execute config command.

    Args:
        source: Config source.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    console = Console()

    if args.init:
        if source.config_path.exists():
            console.print(f"[yellow]Config already exists: {source.config_path}[/yellow]")
            return 1
        source.save_defaults()
        console.print(f"[green]Created config: {source.config_path}[/green]")
        return 0

    if args.show:
        snapshot = source.snapshot()
        table = Table(title=f"Current Configuration ({source.config_path})")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")
        table.add_column("Source", style="dim")

        rows = [
            (ROOT_DIRECTORY_KEY, str(snapshot.root_directory)),
            (DAYS_TO_KEEP_KEY, str(snapshot.retention_days)),
            (CHECK_INTERVAL_KEY, str(snapshot.check_interval_minutes)),
            (LOW_DISK_THRESHOLD_KEY, str(snapshot.low_disk_threshold_mb)),
        ]
        for key, value in rows:
            table.add_row(key, value, "default" if key in snapshot.defaulted else "config")

        console.print(table)
        return 0

    console.print("[yellow]Use --init or --show[/yellow]")
    return 1


def cmd_run(source: ConfigSource, args: argparse.Namespace) -> int:
    """Execute run command.

    Args:
        source: Config source.
        args: Parsed arguments.

    Returns:
        Exit code.

    """
    service = LogCleanerService(source)

    if getattr(args, "once", False):
        service.run_once()
        return 0

    asyncio.run(service.run())
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code.

    """
    args = parse_args(argv)
    source = ConfigSource(args.config)

    # Default to run command
    command = args.command or "run"

    if command == "scan":
        return cmd_scan(source, args)
    elif command == "config":
        return cmd_config(source, args)
    elif command == "run":
        return cmd_run(source, args)
    else:
        print(f"Unknown command: {command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
