"""Long-running log cleaner service."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import TYPE_CHECKING, Sequence

from rich.console import Console
from rich.logging import RichHandler

from .config import VALID_LOG_LEVELS, ServiceSettings
from .scheduler import SweepScheduler
from .sweeper import RetentionSweeper
from .volume import VolumeSpaceProbe

if TYPE_CHECKING:
    from .config import ConfigSource


LOGGER_NAME = "log-cleaner"
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def configure_logging(settings: ServiceSettings) -> logging.Logger:
    """Attach console and file handlers to the service logger.

    The console shows INFO and above; the file under ``settings.log_file``
    receives everything down to ``settings.log_level``. Handlers from an
    earlier service instance are closed and replaced.

    Args:
        settings: Startup settings naming the log file and level.

    Returns:
        The configured service logger.

    """
    level = getattr(logging, settings.log_level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    console_handler = RichHandler(console=Console(stderr=True), show_time=True, show_path=False)
    console_handler.setLevel(max(level, logging.INFO))

    settings.log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))

    for handler in (console_handler, file_handler):
        logger.addHandler(handler)

    return logger


class LogCleanerService:
    """Hosts the sweep scheduler and handles start/stop."""

    def __init__(
        self,
        source: ConfigSource,
        settings: ServiceSettings | None = None,
        *,
        probe: VolumeSpaceProbe | None = None,
        tick_seconds: float = 60.0,
    ) -> None:
        """Initialize the service.

        Args:
            source: Config source for sweep parameters.
            settings: Startup settings. Loaded from the source if None.
            probe: Free space probe. A default probe is created if None.
            tick_seconds: Length of one scheduler interval unit in seconds.

        """
        self.source = source
        self.settings = settings if settings is not None else ServiceSettings.load(source)
        if self.settings.log_level not in VALID_LOG_LEVELS:
            msg = f"Invalid log_level: {self.settings.log_level}"
            raise ValueError(msg)

        self.logger = configure_logging(self.settings)
        self.sweeper = RetentionSweeper(probe or VolumeSpaceProbe(), self.logger)
        self.scheduler = SweepScheduler(source, self.sweeper, self.logger, tick_seconds=tick_seconds)
        self._shutdown: asyncio.Event | None = None

    async def on_start(self, args: Sequence[str] = ()) -> None:
        """Arm the scheduler.

        Args:
            args: Start arguments passed by the host. Currently unused.

        """
        self.scheduler.start()
        self.logger.info("Log cleaner started")

    async def on_stop(self) -> None:
        """Disarm the scheduler, letting any in-flight sweep finish."""
        await self.scheduler.stop()
        self.logger.info("Log cleaner stopped")

    def run_once(self) -> None:
        """Run a single sweep with freshly read settings."""
        snapshot = self.source.snapshot()
        self.logger.info("Running single sweep of %s", snapshot.root_directory)
        self.sweeper.sweep(snapshot)

    async def run(self) -> None:
        """Run the service until a shutdown signal is received."""
        self._shutdown = asyncio.Event()

        # Set up signal handlers
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown)

        await self.on_start()
        try:
            await self._shutdown.wait()
        except asyncio.CancelledError:
            self.logger.info("Service cancelled")
            raise
        finally:
            await self.on_stop()

    def _handle_shutdown(self) -> None:
        """Handle shutdown signal."""
        self.logger.info("Shutdown signal received")
        self.stop()

    def stop(self) -> None:
        """Request shutdown of a running service."""
        if self._shutdown is not None:
            self._shutdown.set()
