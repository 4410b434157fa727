"""Periodic trigger that drives the retention sweeper."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import ConfigSource
    from .sweeper import RetentionSweeper


class SchedulerState(Enum):
    """Lifecycle state of the scheduler."""

    IDLE = "idle"
    RUNNING = "running"


class SweepScheduler:
    """Runs a sweep every ``CheckIntervalMinutes``, picking up interval changes live.

    At most one sweep runs at a time. A tick that fires while the previous
    sweep is still in progress is skipped.
    """

    def __init__(
        self,
        source: ConfigSource,
        sweeper: RetentionSweeper,
        logger: logging.Logger,
        *,
        tick_seconds: float = 60.0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            source: Config source, re-read on every tick.
            sweeper: Sweeper invoked on each tick.
            logger: Logger instance.
            tick_seconds: Length of one interval unit (a minute) in seconds.

        """
        self.source = source
        self.sweeper = sweeper
        self.logger = logger
        self.tick_seconds = tick_seconds

        self.state = SchedulerState.IDLE
        self.interval_minutes: int | None = None
        self._timer: asyncio.Task[None] | None = None
        self._sweep: asyncio.Task[None] | None = None

    @property
    def sweep_in_progress(self) -> bool:
        """Check if a sweep is currently running."""
        return self._sweep is not None and not self._sweep.done()

    def start(self) -> None:
        """Arm the periodic trigger. Must be called from a running event loop."""
        if self.state is SchedulerState.RUNNING:
            return

        self.interval_minutes = self.source.read_check_interval().value
        self._timer = asyncio.get_running_loop().create_task(self._run_timer())
        self.state = SchedulerState.RUNNING
        self.logger.info("Sweep scheduled every %d minutes", self.interval_minutes)

    async def stop(self) -> None:
        """Disarm the trigger and wait for any in-flight sweep to finish."""
        if self.state is SchedulerState.IDLE:
            return

        self.state = SchedulerState.IDLE
        if self._timer is not None:
            self._timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None

        if self.sweep_in_progress:
            self.logger.info("Waiting for in-flight sweep to finish")
            with contextlib.suppress(Exception):
                await asyncio.shield(self._sweep)

    async def _run_timer(self) -> None:
        while self.state is SchedulerState.RUNNING:
            await asyncio.sleep(self.interval_minutes * self.tick_seconds)
            try:
                self.tick()
            except Exception:
                self.logger.exception("Sweep tick failed")

    def _reprogram(self, minutes: int) -> None:
        self.logger.info(
            "Check interval changed from %d to %d minutes", self.interval_minutes, minutes
        )
        self.interval_minutes = minutes

    def tick(self) -> None:
        """Handle one timer tick: pick up interval changes, then start a sweep."""
        minutes = self.source.read_check_interval().value
        if minutes != self.interval_minutes:
            self._reprogram(minutes)

        if self.sweep_in_progress:
            self.logger.warning("Previous sweep still running, skipping this tick")
            return

        snapshot = self.source.snapshot()
        self._sweep = asyncio.get_running_loop().create_task(
            asyncio.to_thread(self.sweeper.sweep, snapshot)
        )
        self._sweep.add_done_callback(self._on_sweep_done)

    def _on_sweep_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        if exc := task.exception():
            self.logger.error("Sweep failed unexpectedly", exc_info=exc)
