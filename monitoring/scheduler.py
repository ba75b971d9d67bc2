"""
Monitoring Scheduler.

============================================================
PURPOSE
============================================================
In-process periodic triggers.

- Fleet sweep every sweep_interval_seconds
- Command timeout sweep every command_sweep_interval_seconds
- Dead-letter email retry every dead_letter_retry_interval_seconds

Each loop logs its own errors and keeps running. stop()
cancels every task.

============================================================
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TYPE_CHECKING

from core.config import SchedulerConfig
from monitoring.sweep import FleetMonitor

if TYPE_CHECKING:
    from commands.queue import CommandQueue
    from monitoring.notifications.dispatcher import NotificationDispatcher


logger = logging.getLogger(__name__)


class MonitoringScheduler:
    """
    Runs the sweeps as background tasks.
    """

    def __init__(
        self,
        monitor: FleetMonitor,
        commands: Optional["CommandQueue"] = None,
        config: Optional[SchedulerConfig] = None,
        dispatcher: Optional["NotificationDispatcher"] = None,
    ):
        self._monitor = monitor
        self._commands = commands
        self._dispatcher = dispatcher
        self._config = config or SchedulerConfig()
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic loops."""
        if self._running:
            return

        self._running = True
        self._tasks.append(asyncio.create_task(
            self._run("fleet sweep", self._sweep_once, self._config.sweep_interval_seconds)
        ))
        if self._commands is not None:
            self._tasks.append(asyncio.create_task(
                self._run(
                    "command timeout sweep",
                    self._commands.sweep_timeouts,
                    self._config.command_sweep_interval_seconds,
                )
            ))
        if self._dispatcher is not None:
            self._tasks.append(asyncio.create_task(
                self._run(
                    "dead letter retry",
                    self._dispatcher.retry_dead_letters,
                    self._config.dead_letter_retry_interval_seconds,
                )
            ))
        logger.info(
            f"Monitoring scheduler started (sweep every {self._config.sweep_interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the periodic loops."""
        self._running = False

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        logger.info("Monitoring scheduler stopped")

    async def _sweep_once(self) -> None:
        await self._monitor.run_sweep()

    async def _run(
        self,
        name: str,
        job: Callable[[], Awaitable[object]],
        interval: float,
    ) -> None:
        """Main run loop."""
        while self._running:
            try:
                await job()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Scheduled {name} error: {e}")

            await asyncio.sleep(interval)
