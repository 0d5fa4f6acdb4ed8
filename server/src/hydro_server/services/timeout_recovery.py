"""Background reclaim of commands whose claimant went silent."""

import asyncio
import logging
from typing import Optional

from ..core.config import settings
from ..models.command import CommandPartition, SweepResult
from .command_queue import CommandQueue

logger = logging.getLogger(__name__)


class TimeoutRecovery:
    """Periodically sweeps every partition for lapsed claims.

    Claims also sweep lazily, so this loop only matters for controllers that
    stop polling altogether.
    """

    def __init__(
        self,
        command_queue: CommandQueue,
        interval_seconds: int = settings.sweep_interval_seconds,
    ):
        """Initialize timeout recovery.

        Args:
            command_queue: Queue to sweep
            interval_seconds: Seconds between sweeps
        """
        self._command_queue = command_queue
        self._interval_seconds = interval_seconds
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def start(self) -> None:
        """Start the sweep loop."""
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Timeout recovery started (interval: {self._interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the sweep loop."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        logger.info("Timeout recovery stopped")

    async def sweep_all(self) -> dict[str, SweepResult]:
        """Run one sweep over every partition."""
        results = {}
        for partition in CommandPartition:
            results[partition.value] = await self._command_queue.sweep_timeouts(partition)
        return results

    async def _sweep_loop(self) -> None:
        """Periodically reclaim timed-out commands."""
        while True:
            try:
                await asyncio.sleep(self._interval_seconds)
                await self.sweep_all()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Timeout recovery sweep error: {e}")
