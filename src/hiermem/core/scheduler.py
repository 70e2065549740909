"""Cancellable periodic background tasks."""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from hiermem.core.logging import get_logger

logger = get_logger("core.scheduler")


class PeriodicTask:
    """Runs a callback every `interval` seconds on the current event loop.

    Runs never overlap: the loop awaits each run before sleeping again, and
    run_once() refuses to start while a previous run is still executing.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[Any] | Any],
        interval: float,
    ):
        if interval <= 0:
            raise ValueError(f"Interval for {name} must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._running = False
        self.last_run: datetime | None = None
        self.run_count = 0

    @property
    def active(self) -> bool:
        """True while the background loop is scheduled."""
        return self._task is not None and not self._task.done()

    @property
    def running(self) -> bool:
        """True while a run is executing."""
        return self._running

    def start(self) -> bool:
        """Schedule the loop on the running event loop.

        Returns False when called outside an event loop; call again from
        async code to start it.
        """
        if self.active:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, deferring start of {self.name}")
            return False
        self._task = loop.create_task(self._loop(), name=self.name)
        logger.info(f"Started periodic task: {self.name} (interval: {self.interval}s)")
        return True

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info(f"Stopped periodic task: {self.name}")

    async def run_once(self) -> bool:
        """Execute the callback now. Returns False if a run is already in flight."""
        if self._running:
            logger.debug(f"Skipping {self.name}: previous run still executing")
            return False
        self._running = True
        try:
            result = self._callback()
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Periodic task {self.name} failed: {e}", exc_info=True)
        finally:
            self._running = False
            self.last_run = datetime.now()
            self.run_count += 1
        return True

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()
