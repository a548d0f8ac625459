"""Repeating timer for periodic background saves."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class RepeatingTimer:
    """Calls an async callback every ``interval`` seconds on the running loop.

    Each firing runs as its own task so that ``cancel()`` only stops future
    firings; a callback that is already running is left to complete and can
    be awaited through ``in_flight``.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]], name: str = "timer"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.fire_count = 0
        self.in_flight: Optional[asyncio.Task] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_active:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug(f"Timer '{self.name}' armed every {self.interval}s")

    def cancel(self) -> None:
        """Invalidate the timer synchronously; no further firings happen."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            logger.debug(f"Timer '{self.name}' cancelled")

    async def wait_in_flight(self) -> None:
        """Wait for a firing that started before ``cancel()`` to finish."""
        task = self.in_flight
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.in_flight is not None and not self.in_flight.done():
                logger.warning(f"Timer '{self.name}' skipped: previous run still in progress")
                continue
            self.fire_count += 1
            self.in_flight = asyncio.get_running_loop().create_task(self.callback())
