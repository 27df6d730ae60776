"""Background maintenance tasks with an explicit start/stop lifecycle."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Run ``callback`` every ``interval_seconds`` on the running event loop.

    Owned by the application lifespan: nothing is scheduled at import time and
    ``stop`` cancels the task.
    """

    def __init__(self, name: str, callback: Callable[[], int], interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.callback = callback
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"sweeper:{self.name}")
        logger.info(f"Started {self.name} sweeper (every {self.interval_seconds:g}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Stopped {self.name} sweeper")

    def sweep_once(self) -> int:
        purged = self.callback()
        if purged:
            logger.debug(f"{self.name} sweeper purged {purged} expired entries")
        return purged

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep_once()
            except Exception as exc:
                logger.error(f"{self.name} sweep failed: {exc}")
