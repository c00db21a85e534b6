"""Repeating asyncio background task with explicit stop."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Union

logger = logging.getLogger(__name__)

TickFn = Callable[[], Union[None, Awaitable[None]]]


class PeriodicTask:
    """Run ``tick`` every ``interval_seconds`` until ``stop()``.

    Tick errors are logged and the loop keeps going.
    """

    def __init__(self, name: str, interval_seconds: float, tick: TickFn) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0.")
        self.name = name
        self.interval_seconds = interval_seconds
        self._tick = tick
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                result = self._tick()
                if result is not None:
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("periodic_task_failed name=%s", self.name)
