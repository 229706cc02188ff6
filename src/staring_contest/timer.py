"""Interval ticking on the event loop: the countdown and the round timer."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("staring_contest.timer")

Sleep = Callable[[float], Awaitable[Any]]


class Ticker:
    """Calls `callback` once per `interval` until stopped.

    A ticker owns at most one scheduled task. `start()` always drops the
    previous one first, so restarting never leaves two counters running.
    The callback may be a coroutine function; it is awaited before the next
    interval begins. `sleep` is injectable so tests can drive time by hand.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Any],
        sleep: Optional[Sleep] = None,
        name: str = "ticker",
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.interval = interval
        self.name = name
        self._callback = callback
        self._sleep = sleep or asyncio.sleep
        self._task: Optional[asyncio.Task] = None
        self._generation = 0

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self):
        """Start ticking. Must be called from inside the running loop."""
        self.stop()
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(self._generation), name=self.name)

    def stop(self):
        """Cancel the scheduled tick. Safe to call from inside the callback."""
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _run(self, generation: int):
        while generation == self._generation:
            await self._sleep(self.interval)
            if generation != self._generation:
                break
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("%s tick failed", self.name)


class RoundTimer:
    """Whole seconds survived in the current round.

    `start()` zeroes the counter and counts up; `stop()` freezes it;
    `reset()` freezes it at zero. There is no pause/resume.
    """

    def __init__(self, interval: float = 1.0, sleep: Optional[Sleep] = None):
        self.elapsed = 0
        self._listeners: list[Callable[[int], None]] = []
        self._ticker = Ticker(interval, self._tick, sleep=sleep, name="round-timer")

    @property
    def running(self) -> bool:
        return self._ticker.running

    def on_tick(self, callback: Callable[[int], None]):
        """Register a callback receiving the new elapsed value each second."""
        self._listeners.append(callback)

    def start(self):
        self.elapsed = 0
        self._ticker.start()

    def stop(self):
        self._ticker.stop()

    def reset(self):
        self._ticker.stop()
        self.elapsed = 0

    def _tick(self):
        self.elapsed += 1
        for cb in self._listeners:
            try:
                cb(self.elapsed)
            except Exception:
                logger.exception("Round timer listener failed")
