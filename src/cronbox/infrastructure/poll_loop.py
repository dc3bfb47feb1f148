"""Fixed-cadence async polling loop with skip-missed-ticks semantics."""

from __future__ import annotations

import asyncio
import math
from typing import Callable, Awaitable

from cronbox.infrastructure.logger import logger


def next_tick_after(previous_tick: float, interval_s: float, now: float) -> float:
    """Next tick boundary strictly after `now`, on the grid started at `previous_tick`.

    Missed ticks are dropped, not queued.
    """
    if now < previous_tick + interval_s:
        return previous_tick + interval_s
    missed = math.floor((now - previous_tick) / interval_s)
    return previous_tick + (missed + 1) * interval_s


class PollLoop:
    """Calls fn on a fixed interval. The first call happens one full interval after start()."""

    def __init__(self, name: str, interval_s: float, fn: Callable[[], Awaitable[None]]) -> None:
        self._name = name
        self._interval = interval_s
        self._fn = fn
        self._task: asyncio.Task[None] | None = None
        self._stopped = False
        self._wake: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling loop as a background task."""
        self._stopped = False
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"{self._name} loop started", interval_s=self._interval)

    async def stop(self) -> None:
        """Stop issuing ticks and wait for the in-flight tick (if any) to drain."""
        self._stopped = True
        if self._wake:
            self._wake.set()
        if self._task:
            await self._task
            self._task = None
        logger.info(f"{self._name} loop stopped")

    async def _loop(self) -> None:
        assert self._wake is not None
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval

        while not self._stopped:
            delay = next_tick - loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
            if self._stopped:
                break

            try:
                await self._fn()
            except Exception:
                logger.exception(f"Error in {self._name} loop")

            next_tick = next_tick_after(next_tick, self._interval, loop.time())
