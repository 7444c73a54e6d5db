"""
Deferred-callback scheduling.

Every suspension point in canvascore (debounce, acknowledgment timeout, retry
backoff, drag watchdog, zone frame throttle) is a timer callback issued through
the `Scheduler` protocol. Nothing blocks: callers arm a timer and return.

`AsyncioScheduler` runs timers on an asyncio event loop. `ManualScheduler`
keeps a virtual clock that only moves when `advance` is called, which makes
timing behaviour reproducible in tests and offline replays.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol

__all__ = [
    "AsyncioScheduler",
    "ManualScheduler",
    "Scheduler",
    "TimerHandle",
]


class TimerHandle(Protocol):
    """Cancelable handle returned by `Scheduler.call_later`."""

    def cancel(self) -> None:
        """Prevent the callback from running; no-op once it ran."""
        ...


class Scheduler(Protocol):
    """Timer contract shared by every time-driven component."""

    def now(self) -> float:
        """Return monotonic time in seconds."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run `callback` once after `delay` seconds."""
        ...


class AsyncioScheduler:
    """Scheduler bound to an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """
        Initialize scheduler.

        Args:
            loop:
                Event loop to use. Defaults to the running loop, which means
                construction must happen inside a coroutine when omitted.
        """
        self._loop: asyncio.AbstractEventLoop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        """Return loop time in seconds."""
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Schedule callback on the loop."""
        return self._loop.call_later(max(0.0, delay), callback)


class _ManualTimer:
    """Timer entry owned by `ManualScheduler`."""

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due: float = due
        self.callback: Callable[[], None] = callback
        self.cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Virtual-clock scheduler advanced explicitly by the caller."""

    def __init__(self, start: float = 0.0) -> None:
        self._now: float = start
        self._queue: list[tuple[float, int, _ManualTimer]] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        """Return virtual time in seconds."""
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Queue callback at `now + delay`; equal due times run in call order."""
        timer = _ManualTimer(self._now + max(0.0, delay), callback)
        heapq.heappush(self._queue, (timer.due, next(self._sequence), timer))
        return timer

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, running every timer that falls due.

        Timers armed by callbacks during the advance also run when their due
        time is inside the window.

        Args:
            seconds:
                Amount of virtual time to advance.

        Returns:
            Number of callbacks executed.
        """
        target: float = self._now + seconds
        executed: int = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = max(self._now, due)
            timer.callback()
            executed += 1
        self._now = target
        return executed

    def pending_count(self) -> int:
        """Count armed, non-cancelled timers."""
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)
