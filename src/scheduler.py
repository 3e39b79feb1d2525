"""Timer scheduling with cancellation handles.

Everything time-driven (debounced search, session monitoring, error
notices) goes through a :class:`Scheduler` so the same logic runs on the
asyncio event loop in production and on a virtual clock in tests.

Time units are whatever the scheduler's clock uses: seconds for
:class:`LoopScheduler`, arbitrary for :class:`ManualScheduler`.
"""
import asyncio
import heapq
import itertools
import time
from typing import Any, Callable, List, Optional, Protocol, Tuple


Callback = Callable[[], Any]


class TimerHandle:
    """Cancellation token for a scheduled callback."""

    def __init__(self) -> None:
        self._cancelled = False
        self._on_cancel: Optional[Callable[[], None]] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the timer. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None


class Scheduler(Protocol):
    """Protocol for clocks that can run callbacks later."""

    def now(self) -> float:
        """Current time."""
        ...

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` once after ``delay``."""
        ...

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        """Run ``callback`` every ``interval`` until cancelled."""
        ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop and wall-clock time."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle()
        timer = self._get_loop().call_later(delay, callback)
        handle._on_cancel = timer.cancel
        return handle

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle()
        loop = self._get_loop()
        current: List[asyncio.TimerHandle] = []

        def tick() -> None:
            if handle.cancelled:
                return
            current[0] = loop.call_later(interval, tick)
            callback()

        current.append(loop.call_later(interval, tick))
        handle._on_cancel = lambda: current[0].cancel()
        return handle


class ManualScheduler:
    """Virtual clock that only moves when :meth:`advance` is called.

    Due callbacks fire in due-time order, ties in scheduling order.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, TimerHandle, Callback]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def _push(self, due: float, handle: TimerHandle, callback: Callback) -> None:
        heapq.heappush(self._queue, (due, next(self._counter), handle, callback))

    def call_later(self, delay: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle()
        self._push(self._now + delay, handle, callback)
        return handle

    def call_every(self, interval: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle()

        def tick() -> None:
            self._push(self._now + interval, handle, tick)
            callback()

        self._push(self._now + interval, handle, tick)
        return handle

    def advance(self, delta: float) -> None:
        """Move the clock forward, firing everything that falls due."""
        target = self._now + delta
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            callback()
        self._now = target

    def advance_to(self, when: float) -> None:
        """Move the clock to an absolute time."""
        self.advance(max(0.0, when - self._now))
