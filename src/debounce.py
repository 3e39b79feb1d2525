"""Debounce controller: coalesce bursts of input into one delayed update."""
from typing import Any, Callable, Generic, Optional, TypeVar

from src.scheduler import Scheduler, TimerHandle


T = TypeVar("T")

DEFAULT_DELAY = 0.3  # seconds


class Debouncer(Generic[T]):
    """Emit a value only after it has been stable for ``delay``.
    
    Every :meth:`push` cancels the pending emission and restarts the timer
    with the new value, so a burst of updates produces a single emission
    carrying the last value. Once closed, nothing is emitted.
    
    Example::
    
        debouncer = Debouncer(0.3, scheduler, on_emit=run_search)
        debouncer.push("me")
        debouncer.push("meet")   # only "meet" reaches run_search
    """
    
    def __init__(
        self,
        delay: float,
        scheduler: Scheduler,
        initial: Optional[T] = None,
        on_emit: Optional[Callable[[T], Any]] = None,
    ):
        if delay < 0:
            raise ValueError(f"delay must be non-negative, got {delay}")
        self.delay = delay
        self._scheduler = scheduler
        self._on_emit = on_emit
        self._value: Optional[T] = initial
        self._latest: Optional[T] = initial
        self._timer: Optional[TimerHandle] = None
        self._closed = False
    
    @property
    def value(self) -> Optional[T]:
        """The last emitted value."""
        return self._value
    
    @property
    def pending(self) -> bool:
        """True while an emission is scheduled."""
        return self._timer is not None and not self._timer.cancelled
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    def push(self, value: T) -> None:
        """Record a new input value and restart the quiet-period timer."""
        if self._closed:
            return
        self._latest = value
        self.cancel()
        self._timer = self._scheduler.call_later(self.delay, self._fire)
    
    def cancel(self) -> None:
        """Drop the pending emission, if any."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
    
    def close(self) -> None:
        """Cancel the pending emission and stop accepting input."""
        self.cancel()
        self._closed = True
    
    def _fire(self) -> None:
        self._timer = None
        if self._closed:
            return
        self._value = self._latest
        if self._on_emit is not None:
            self._on_emit(self._value)
    
    def __enter__(self) -> "Debouncer[T]":
        return self
    
    def __exit__(self, *exc_info: Any) -> None:
        self.close()
