"""Cooperative, cancellable scheduler for timed phase transitions.

Callbacks run only from ``run_pending`` on the caller's thread, so all engine
state is mutated sequentially. Every scheduled callback returns a
``TimerHandle``; a cancelled handle never fires.
"""

import heapq
import itertools
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Protocol

from batthealth.utils.logger import logger


class Clock(Protocol):
    """Time source for the scheduler."""

    def monotonic(self) -> float:
        """Monotonic seconds used for scheduling."""
        ...

    def now(self) -> datetime:
        """Wall-clock time used for timestamps."""
        ...


class SystemClock:
    """Real time."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now()


class ManualClock:
    """Clock that only moves when told to, for simulations and tests."""

    def __init__(self, start: datetime | None = None):
        self._start = start or datetime(2024, 1, 1, 12, 0, 0)
        self._elapsed = 0.0

    def monotonic(self) -> float:
        return self._elapsed

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        self._elapsed += seconds


class TimerHandle:
    """Handle to a scheduled callback."""

    def __init__(
        self,
        when: float,
        callback: Callable[..., Any],
        args: tuple[Any, ...],
        interval: float | None = None,
    ):
        self.when = when
        self.callback = callback
        self.args = args
        self.interval = interval
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def periodic(self) -> bool:
        return self.interval is not None

    @property
    def done(self) -> bool:
        """Whether the handle will never run again."""
        return self.cancelled or (self.fired and not self.periodic)

    def __repr__(self) -> str:
        name = getattr(self.callback, "__qualname__", repr(self.callback))
        state = "cancelled" if self.cancelled else "fired" if self.done else f"at {self.when:.3f}"
        return f"TimerHandle({name}, {state})"


class Scheduler:
    """Min-heap of timed callbacks driven by a clock.

    Attributes:
        clock: Time source
    """

    def __init__(self, clock: Clock | None = None):
        self.clock: Clock = clock or SystemClock()
        self._queue: list[tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()

    def _push(self, handle: TimerHandle) -> TimerHandle:
        heapq.heappush(self._queue, (handle.when, next(self._sequence), handle))
        return handle

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Run ``callback(*args)`` once, ``delay`` seconds from now."""
        if delay < 0:
            raise ValueError("delay must not be negative")
        return self._push(TimerHandle(self.clock.monotonic() + delay, callback, args))

    def call_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Run ``callback(*args)`` every ``interval`` seconds, first after one interval."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        return self._push(TimerHandle(self.clock.monotonic() + interval, callback, args, interval))

    def run_pending(self) -> int:
        """Run every callback that is due.

        Periodic callbacks that fell several intervals behind run once per
        missed interval, in time order.

        Returns:
            Number of callbacks run
        """
        now = self.clock.monotonic()
        ran = 0
        while self._queue and self._queue[0][0] <= now:
            _, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue

            handle.fired = True
            handle.callback(*handle.args)
            ran += 1

            if handle.interval is not None and not handle.cancelled:
                handle.when += handle.interval
                self._push(handle)
        return ran

    def cancel_all(self) -> None:
        """Cancel and drop every scheduled callback."""
        for _, _, handle in self._queue:
            handle.cancel()
        if self._queue:
            logger.debug(f"Cancelled {len(self._queue)} scheduled callbacks")
        self._queue.clear()

    @property
    def pending(self) -> int:
        """Number of live scheduled callbacks."""
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def next_due(self) -> float | None:
        """Monotonic time of the next live callback, or None."""
        live = [when for when, _, handle in self._queue if not handle.cancelled]
        return min(live) if live else None
