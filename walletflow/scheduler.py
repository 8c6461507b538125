"""
walletflow Schedulers - Time Sources for Delayed Emissions
==========================================================

Streams never block; anything that happens "later" (the settings-saved alert,
`timer`) is handed to a scheduler.

- `AsyncIOScheduler` runs actions on an asyncio event loop via `call_later`.
- `VirtualTimeScheduler` keeps a manual clock, so tests decide when time passes.

Both return a cancel callable from `schedule`, which is what a stream's
subscribe function returns as its dispose.
"""

import asyncio
import heapq
import itertools
from abc import ABC, abstractmethod
from typing import Callable, List, Optional


class Scheduler(ABC):
    """Runs actions after a delay on a single cooperative thread."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds on this scheduler's clock."""
        pass

    @abstractmethod
    def schedule(self, delay: float, action: Callable[[], None]) -> Callable[[], None]:
        """Run action after `delay` seconds; return a callable that cancels it."""
        pass


class AsyncIOScheduler(Scheduler):
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def schedule(self, delay: float, action: Callable[[], None]) -> Callable[[], None]:
        handle = self.loop.call_later(max(0.0, delay), action)
        return handle.cancel


class VirtualTimeScheduler(Scheduler):
    """
    Scheduler with a manually advanced clock.

    Actions due at the same instant run in the order they were scheduled.

    Example:
        scheduler = VirtualTimeScheduler()
        scheduler.schedule(1.0, fire)
        scheduler.advance_by(0.5)  # nothing yet
        scheduler.advance_by(0.5)  # fire() runs
    """

    def __init__(self, start: float = 0.0):
        self._clock = start
        self._queue: List[list] = []
        self._sequence = itertools.count()

    def now(self) -> float:
        return self._clock

    @property
    def pending(self) -> int:
        """Number of scheduled, not yet cancelled actions."""
        return sum(1 for entry in self._queue if entry[3])

    def schedule(self, delay: float, action: Callable[[], None]) -> Callable[[], None]:
        entry = [self._clock + max(0.0, delay), next(self._sequence), action, True]
        heapq.heappush(self._queue, entry)

        def cancel():
            entry[3] = False

        return cancel

    def advance_to(self, instant: float) -> None:
        """Run every action due at or before `instant`, moving the clock along."""
        while self._queue and self._queue[0][0] <= instant:
            due, _, action, active = heapq.heappop(self._queue)
            self._clock = due
            if active:
                action()
        self._clock = max(self._clock, instant)

    def advance_by(self, seconds: float) -> None:
        self.advance_to(self._clock + seconds)

    def run(self) -> None:
        """Run until nothing is scheduled."""
        while self._queue:
            self.advance_to(self._queue[0][0])
