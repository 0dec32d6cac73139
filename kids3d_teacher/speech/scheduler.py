"""Timer scheduling used by the speech components. All delays are in seconds."""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Cancel the pending callback. Safe to call more than once."""


class Scheduler(ABC):
    """Single driver for every timer in a session."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        pass

    @abstractmethod
    def time(self) -> float:
        pass


class _AsyncioHandle(TimerHandle):
    def __init__(self, handle: asyncio.TimerHandle):
        self._handle = handle

    def cancel(self) -> None:
        self._handle.cancel()


class AsyncioScheduler(Scheduler):
    """Schedules on an asyncio event loop (the running one by default)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return _AsyncioHandle(self.loop.call_later(max(0.0, delay), callback))

    def time(self) -> float:
        return self.loop.time()
