"""
Timer scheduling for subtitle highlights.
"""

import asyncio
from typing import Any, Callable, Optional, Set


class Scheduler:
    """Schedules callbacks on the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(max(0.0, delay), callback, *args)


class TimerSet:
    """
    The pending timers of one playback session.

    ``clear()`` cancels every pending timer synchronously so no callback
    from a stopped session can fire afterwards.
    """

    def __init__(self, scheduler: Scheduler):
        self.scheduler = scheduler
        self._handles: Set[Any] = set()

    def schedule(self, delay: float, callback: Callable[..., Any], *args: Any) -> Any:
        handle = None

        def fire() -> None:
            self._handles.discard(handle)
            callback(*args)

        handle = self.scheduler.call_later(delay, fire)
        self._handles.add(handle)
        return handle

    def clear(self) -> None:
        handles, self._handles = self._handles, set()
        for handle in handles:
            handle.cancel()

    def __len__(self) -> int:
        return len(self._handles)
