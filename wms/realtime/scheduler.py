"""
Timer scheduling on the channel's event loop.

The channel never sleeps; it registers callbacks and returns. This module
wraps ``loop.call_later`` so the channel can be driven by a manual clock
in tests.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional, Protocol


class TimerHandle(Protocol):
    """Anything with ``cancel()`` (asyncio.TimerHandle qualifies)."""

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Callback timers plus the clocks the channel reads."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...

    def monotonic(self) -> float: ...

    def wall_time(self) -> float: ...


class LoopScheduler:
    """Scheduler backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback, *args)

    def monotonic(self) -> float:
        return self.loop.time()

    def wall_time(self) -> float:
        return time.time()
