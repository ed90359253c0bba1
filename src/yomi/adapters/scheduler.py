"""Debounce timers on the asyncio event loop."""

from __future__ import annotations

import asyncio
from typing import Callable


class LoopScheduler:
    """``Scheduler`` port backed by ``loop.call_later``.

    Must be used from the loop's own thread, like everything else the
    controller touches.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)
