"""Event loop thread hosting yomi's controller and engine client.

The keyboard listener calls back on its own thread; the controller and
the engine client must only ever run on one thread. The bridge owns that
thread and its asyncio loop, and is the only way other threads reach it.

Architecture:
    +------------------+         +----------------------+
    | LISTENER THREAD  |         | LOOP THREAD          |
    |                  |         |                      |
    | call_soon(fn)    |-------->| asyncio event loop   |
    | submit(coro)     |-------->|   - controller       |
    |     |            |         |   - engine client    |
    |     v            |         |   - debounce timers  |
    | Future.result()  |<--------|                      |
    +------------------+         +----------------------+

Usage:
    bridge = AsyncBridge()
    bridge.start()
    bridge.call_soon(controller.toggle)
    bridge.run_sync(client.stop(), timeout=5)
    bridge.stop()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)


class AsyncBridge:
    """A persistent asyncio event loop in a dedicated thread.

    Example:
        bridge = AsyncBridge()
        bridge.start()

        future = bridge.submit(some_async_function())
        result = future.result(timeout=30)

        bridge.stop()
    """

    def __init__(self, name: str = "yomi-loop"):
        self._name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()
        self._lock = threading.Lock()

    def _run_loop(self):
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._started.set()

        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))

            self._loop.close()
            self._loop = None

    def start(self) -> None:
        """Start the loop thread; a no-op if it is already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return

            self._started.clear()
            self._thread = threading.Thread(target=self._run_loop, name=self._name, daemon=True)
            self._thread.start()

            self._started.wait(timeout=5.0)
            if not self._started.is_set():
                raise RuntimeError("Failed to start async bridge event loop")
            logger.debug(f"Event loop thread {self._name} started")

    def stop(self) -> None:
        """Stop the loop and join its thread. Safe to call more than once."""
        with self._lock:
            if self._loop is not None:
                self._loop.call_soon_threadsafe(self._loop.stop)

            if self._thread is not None:
                self._thread.join(timeout=5.0)
                self._thread = None

            self._started.clear()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("AsyncBridge not started. Call start() first.")
        return self._loop

    @property
    def is_running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and self._loop is not None
            and self._loop.is_running()
        )

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue ``callback(*args)`` on the loop thread (callable from any thread)."""
        self.loop.call_soon_threadsafe(callback, *args)

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        """Run ``coro`` on the loop; returns a concurrent Future.

        Raises:
            RuntimeError: If the bridge is not started
        """
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run_sync(self, coro: Coroutine[Any, Any, Any], timeout: float | None = None) -> Any:
        """Submit ``coro`` and block the calling thread until it finishes.

        Raises:
            RuntimeError: If the bridge is not started
            TimeoutError: If ``timeout`` expires
        """
        return self.submit(coro).result(timeout=timeout)
