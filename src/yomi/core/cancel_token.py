"""Cancellation token for in-flight engine requests."""

from __future__ import annotations

from typing import Callable


class CancelToken:
    """Advisory cancellation flag.

    Cancelling never aborts work inside the engine; it only marks the
    result as unwanted so whoever holds the token can drop it.
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` once when the token is cancelled (immediately if it already is)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)
