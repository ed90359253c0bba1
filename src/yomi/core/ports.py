"""Core ports (interfaces) for yomi.

These protocols define the boundaries between the input controller and
the host editor, the conversion engine, timers and notifications. They
are intentionally small and capability-oriented to keep the core
decoupled.
"""

from __future__ import annotations

from typing import Callable, Hashable, Protocol, Sequence, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from ..protocol.client import PendingRequest
    from ..protocol.messages import Response


@runtime_checkable
class EditorSurface(Protocol):
    """The text surface receiving preedit overlays and committed text."""

    def current_buffer(self) -> Hashable:
        """Identifier of the buffer that has focus."""

    def get_cursor(self) -> tuple[int, int]:
        """Return ``(row, col)``, both 0-based."""

    def set_cursor(self, row: int, col: int) -> None:
        """Move the cursor."""

    def get_line(self, buffer: Hashable, row: int) -> str:
        """Return the text of one line ("" past the end)."""

    def set_line(self, buffer: Hashable, row: int, text: str) -> None:
        """Replace one line."""

    def show_preedit(self, buffer: Hashable, row: int, col: int, text: str, invalid: bool = False) -> None:
        """Render unconverted text at the anchor.

        ``invalid`` marks trailing romaji that can no longer become kana.
        """

    def show_candidate(self, buffer: Hashable, row: int, col: int, text: str, selected: bool) -> None:
        """Render a conversion candidate at the anchor."""

    def show_segments(
        self, buffer: Hashable, row: int, col: int, segments: Sequence, current: int, pending: str
    ) -> None:
        """Render segmented conversion with the active segment highlighted."""

    def clear(self, buffer: Hashable) -> None:
        """Remove any overlay."""

    def feed_key(self, key: str) -> None:
        """Pass a key through to the editor unmodified."""


@runtime_checkable
class KeyMapper(Protocol):
    """Installs per-target key handlers."""

    def set(self, target: Hashable, key: str, handler: Callable[[], None]) -> None:
        """Bind ``key`` in ``target``."""

    def delete(self, target: Hashable, key: str) -> None:
        """Remove a binding installed with ``set``."""


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Stop the timer; a no-op once fired."""


@runtime_checkable
class Scheduler(Protocol):
    """Deferred calls on the controller's thread."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` after ``delay`` seconds."""


@runtime_checkable
class ConversionEngine(Protocol):
    """The conversion engine connection as the controller uses it."""

    @property
    def is_ready(self) -> bool:
        """True once the engine answered ``init``."""

    @property
    def next_seq(self) -> int:
        """The seq the next request will carry."""

    def start(self, callback: Callable[[bool], None] | None = None):
        """Start the engine; ``callback(success)`` fires once ready or failed."""

    def stop(self, callback: Callable[[], None] | None = None):
        """Stop the engine; ``callback()`` fires after the process is gone."""

    def convert(
        self,
        reading: str,
        cursor: int | None = None,
        live: bool = False,
        callback: Callable[["Response"], None] | None = None,
    ) -> "PendingRequest":
        """Request candidates for ``reading``."""

    def commit(
        self, reading: str, candidate: str, callback: Callable[["Response"], None] | None = None
    ) -> "PendingRequest":
        """Report a committed conversion (for learning)."""

    def adjust_segment(
        self,
        reading: str,
        segments: Sequence,
        segment_index: int,
        direction: str,
        callback: Callable[["Response"], None] | None = None,
    ) -> "PendingRequest":
        """Ask for a re-segmentation around ``segment_index`` (0-based)."""


@runtime_checkable
class UIFeedback(Protocol):
    """User-visible notifications."""

    def notify(self, title: str, message: str) -> None:
        """Display a transient notification."""
