"""In-memory editor surface.

A line buffer with one cursor and one overlay, implementing the
``EditorSurface`` port. The desktop app composes into it and types the
result into the focused window; tests use it to observe exactly what the
controller inserted and rendered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Hashable, Sequence

logger = logging.getLogger(__name__)

KEY_TEXT = {"<Space>": " ", "<Tab>": "\t"}


@dataclass(frozen=True)
class Overlay:
    """What is currently drawn at the anchor (never part of the text)."""

    kind: str  # "preedit" | "candidate" | "segments"
    row: int
    col: int
    text: str
    selected: bool = False
    current: int = 0
    invalid: bool = False


class BufferEditor:
    """Single-buffer ``EditorSurface``."""

    def __init__(
        self,
        lines: Sequence[str] | None = None,
        buffer_id: Hashable = "scratch",
        on_change: Callable[["BufferEditor"], None] | None = None,
    ):
        self.buffer_id = buffer_id
        self.lines: list[str] = list(lines) if lines else [""]
        self.row = 0
        self.col = 0
        self.overlay: Overlay | None = None
        self.fed_keys: list[str] = []
        self._on_change = on_change

    def _check(self, buffer: Hashable) -> None:
        if buffer != self.buffer_id:
            raise KeyError(f"Unknown buffer: {buffer!r}")

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    # --- EditorSurface ---

    def current_buffer(self) -> Hashable:
        return self.buffer_id

    def get_cursor(self) -> tuple[int, int]:
        return self.row, self.col

    def set_cursor(self, row: int, col: int) -> None:
        self.row = min(max(row, 0), len(self.lines) - 1)
        self.col = min(max(col, 0), len(self.lines[self.row]))

    def get_line(self, buffer: Hashable, row: int) -> str:
        self._check(buffer)
        if 0 <= row < len(self.lines):
            return self.lines[row]
        return ""

    def set_line(self, buffer: Hashable, row: int, text: str) -> None:
        self._check(buffer)
        while len(self.lines) <= row:
            self.lines.append("")
        self.lines[row] = text
        self._changed()

    def show_preedit(self, buffer: Hashable, row: int, col: int, text: str, invalid: bool = False) -> None:
        self._check(buffer)
        self.overlay = Overlay("preedit", row, col, text, invalid=invalid) if text else None
        self._changed()

    def show_candidate(self, buffer: Hashable, row: int, col: int, text: str, selected: bool) -> None:
        self._check(buffer)
        self.overlay = Overlay("candidate", row, col, text, selected=selected) if text else None
        self._changed()

    def show_segments(
        self, buffer: Hashable, row: int, col: int, segments: Sequence, current: int, pending: str
    ) -> None:
        self._check(buffer)
        parts = []
        for index, segment in enumerate(segments, start=1):
            parts.append(f"[{segment.text}]" if index == current else segment.text)
        self.overlay = Overlay("segments", row, col, "".join(parts) + pending, current=current)
        self._changed()

    def clear(self, buffer: Hashable) -> None:
        self._check(buffer)
        if self.overlay is not None:
            self.overlay = None
            self._changed()

    def feed_key(self, key: str) -> None:
        """Apply ``key`` as if typed with no input method active."""
        self.fed_keys.append(key)
        if key == "<CR>":
            line = self.lines[self.row]
            self.lines[self.row] = line[: self.col]
            self.lines.insert(self.row + 1, line[self.col:])
            self.row += 1
            self.col = 0
        elif key == "<BS>":
            if self.col > 0:
                line = self.lines[self.row]
                self.lines[self.row] = line[: self.col - 1] + line[self.col:]
                self.col -= 1
            elif self.row > 0:
                previous = self.lines[self.row - 1]
                self.lines[self.row - 1] = previous + self.lines.pop(self.row)
                self.row -= 1
                self.col = len(previous)
        elif key in KEY_TEXT or len(key) == 1:
            text = KEY_TEXT.get(key, key)
            line = self.lines[self.row]
            self.lines[self.row] = line[: self.col] + text + line[self.col:]
            self.col += len(text)
        else:
            logger.debug(f"Ignoring fed key {key}")
            return
        self._changed()

    # --- Inspection ---

    def text(self) -> str:
        return "\n".join(self.lines)

    def render(self) -> str:
        """Text with the overlay drawn in, as a user would see it."""
        if self.overlay is None:
            return self.text()
        lines = list(self.lines)
        overlay = self.overlay
        while len(lines) <= overlay.row:
            lines.append("")
        line = lines[overlay.row]
        lines[overlay.row] = line[: overlay.col] + overlay.text + line[overlay.col:]
        return "\n".join(lines)

    def reset(self) -> None:
        self.lines = [""]
        self.row = self.col = 0
        self.overlay = None
        self.fed_keys = []
