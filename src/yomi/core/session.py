"""Input session state.

One ``Session`` exists per enabled input episode. It is a plain mutable
aggregate owned by the controller; all mutation happens on the event
loop thread so nothing here is locked.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable

from .state_machine import InputMode


@dataclass
class Segment:
    """A span of the reading with its own candidate list.

    Attributes:
        reading: Kana covered by this segment
        candidates: Conversion candidates, best first
        length: Number of reading characters spanned
        start: Offset of the segment inside the full reading
        selected_index: 1-based selection local to this segment
    """

    reading: str
    candidates: list[str]
    length: int
    start: int = 0
    selected_index: int = 1

    @classmethod
    def from_info(cls, info) -> "Segment":
        return cls(
            reading=info.reading,
            candidates=list(info.candidates),
            length=info.length,
            start=info.start,
        )

    @property
    def text(self) -> str:
        if 1 <= self.selected_index <= len(self.candidates):
            return self.candidates[self.selected_index - 1]
        return self.reading


@dataclass
class Session:
    enabled: bool = False
    romaji: str = ""
    kana: str = ""
    candidates: list[str] = field(default_factory=list)
    selected_index: int = 0
    segments: list[Segment] = field(default_factory=list)
    current_segment: int = 1
    anchor: tuple[int, int] = (0, 0)
    buffer: Hashable | None = None
    expected_seq: int = 0

    def reset(self) -> None:
        """Back to defaults (used on enable and disable)."""
        self.__init__()

    def reset_conversion(self) -> None:
        """Drop everything typed so far; keep mode, buffer and anchor."""
        self.romaji = ""
        self.kana = ""
        self.clear_candidates()

    def clear_candidates(self) -> None:
        self.candidates = []
        self.selected_index = 0
        self.segments = []
        self.current_segment = 1

    def expect(self, seq: int) -> None:
        """Trust only responses tagged ``seq`` from now on; never moves backwards."""
        if seq > self.expected_seq:
            self.expected_seq = seq

    def set_candidates(self, candidates) -> None:
        self.candidates = list(candidates)
        self.selected_index = 1 if self.candidates else 0

    def set_segments(self, segments) -> None:
        """Replace the segment list; every selection restarts at 1."""
        self.segments = [Segment.from_info(info) for info in segments]
        self.current_segment = min(max(self.current_segment, 1), max(len(self.segments), 1))

    @property
    def active_segment(self) -> Segment | None:
        if not self.segments:
            return None
        return self.segments[self.current_segment - 1]

    @property
    def has_preedit(self) -> bool:
        return self.kana != "" or self.romaji != ""

    @property
    def has_selection(self) -> bool:
        return self.selected_index > 0 and len(self.candidates) > 0

    @property
    def has_segments(self) -> bool:
        return len(self.segments) > 0

    @property
    def mode(self) -> InputMode:
        if not self.enabled:
            return InputMode.DISABLED
        if self.has_segments:
            return InputMode.SEGMENTED
        if self.has_selection:
            return InputMode.CANDIDATE_FALLBACK
        if self.has_preedit:
            return InputMode.PREEDIT
        return InputMode.IDLE

    def segments_text(self) -> str:
        return "".join(segment.text for segment in self.segments)

    def commit_text(self) -> tuple[str, str]:
        """Return ``(base, full)``: the converted text, and the same plus pending romaji."""
        if self.has_segments:
            base = self.segments_text()
        elif self.has_selection:
            base = self.candidates[self.selected_index - 1]
        else:
            base = self.kana
        return base, base + self.romaji

    def display_text(self) -> str:
        return self.commit_text()[1]
