"""Core orchestration for yomi.

Keeps the keystroke -> romaji -> kana -> conversion -> commit pipeline in
one place, decoupled from the editor, the key source and the engine
process via ports.

Every handler runs on the event loop thread and runs to completion, so
the session is never locked. Conversion responses are trusted only when
their seq equals ``session.expected_seq``; everything else is dropped.
"""

from __future__ import annotations

import logging
from typing import Callable

from .. import romaji
from ..protocol.messages import AdjustDirection, AdjustSegmentResult, ConvertResult, ErrorResponse
from .config_model import AppConfig
from .ports import ConversionEngine, EditorSurface, Scheduler, TimerHandle, UIFeedback
from .session import Session
from .state_machine import InputMode

logger = logging.getLogger(__name__)


class InputController:
    """Drives one Japanese input session against an editor surface."""

    def __init__(
        self,
        engine: ConversionEngine,
        editor: EditorSurface,
        keys,
        scheduler: Scheduler,
        ui: UIFeedback,
        config: AppConfig | None = None,
        on_mode_change: Callable[[bool], None] | None = None,
    ):
        self._engine = engine
        self._editor = editor
        self._keys = keys
        self._scheduler = scheduler
        self._ui = ui
        self._config = config or AppConfig()
        self._on_mode_change = on_mode_change
        self.session = Session()
        self._debounce: TimerHandle | None = None
        self._in_flight = None
        self._enabling = False

    @property
    def enabled(self) -> bool:
        return self.session.enabled

    @property
    def mode(self) -> InputMode:
        return self.session.mode

    def handlers(self) -> dict[str, Callable]:
        """Action name -> handler, as the key table expects."""
        return {
            "input": self.input,
            "commit": self.commit,
            "backspace": self.backspace,
            "escape": self.escape,
            "cancel": self.cancel,
            "next_candidate": self.next_candidate,
            "prev_candidate": self.prev_candidate,
            "next_segment": self.next_segment,
            "prev_segment": self.prev_segment,
            "shrink_segment": self.shrink_segment,
            "extend_segment": self.extend_segment,
        }

    # --- Mode ---

    def enable(self) -> None:
        """Enter Japanese input; starts the engine first if needed."""
        if self.session.enabled or self._enabling:
            return
        if self._engine.is_ready:
            self._do_enable()
            return
        self._enabling = True
        self._engine.start(callback=self._on_engine_started)

    def _on_engine_started(self, success: bool) -> None:
        self._enabling = False
        if success:
            self._do_enable()
            return
        logger.error("Japanese input unavailable: engine failed to start")
        self._ui.notify("❌ Japanese input unavailable", "Conversion engine failed to start")

    def _do_enable(self) -> None:
        session = self.session
        session.reset()
        session.enabled = True
        session.buffer = self._editor.current_buffer()
        session.anchor = self._editor.get_cursor()
        self._keys.setup(session.buffer, self.handlers())
        logger.info("Japanese input enabled")
        self._ui.notify("あ Japanese input", "Enabled")
        if self._on_mode_change:
            self._on_mode_change(True)

    def disable(self) -> None:
        """Commit anything pending and leave Japanese input."""
        session = self.session
        if not session.enabled:
            return
        self._cancel_debounce()
        if session.has_preedit:
            self.commit()

        buffer = session.buffer
        self._keys.teardown(buffer)
        self._drop_in_flight()
        session.reset()
        if buffer is not None:
            self._editor.clear(buffer)
        logger.info("Japanese input disabled")
        self._ui.notify("A Japanese input", "Disabled")
        if self._on_mode_change:
            self._on_mode_change(False)

    def toggle(self) -> None:
        if self.session.enabled:
            self.disable()
        else:
            self.enable()

    def shutdown(self, callback: Callable[[], None] | None = None):
        """Editor exit: force a final commit, disable, then stop the engine."""
        self.disable()
        return self._engine.stop(callback)

    # --- Editing ---

    def input(self, key: str) -> None:
        session = self.session
        if not session.enabled:
            return
        if session.mode in (InputMode.CANDIDATE_FALLBACK, InputMode.SEGMENTED):
            self._commit_selected()

        kana, remainder = romaji.convert(session.romaji + key)
        session.kana += kana
        session.romaji = remainder
        session.clear_candidates()
        self._invalidate()
        self._update_display()

        if self._config.live_conversion and session.kana:
            self._schedule_conversion()

    def commit(self) -> None:
        """Insert the current text at the anchor and clear the conversion."""
        session = self.session
        if not session.enabled:
            return
        self._cancel_debounce()
        self._invalidate()

        base, full = session.commit_text()
        if not full:
            self._editor.feed_key("<CR>")
            session.anchor = self._editor.get_cursor()
            return

        reading = session.kana
        self._insert_text(full)
        if reading:
            self._notify_commit(reading, base)
        session.reset_conversion()

    def backspace(self) -> None:
        session = self.session
        if not session.enabled:
            return
        self._cancel_debounce()

        if session.romaji:
            session.romaji = session.romaji[:-1]
        elif session.kana:
            session.kana = session.kana[:-1]
            session.clear_candidates()
            self._invalidate()
        else:
            self._editor.feed_key("<BS>")
            return

        self._update_display()
        if self._config.live_conversion and session.kana:
            self._schedule_conversion()

    def escape(self) -> None:
        self.disable()

    def cancel(self) -> None:
        """Back to plain kana; any reply already in flight is ignored."""
        session = self.session
        if not session.enabled:
            return
        self._cancel_debounce()
        self._drop_in_flight()
        self._invalidate()
        session.clear_candidates()
        self._update_display()

    # --- Candidates ---

    def next_candidate(self) -> None:
        self._cycle_candidate(1)

    def prev_candidate(self) -> None:
        self._cycle_candidate(-1)

    def _cycle_candidate(self, step: int) -> None:
        session = self.session
        if not session.enabled:
            return

        if not session.kana:
            if step > 0 and not session.has_preedit:
                self._editor.feed_key("<Space>")
                session.anchor = self._editor.get_cursor()
            return

        if session.has_segments:
            segment = session.active_segment
            if segment.candidates:
                segment.selected_index = (segment.selected_index - 1 + step) % len(segment.candidates) + 1
                self._update_display()
            return

        if not session.candidates:
            # Nothing converted yet: ask now instead of waiting for the timer
            self._cancel_debounce()
            self._request_conversion()
            return

        session.selected_index = (session.selected_index - 1 + step) % len(session.candidates) + 1
        self._update_display()

    # --- Segments ---

    def next_segment(self) -> None:
        session = self.session
        if session.has_segments and session.current_segment < len(session.segments):
            session.current_segment += 1
            self._update_display()

    def prev_segment(self) -> None:
        session = self.session
        if session.has_segments and session.current_segment > 1:
            session.current_segment -= 1
            self._update_display()

    def shrink_segment(self) -> None:
        session = self.session
        if not session.has_segments:
            return
        if session.active_segment.length <= 1:
            logger.debug("Segment is already one character long")
            return
        self._request_adjust(AdjustDirection.SHRINK)

    def extend_segment(self) -> None:
        session = self.session
        if not session.has_segments:
            return
        if session.current_segment >= len(session.segments):
            logger.debug("Last segment cannot be extended")
            return
        # current_segment is 1-based, so this is the following segment
        if session.segments[session.current_segment].length <= 1:
            logger.debug("Following segment is too short to borrow from")
            return
        self._request_adjust(AdjustDirection.EXTEND)

    # --- Engine requests ---

    def _schedule_conversion(self) -> None:
        self._cancel_debounce()
        self._debounce = self._scheduler.call_later(self._config.debounce_ms / 1000, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce = None
        self._request_conversion()

    def _cancel_debounce(self) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None

    def _invalidate(self) -> None:
        # Replies to requests sent so far no longer match
        self.session.expect(self._engine.next_seq)

    def _drop_in_flight(self) -> None:
        if self._in_flight is not None:
            self._in_flight.cancel()
            self._in_flight = None

    def _request_conversion(self) -> None:
        session = self.session
        if not session.enabled or not session.kana:
            return
        session.expect(self._engine.next_seq)
        self._in_flight = self._engine.convert(
            session.kana,
            live=self._config.live_conversion,
            callback=self._on_convert_response,
        )

    def _on_convert_response(self, response) -> None:
        session = self.session
        if not session.enabled or response.seq != session.expected_seq:
            return
        if isinstance(response, ErrorResponse):
            logger.warning(f"Conversion failed: {response.error}")
            return
        if not isinstance(response, ConvertResult):
            logger.debug(f"Ignoring {type(response).__name__} for a conversion request")
            return

        session.current_segment = 1
        session.set_segments(response.segments)
        session.set_candidates(response.candidates)
        self._update_display()

    def _request_adjust(self, direction: AdjustDirection) -> None:
        session = self.session
        self._cancel_debounce()
        session.expect(self._engine.next_seq)
        self._in_flight = self._engine.adjust_segment(
            session.kana,
            session.segments,
            session.current_segment - 1,
            direction.value,
            callback=self._on_adjust_response,
        )

    def _on_adjust_response(self, response) -> None:
        session = self.session
        if not session.enabled or response.seq != session.expected_seq:
            return
        if isinstance(response, ErrorResponse):
            logger.warning(f"Segment adjustment failed: {response.error}")
            return
        if not isinstance(response, AdjustSegmentResult):
            logger.debug(f"Ignoring {type(response).__name__} for an adjust request")
            return

        session.set_segments(response.segments)
        self._update_display()

    def _notify_commit(self, reading: str, candidate: str) -> None:
        if not self._config.learning:
            return
        self._engine.commit(reading, candidate, callback=self._on_commit_response)

    @staticmethod
    def _on_commit_response(response) -> None:
        if isinstance(response, ErrorResponse):
            logger.debug(f"Engine did not record commit: {response.error}")

    # --- Editor ---

    def _commit_selected(self) -> None:
        """Insert the current selection, keeping pending romaji for more typing."""
        session = self.session
        base, _ = session.commit_text()
        if not base:
            return

        reading = session.kana
        self._insert_text(base)
        if reading:
            self._notify_commit(reading, base)

        pending = session.romaji
        session.reset_conversion()
        session.romaji = pending

    def _insert_text(self, text: str) -> None:
        session = self.session
        buffer = session.buffer
        row, col = session.anchor

        self._editor.clear(buffer)
        line = self._editor.get_line(buffer, row)
        self._editor.set_line(buffer, row, line[:col] + text + line[col:])

        new_col = col + len(text)
        self._editor.set_cursor(row, new_col)
        session.anchor = (row, new_col)

    def _update_display(self) -> None:
        session = self.session
        buffer = session.buffer
        if buffer is None:
            return

        row, col = session.anchor
        if session.has_segments:
            self._editor.show_segments(buffer, row, col, session.segments, session.current_segment, session.romaji)
        elif session.has_selection:
            self._editor.show_candidate(buffer, row, col, session.display_text(), True)
        elif session.has_preedit:
            invalid = bool(session.romaji) and not romaji.is_pending(session.romaji)
            self._editor.show_preedit(buffer, row, col, session.display_text(), invalid)
        else:
            self._editor.clear(buffer)
