import copy

from yomi.adapters.editor import BufferEditor
from yomi.core.config_model import AppConfig
from yomi.core.controller import InputController
from yomi.core.ports import ConversionEngine, Scheduler, TimerHandle, UIFeedback
from yomi.core.state_machine import InputMode
from yomi.keymap import KeyBindings, KeyDispatcher
from yomi.protocol.client import PendingRequest
from yomi.protocol.messages import AdjustSegmentResult, ConvertResult, ErrorResponse, SegmentInfo


class _Engine(ConversionEngine):
    def __init__(self, ready=True):
        self.ready = ready
        self.seq = 0
        self.requests = []
        self.start_callbacks = []
        self.stopped = False

    @property
    def is_ready(self) -> bool:
        return self.ready

    @property
    def next_seq(self) -> int:
        return self.seq + 1

    def start(self, callback=None):
        self.start_callbacks.append(callback)

    def finish_start(self, success=True):
        self.ready = success
        for callback in self.start_callbacks:
            callback(success)

    def stop(self, callback=None):
        self.stopped = True
        if callback:
            callback()

    def _issue(self, kind, callback, **fields):
        self.seq += 1
        pending = PendingRequest(self.seq, kind)
        if callback:
            pending.add_callback(callback)
        self.requests.append((kind, fields, pending))
        return pending

    def convert(self, reading, cursor=None, live=False, callback=None):
        return self._issue("convert", callback, reading=reading, live=live)

    def commit(self, reading, candidate, callback=None):
        return self._issue("commit", callback, reading=reading, candidate=candidate)

    def adjust_segment(self, reading, segments, segment_index, direction, callback=None):
        return self._issue(
            "adjust_segment",
            callback,
            reading=reading,
            lengths=[s.length for s in segments],
            segment_index=segment_index,
            direction=direction,
        )

    def of(self, kind):
        return [(fields, pending) for k, fields, pending in self.requests if k == kind]


class _Timer(TimerHandle):
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class _Scheduler(Scheduler):
    def __init__(self):
        self.timers = []

    def call_later(self, delay, callback):
        timer = _Timer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def active(self):
        return [t for t in self.timers if not t.cancelled]

    def fire(self):
        timers, self.timers = self.active, []
        for timer in timers:
            timer.callback()


class _UI(UIFeedback):
    def __init__(self):
        self.calls = []

    def notify(self, title: str, message: str) -> None:
        self.calls.append((title, message))


class _Harness:
    def __init__(self, config=None, ready=True, lines=None):
        self.engine = _Engine(ready=ready)
        self.editor = BufferEditor(lines=lines)
        self.dispatcher = KeyDispatcher()
        self.scheduler = _Scheduler()
        self.ui = _UI()
        self.controller = InputController(
            self.engine,
            self.editor,
            KeyBindings(self.dispatcher),
            self.scheduler,
            self.ui,
            config or AppConfig(),
        )

    def type(self, keys):
        for key in keys:
            assert self.dispatcher.dispatch(self.editor.buffer_id, key)

    def press(self, key):
        return self.dispatcher.dispatch(self.editor.buffer_id, key)

    def convert_and_fire(self, keys):
        self.type(keys)
        self.scheduler.fire()
        return self.engine.of("convert")[-1][1]


def _segments():
    return (
        SegmentInfo("きょう", ("今日", "京"), 3, 0),
        SegmentInfo("は", ("は", "葉"), 1, 3),
    )


def _enabled(**kwargs):
    harness = _Harness(**kwargs)
    harness.controller.enable()
    return harness


def test_enable_when_engine_ready():
    harness = _Harness(lines=["abc"])
    harness.editor.set_cursor(0, 2)
    harness.controller.enable()

    session = harness.controller.session
    assert harness.controller.mode == InputMode.IDLE
    assert session.anchor == (0, 2)
    assert session.buffer == "scratch"
    assert harness.dispatcher.bindings("scratch")
    assert harness.engine.start_callbacks == []


def test_enable_starts_engine_first():
    harness = _Harness(ready=False)
    harness.controller.enable()
    harness.controller.enable()
    assert not harness.controller.enabled
    assert len(harness.engine.start_callbacks) == 1

    harness.engine.finish_start(True)
    assert harness.controller.enabled


def test_enable_failure_notifies_and_stays_disabled():
    harness = _Harness(ready=False)
    harness.controller.enable()
    harness.engine.finish_start(False)

    assert not harness.controller.enabled
    assert harness.dispatcher.bindings("scratch") == {}
    assert any("unavailable" in title for title, _ in harness.ui.calls)


def test_preedit_flags_romaji_that_cannot_become_kana():
    harness = _enabled()
    harness.type("kaky")
    assert harness.editor.overlay.text == "かky"
    assert not harness.editor.overlay.invalid

    harness.type("q")
    assert harness.editor.overlay.text == "かkyq"
    assert harness.editor.overlay.invalid

    harness.press("<BS>")
    assert not harness.editor.overlay.invalid


def test_typing_is_debounced_into_one_request():
    harness = _enabled()
    harness.type("kyouha")

    assert harness.engine.of("convert") == []
    assert len(harness.scheduler.active) == 1
    assert harness.scheduler.active[0].delay == 0.03
    assert harness.editor.overlay.text == "きょうは"

    harness.scheduler.fire()
    converts = harness.engine.of("convert")
    assert len(converts) == 1
    assert converts[0][0] == {"reading": "きょうは", "live": True}
    assert harness.controller.session.expected_seq == converts[0][1].seq


def test_pending_romaji_alone_does_not_schedule():
    harness = _enabled()
    harness.type("ky")
    assert harness.scheduler.active == []
    assert harness.editor.overlay.text == "ky"


def test_live_conversion_disabled_never_schedules():
    harness = _enabled(config=AppConfig(live_conversion=False))
    harness.type("ka")
    assert harness.scheduler.timers == []


def test_segmented_response():
    harness = _enabled()
    pending = harness.convert_and_fire("kyouha")
    pending.resolve(ConvertResult(pending.seq, ("今日は", "きょうは"), _segments()))

    session = harness.controller.session
    assert harness.controller.mode == InputMode.SEGMENTED
    assert session.current_segment == 1
    assert [s.selected_index for s in session.segments] == [1, 1]
    assert harness.editor.overlay.kind == "segments"
    assert harness.editor.overlay.text == "[今日]は"


def test_flat_response():
    harness = _enabled()
    pending = harness.convert_and_fire("ka")
    pending.resolve(ConvertResult(pending.seq, ("課", "蚊")))

    assert harness.controller.mode == InputMode.CANDIDATE_FALLBACK
    assert harness.controller.session.selected_index == 1
    assert harness.editor.overlay.text == "課"


def test_empty_flat_response_has_no_selection():
    harness = _enabled()
    pending = harness.convert_and_fire("ka")
    pending.resolve(ConvertResult(pending.seq, ()))

    assert harness.controller.mode == InputMode.PREEDIT
    assert harness.controller.session.selected_index == 0


def test_only_latest_response_is_applied():
    harness = _enabled()
    first = harness.convert_and_fire("ka")
    second = harness.convert_and_fire("ki")
    third = harness.convert_and_fire("ku")

    third.resolve(ConvertResult(third.seq, ("書く",)))
    first.resolve(ConvertResult(first.seq, ("蚊",)))
    second.resolve(ConvertResult(second.seq, ("柿",)))

    assert harness.controller.session.candidates == ["書く"]
    assert harness.editor.overlay.text == "書く"


def test_cancel_drops_in_flight_reply():
    harness = _enabled()
    pending = harness.convert_and_fire("ka")
    harness.press("<C-g>")

    assert pending.cancelled
    pending.resolve(ConvertResult(pending.seq, ("蚊",)))
    session = harness.controller.session
    assert session.candidates == []
    assert harness.controller.mode == InputMode.PREEDIT
    assert session.expected_seq > pending.seq


def test_cancel_then_new_request_is_accepted():
    harness = _enabled()
    old = harness.convert_and_fire("ka")
    harness.press("<C-g>")
    expected_after_cancel = harness.controller.session.expected_seq

    harness.press("<Space>")
    fresh = harness.engine.of("convert")[-1][1]
    assert fresh.seq >= expected_after_cancel
    old.resolve(ConvertResult(old.seq, ("蚊",)))
    fresh.resolve(ConvertResult(fresh.seq, ("課",)))

    assert harness.controller.session.candidates == ["課"]


def test_cancel_stops_pending_timer():
    harness = _enabled()
    harness.type("ka")
    timer = harness.scheduler.active[0]
    harness.press("<C-g>")
    assert timer.cancelled


def test_candidate_cycling_wraps_both_ways():
    harness = _enabled()
    pending = harness.convert_and_fire("ka")
    pending.resolve(ConvertResult(pending.seq, ("課", "蚊", "可")))
    session = harness.controller.session

    harness.press("<Space>")
    harness.press("<Space>")
    assert session.selected_index == 3
    harness.press("<Space>")
    assert session.selected_index == 1
    harness.press("<S-Space>")
    assert session.selected_index == 3
    assert harness.editor.overlay.text == "可"


def test_segment_candidate_cycling_is_local():
    harness = _enabled()
    pending = harness.convert_and_fire("kyouha")
    pending.resolve(ConvertResult(pending.seq, ("今日は",), _segments()))
    session = harness.controller.session

    harness.press("<Space>")
    assert [s.selected_index for s in session.segments] == [2, 1]
    harness.press("<Space>")
    assert session.segments[0].selected_index == 1
    harness.press("<S-Space>")
    assert session.segments[0].selected_index == 2
    assert session.selected_index == 1


def test_segment_pointer_is_clamped():
    harness = _enabled()
    pending = harness.convert_and_fire("kyouha")
    pending.resolve(ConvertResult(pending.seq, ("今日は",), _segments()))
    session = harness.controller.session

    harness.press("<S-Tab>")
    assert session.current_segment == 1
    harness.press("<Tab>")
    harness.press("<Tab>")
    assert session.current_segment == 2
    assert harness.editor.overlay.text == "今日[は]"


def test_shrink_and_extend_are_refused_locally():
    harness = _enabled()
    pending = harness.convert_and_fire("kyouha")
    pending.resolve(ConvertResult(pending.seq, ("今日は",), _segments()))

    session = harness.controller.session

    def _unchanged_after(key):
        before = (copy.deepcopy(session.segments), session.current_segment, session.expected_seq)
        harness.press(key)
        assert (session.segments, session.current_segment, session.expected_seq) == before

    # following segment has length 1
    _unchanged_after("<S-Right>")
    harness.press("<Tab>")
    # active segment has length 1, and it is the last one
    _unchanged_after("<S-Left>")
    _unchanged_after("<S-Right>")

    assert harness.engine.of("adjust_segment") == []
    assert harness.editor.overlay.text == "今日[は]"


def test_shrink_sends_adjust_and_replaces_segments():
    harness = _enabled()
    pending = harness.convert_and_fire("kyouha")
    pending.resolve(ConvertResult(pending.seq, ("今日は",), _segments()))
    harness.press("<Space>")

    harness.press("<S-Left>")
    adjusts = harness.engine.of("adjust_segment")
    assert len(adjusts) == 1
    fields, adjust = adjusts[0]
    assert fields == {"reading": "きょうは", "lengths": [3, 1], "segment_index": 0, "direction": "shrink"}

    adjust.resolve(
        AdjustSegmentResult(
            adjust.seq,
            (
                SegmentInfo("きょ", ("巨",), 2, 0),
                SegmentInfo("うは", ("右派", "うは"), 2, 2),
            ),
        )
    )
    session = harness.controller.session
    assert [s.reading for s in session.segments] == ["きょ", "うは"]
    assert [s.selected_index for s in session.segments] == [1, 1]
    assert session.current_segment == 1


def test_extend_sends_adjust_for_active_segment():
    harness = _enabled()
    pending = harness.convert_and_fire("watashiha")
    pending.resolve(
        ConvertResult(
            pending.seq,
            ("私は",),
            (SegmentInfo("わ", ("輪",), 1, 0), SegmentInfo("たしは", ("確は",), 3, 1)),
        )
    )

    harness.press("<S-Right>")
    fields, _ = harness.engine.of("adjust_segment")[0]
    assert fields["direction"] == "extend"
    assert fields["segment_index"] == 0


def test_stale_adjust_response_is_dropped():
    harness = _enabled()
    pending = harness.convert_and_fire("kyouha")
    pending.resolve(ConvertResult(pending.seq, ("今日は",), _segments()))
    harness.press("<S-Left>")
    _, adjust = harness.engine.of("adjust_segment")[0]

    harness.press("<C-g>")
    adjust.resolve(AdjustSegmentResult(adjust.seq, (SegmentInfo("きょうは", ("教派",), 4, 0),)))
    assert harness.controller.session.segments == []


def test_commit_segmented_inserts_and_notifies_engine():
    harness = _enabled(lines=["> "])
    harness.editor.set_cursor(0, 2)
    harness.controller.disable()
    harness.controller.enable()

    pending = harness.convert_and_fire("kyouha")
    pending.resolve(ConvertResult(pending.seq, ("今日は",), _segments()))
    harness.press("<CR>")

    assert harness.editor.lines == ["> 今日は"]
    assert harness.editor.get_cursor() == (0, 5)
    assert harness.editor.overlay is None
    commits = harness.engine.of("commit")
    assert [fields for fields, _ in commits] == [{"reading": "きょうは", "candidate": "今日は"}]
    assert harness.controller.mode == InputMode.IDLE
    assert harness.controller.session.anchor == (0, 5)


def test_commit_includes_pending_romaji_tail():
    harness = _enabled()
    pending = harness.convert_and_fire("kan")
    pending.resolve(ConvertResult(pending.seq, ("缶",)))
    harness.press("<CR>")

    assert harness.editor.lines == ["缶n"]
    assert harness.engine.of("commit")[0][0] == {"reading": "か", "candidate": "缶"}


def test_commit_without_learning_sends_nothing():
    harness = _enabled(config=AppConfig(learning=False))
    harness.type("ka")
    harness.press("<CR>")
    assert harness.editor.lines == ["か"]
    assert harness.engine.of("commit") == []


def test_commit_romaji_only_does_not_notify():
    harness = _enabled()
    harness.type("q")
    harness.press("<CR>")
    assert harness.editor.lines == ["q"]
    assert harness.engine.of("commit") == []


def test_commit_with_nothing_pending_passes_enter_through():
    harness = _enabled(lines=["abc"])
    harness.editor.set_cursor(0, 3)
    harness.controller.session.anchor = (0, 3)
    harness.press("<CR>")

    assert harness.editor.fed_keys == ["<CR>"]
    assert harness.editor.lines == ["abc", ""]
    assert harness.controller.session.anchor == (1, 0)


def test_typing_after_selection_auto_commits():
    harness = _enabled()
    pending = harness.convert_and_fire("ka")
    pending.resolve(ConvertResult(pending.seq, ("課", "蚊")))
    harness.press("<Space>")

    harness.type("k")
    session = harness.controller.session
    assert harness.editor.lines == ["蚊"]
    assert harness.engine.of("commit")[0][0] == {"reading": "か", "candidate": "蚊"}
    assert session.kana == ""
    assert session.romaji == "k"
    assert session.anchor == (0, 1)
    assert harness.controller.mode == InputMode.PREEDIT
    assert harness.editor.overlay.text == "k"


def test_backspace_removes_romaji_then_kana_then_passes_through():
    harness = _enabled(lines=["x"])
    harness.editor.set_cursor(0, 1)
    harness.controller.session.anchor = (0, 1)
    harness.type("kak")
    session = harness.controller.session

    harness.press("<BS>")
    assert (session.kana, session.romaji) == ("か", "")
    harness.press("<BS>")
    assert (session.kana, session.romaji) == ("", "")
    assert harness.editor.overlay is None
    harness.press("<BS>")
    assert harness.editor.fed_keys == ["<BS>"]
    assert harness.editor.lines == [""]


def test_backspace_reschedules_conversion():
    harness = _enabled()
    harness.type("kaki")
    first = harness.scheduler.active[0]
    harness.press("<BS>")

    assert first.cancelled
    assert len(harness.scheduler.active) == 1
    harness.scheduler.fire()
    assert harness.engine.of("convert")[0][0]["reading"] == "か"


def test_backspace_in_kana_invalidates_in_flight_reply():
    harness = _enabled()
    pending = harness.convert_and_fire("kaki")
    harness.press("<BS>")
    pending.resolve(ConvertResult(pending.seq, ("柿",)))
    assert harness.controller.session.candidates == []


def test_escape_commits_and_disables():
    harness = _enabled()
    harness.type("ka")
    harness.press("<Esc>")

    assert harness.editor.lines == ["か"]
    assert not harness.controller.enabled
    assert harness.dispatcher.bindings("scratch") == {}
    assert harness.scheduler.active == []


def test_space_with_empty_buffer_is_passed_through():
    harness = _enabled()
    harness.press("<Space>")
    harness.press("<S-Space>")

    assert harness.editor.fed_keys == ["<Space>"]
    assert harness.editor.lines == [" "]
    assert harness.controller.session.anchor == (0, 1)


def test_space_in_preedit_requests_immediately():
    harness = _enabled()
    harness.type("ka")
    timer = harness.scheduler.active[0]
    harness.press("<Space>")

    assert timer.cancelled
    assert len(harness.engine.of("convert")) == 1


def test_error_response_leaves_state_alone():
    harness = _enabled()
    pending = harness.convert_and_fire("ka")
    pending.resolve(ErrorResponse(pending.seq, "dictionary missing"))
    assert harness.controller.mode == InputMode.PREEDIT


def test_disable_drops_late_replies():
    harness = _enabled()
    pending = harness.convert_and_fire("ka")
    harness.controller.disable()
    pending.resolve(ConvertResult(pending.seq, ("蚊",)))

    assert harness.controller.session.candidates == []
    assert harness.editor.lines == ["か"]


def test_keys_are_ignored_while_disabled():
    harness = _Harness()
    harness.controller.input("a")
    harness.controller.commit()
    assert harness.controller.session.kana == ""
    assert harness.editor.fed_keys == []


def test_toggle_and_shutdown():
    harness = _Harness()
    harness.controller.toggle()
    assert harness.controller.enabled
    harness.type("ka")

    stopped = []
    harness.controller.shutdown(lambda: stopped.append(True))
    assert harness.editor.lines == ["か"]
    assert not harness.controller.enabled
    assert harness.engine.stopped
    assert stopped == [True]
