import subprocess

from yomi import ui_feedback
from yomi.adapters.ui_feedback import UIFeedbackAdapter
from yomi.core.cancel_token import CancelToken


def test_notify_runs_notify_send(monkeypatch):
    calls = []
    monkeypatch.setattr(subprocess, "run", lambda args, **kwargs: calls.append(args))
    ui_feedback.notify("あ Japanese input", "Enabled")
    assert calls == [["notify-send", "-a", "yomi", "-t", "2000", "あ Japanese input", "Enabled"]]


def test_notify_tolerates_missing_notify_send(monkeypatch, caplog):
    def _missing(args, **kwargs):
        raise FileNotFoundError("notify-send")

    monkeypatch.setattr(subprocess, "run", _missing)
    caplog.set_level("DEBUG")
    ui_feedback.notify("title", "message")
    assert "Notification failed" in caplog.text


def test_adapter_respects_enabled_flag(monkeypatch):
    calls = []
    monkeypatch.setattr("yomi.adapters.ui_feedback.notify", lambda title, message: calls.append(title))
    UIFeedbackAdapter(enabled=False).notify("off", "x")
    UIFeedbackAdapter().notify("on", "x")
    assert calls == ["on"]


def test_cancel_token_runs_callbacks_once():
    token = CancelToken()
    seen = []
    token.on_cancel(lambda: seen.append("early"))
    token.cancel()
    token.cancel()
    token.on_cancel(lambda: seen.append("late"))

    assert token.cancelled
    assert seen == ["early", "late"]
