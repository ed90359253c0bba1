import pytest

keyboard = pytest.importorskip("pynput.keyboard")

from yomi.adapters.keyboard import KeyboardSource, key_name, parse_hotkey  # noqa: E402

Key = keyboard.Key
KeyCode = keyboard.KeyCode


def test_parse_hotkey():
    assert parse_hotkey("ctrl+j") == ("ctrl", "j")
    assert parse_hotkey("Alt+Space") == ("alt", "space")


@pytest.mark.parametrize("hotkey", ["j", "ctrl+", "super+j", ""])
def test_parse_hotkey_rejects(hotkey):
    with pytest.raises(ValueError):
        parse_hotkey(hotkey)


def test_key_names():
    assert key_name(KeyCode.from_char("k")) == "k"
    assert key_name(KeyCode.from_char("K"), shift=True) == "K"
    assert key_name(Key.enter) == "<CR>"
    assert key_name(Key.backspace) == "<BS>"
    assert key_name(Key.space) == "<Space>"
    assert key_name(Key.space, shift=True) == "<S-Space>"
    assert key_name(Key.right, shift=True) == "<S-Right>"
    assert key_name(KeyCode.from_char("g"), ctrl=True) == "<C-g>"


def test_keys_without_a_name():
    assert key_name(Key.right) is None
    assert key_name(Key.f5) is None


def _source(hotkey="ctrl+j"):
    events = []
    source = KeyboardSource(events.append, lambda: events.append("toggle"), hotkey)
    return source, events


def test_hotkey_toggles_once_per_press():
    source, events = _source()
    source._on_press(Key.ctrl_l)
    source._on_press(KeyCode.from_char("j"))
    source._on_press(KeyCode.from_char("j"))
    source._on_release(KeyCode.from_char("j"))
    source._on_release(Key.ctrl_l)
    source._on_press(Key.ctrl_l)
    source._on_press(KeyCode.from_char("j"))

    assert events == ["toggle", "toggle"]


def test_named_hotkey_key():
    source, events = _source("alt+space")
    source._on_press(Key.alt_l)
    source._on_press(Key.space)
    assert events == ["toggle"]


def test_keys_are_forwarded_only_while_capturing():
    source, events = _source()
    source._on_press(KeyCode.from_char("a"))
    source._on_release(KeyCode.from_char("a"))
    assert events == []

    source.capturing = True
    source._on_press(Key.shift)
    source._on_press(Key.tab)
    source._on_release(Key.tab)
    source._on_release(Key.shift)
    source._on_press(KeyCode.from_char("k"))
    assert events == ["<S-Tab>", "k"]
