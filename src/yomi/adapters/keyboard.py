"""Global keyboard source built on pynput.

Translates pynput key events into key-table names ("a", "<CR>",
"<S-Space>", ...) and detects the toggle hotkey. While capturing, the
listener suppresses keys so they only reach yomi; otherwise it just
watches for the hotkey. Callbacks run on pynput's listener thread, so
the app forwards them to the event loop.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from pynput import keyboard
from pynput.keyboard import Key

logger = logging.getLogger(__name__)

CTRL_KEYS = (Key.ctrl, Key.ctrl_l, Key.ctrl_r)
ALT_KEYS = (Key.alt, Key.alt_l, Key.alt_r)
SHIFT_KEYS = (Key.shift, Key.shift_l, Key.shift_r)

MODIFIERS = {"ctrl": CTRL_KEYS, "alt": ALT_KEYS, "shift": SHIFT_KEYS}

SPECIAL_KEYS = {
    Key.enter: "<CR>",
    Key.backspace: "<BS>",
    Key.esc: "<Esc>",
    Key.space: "<Space>",
    Key.tab: "<Tab>",
}

SHIFTED_KEYS = {
    Key.space: "<S-Space>",
    Key.tab: "<S-Tab>",
    Key.left: "<S-Left>",
    Key.right: "<S-Right>",
}


def parse_hotkey(hotkey: str) -> tuple[str, str]:
    """Split "ctrl+j" into ("ctrl", "j")."""
    modifier, sep, key = hotkey.lower().partition("+")
    if not sep or modifier not in MODIFIERS or not key:
        raise ValueError(f"Unsupported hotkey: {hotkey!r} (expected e.g. 'ctrl+j')")
    return modifier, key


def _key_id(key) -> str | None:
    """"j" for character keys, the pynput name ("space", "ctrl_l") otherwise."""
    char = getattr(key, "char", None)
    if char:
        return char.lower()
    return getattr(key, "name", None)


def key_name(key, shift: bool = False, ctrl: bool = False) -> str | None:
    """Key-table name for a pynput key, or None if yomi has no use for it."""
    if shift and key in SHIFTED_KEYS:
        return SHIFTED_KEYS[key]
    if key in SPECIAL_KEYS:
        return SPECIAL_KEYS[key]

    char = getattr(key, "char", None)
    if not char:
        return None
    if ctrl:
        return f"<C-{char.lower()}>"
    return char


class KeyboardSource:
    """Hotkey detection plus key forwarding."""

    def __init__(
        self,
        on_key: Callable[[str], None],
        on_toggle: Callable[[], None],
        hotkey: str = "ctrl+j",
    ):
        self.on_key = on_key
        self.on_toggle = on_toggle
        self.modifier, self.hotkey_key = parse_hotkey(hotkey)
        self.listener = None
        self.pressed_keys = set()
        self.hotkey_active = False
        self.capturing = False
        self._pending_text = ""
        self._text_lock = threading.Lock()

    def start(self, capture: bool = False):
        """Start (or restart) the listener."""
        self.stop()
        self.capturing = capture
        self.listener = keyboard.Listener(
            on_press=self._on_press,
            on_release=self._on_release,
            suppress=capture,
        )
        self.listener.start()
        logger.debug(f"Keyboard listener started (capture={capture})")

    def stop(self):
        if self.listener:
            self.listener.stop()
            self.listener = None

    def set_capture(self, capture: bool):
        """Switch between swallowing keys for yomi and passing them through."""
        if capture != self.capturing or self.listener is None:
            self.start(capture)

    def type_text(self, text: str):
        """Type ``text`` into the focused window once the hotkey is released."""
        if not text:
            return
        with self._text_lock:
            self._pending_text += text
        if not self._modifier_held():
            self._flush_text()

    def _flush_text(self):
        with self._text_lock:
            text, self._pending_text = self._pending_text, ""
        if text:
            keyboard.Controller().type(text)

    def _held(self, keys) -> bool:
        return any(k.name in self.pressed_keys for k in keys)

    def _modifier_held(self) -> bool:
        return self._held(MODIFIERS[self.modifier])

    def _is_hotkey_pressed(self) -> bool:
        return self._modifier_held() and self.hotkey_key in self.pressed_keys

    def _on_press(self, key):
        self.pressed_keys.add(_key_id(key))

        if self._is_hotkey_pressed():
            if not self.hotkey_active:
                self.hotkey_active = True
                self.on_toggle()
            return

        if not self.capturing:
            return
        name = key_name(key, shift=self._held(SHIFT_KEYS), ctrl=self._held(CTRL_KEYS))
        if name is not None:
            self.on_key(name)

    def _on_release(self, key):
        self.pressed_keys.discard(_key_id(key))

        if key in MODIFIERS[self.modifier]:
            self.hotkey_active = False
            if not self._modifier_held():
                self._flush_text()
