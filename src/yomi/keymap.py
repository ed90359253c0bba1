"""Key binding table for yomi.

Literal keys feed the romaji buffer; a fixed set of control keys map to
named controller actions. Bindings are installed per editing target and
``teardown`` removes exactly what ``setup`` installed.
"""

from __future__ import annotations

import logging
import string
from functools import partial
from typing import Callable, Hashable

from .core.ports import KeyMapper

logger = logging.getLogger(__name__)

LITERAL_KEYS = tuple(string.ascii_lowercase + string.ascii_uppercase + "-'")

CONTROL_KEYS = {
    "<CR>": "commit",
    "<BS>": "backspace",
    "<Esc>": "escape",
    "<Space>": "next_candidate",
    "<S-Space>": "prev_candidate",
    "<C-g>": "cancel",
    "<Tab>": "next_segment",
    "<S-Tab>": "prev_segment",
    "<S-Left>": "shrink_segment",
    "<S-Right>": "extend_segment",
}

INPUT_ACTION = "input"


def action_for(key: str) -> tuple[str, str | None] | None:
    """Return ``(action, payload)`` for ``key``, or None if yomi leaves it alone."""
    if key in CONTROL_KEYS:
        return CONTROL_KEYS[key], None
    if key in LITERAL_KEYS:
        return INPUT_ACTION, key
    return None


class KeyBindings:
    """Installs the key table into a ``KeyMapper`` for one target at a time.

    Example:
        bindings = KeyBindings(dispatcher)
        bindings.setup(buffer, controller.handlers())
        ...
        bindings.teardown(buffer)
    """

    def __init__(self, mapper: KeyMapper):
        self._mapper = mapper
        self._installed: dict[Hashable, list[str]] = {}

    def setup(self, target: Hashable, handlers: dict[str, Callable]) -> None:
        """Bind every key whose action has a handler.

        ``handlers["input"]`` receives the literal key; every other handler
        takes no arguments. Calling ``setup`` twice replaces the first set.
        """
        self.teardown(target)

        installed = []
        on_input = handlers.get(INPUT_ACTION)
        if on_input is not None:
            for key in LITERAL_KEYS:
                self._mapper.set(target, key, partial(on_input, key))
                installed.append(key)

        for key, action in CONTROL_KEYS.items():
            handler = handlers.get(action)
            if handler is None:
                continue
            self._mapper.set(target, key, handler)
            installed.append(key)

        self._installed[target] = installed
        logger.debug(f"Installed {len(installed)} key bindings for {target!r}")

    def teardown(self, target: Hashable) -> None:
        """Remove what ``setup`` installed for ``target``; no-op otherwise."""
        keys = self._installed.pop(target, None)
        if not keys:
            return
        for key in keys:
            self._mapper.delete(target, key)
        logger.debug(f"Removed {len(keys)} key bindings for {target!r}")

    def installed(self, target: Hashable) -> tuple[str, ...]:
        return tuple(self._installed.get(target, ()))


class KeyDispatcher:
    """In-process ``KeyMapper``: a per-target table of key handlers."""

    def __init__(self):
        self._bindings: dict[Hashable, dict[str, Callable[[], None]]] = {}

    def set(self, target: Hashable, key: str, handler: Callable[[], None]) -> None:
        self._bindings.setdefault(target, {})[key] = handler

    def delete(self, target: Hashable, key: str) -> None:
        keys = self._bindings.get(target)
        if keys is None or key not in keys:
            raise KeyError(f"No binding for {key!r} in {target!r}")
        del keys[key]
        if not keys:
            del self._bindings[target]

    def bindings(self, target: Hashable) -> dict[str, Callable[[], None]]:
        return dict(self._bindings.get(target, {}))

    def dispatch(self, target: Hashable, key: str) -> bool:
        """Run the handler bound to ``key``; False if there is none."""
        handler = self._bindings.get(target, {}).get(key)
        if handler is None:
            return False
        handler()
        return True
