#!/usr/bin/env python3
"""yomi: press Ctrl+J to type Japanese, press again to send the text"""

import logging
import signal
import threading
from concurrent.futures import TimeoutError as FutureTimeoutError

from .adapters.config_env import load_app_config
from .adapters.editor import BufferEditor
from .adapters.keyboard import KeyboardSource
from .adapters.scheduler import LoopScheduler
from .adapters.ui_feedback import UIFeedbackAdapter
from .async_bridge import AsyncBridge
from .core.config_model import AppConfig
from .core.controller import InputController
from .keymap import KeyBindings, KeyDispatcher
from .platform_utils import IS_WINDOWS, get_platform_info
from .protocol.client import EngineClient

logger = logging.getLogger(__name__)


class Yomi:
    """Main application: a compose buffer typed into the focused window.

    While Japanese input is on, keys are captured and fed to the
    controller; turning it off types the composed text out.
    """

    def __init__(self, config: AppConfig | None = None):
        self.config = config or load_app_config()
        self.bridge = AsyncBridge()
        self.ui = UIFeedbackAdapter(self.config.notifications_enabled)
        self.engine = EngineClient(
            self.config.engine_path,
            capabilities=self.config.engine_capabilities,
            ui=self.ui,
            start_timeout=self.config.start_timeout,
            stop_timeout=self.config.stop_timeout,
        )
        self.editor = BufferEditor(on_change=self._on_editor_change)
        self.dispatcher = KeyDispatcher()
        self.keyboard = KeyboardSource(self._on_key, self._on_toggle, self.config.toggle_key)
        self.controller: InputController | None = None
        self._shutdown_event = threading.Event()

    # --- Listener thread ---

    def _on_toggle(self):
        self.bridge.call_soon(self.controller.toggle)

    def _on_key(self, name: str):
        self.bridge.call_soon(self._dispatch, name)

    # --- Loop thread ---

    def _dispatch(self, name: str):
        if not self.dispatcher.dispatch(self.editor.current_buffer(), name):
            logger.debug(f"Unbound key {name}")

    def _on_mode_change(self, enabled: bool):
        if enabled:
            self.editor.reset()
            self.keyboard.set_capture(True)
            return
        text = self.editor.text()
        self.editor.reset()
        self.keyboard.set_capture(False)
        if text:
            print(f"✓ {text[:50]}..." if len(text) > 50 else f"✓ {text}")
            self.keyboard.type_text(text)

    def _on_editor_change(self, editor: BufferEditor):
        marker = " ⚠" if editor.overlay is not None and editor.overlay.invalid else ""
        print(f"\r\033[K{editor.render().replace(chr(10), ' ⏎ ')}{marker}", end="", flush=True)

    # --- Lifecycle ---

    def run(self):
        """Run the application"""
        print("\n" + "=" * 50)
        print("🚀 yomi")
        print("=" * 50)
        print(f"Toggle: {self.config.toggle_key}")
        print(f"Debounce: {self.config.debounce_ms} ms, live conversion: {self.config.live_conversion}")
        print("\nPress the toggle key to start/stop Japanese input")
        print("Press Ctrl+C to quit")
        print("=" * 50 + "\n")
        logger.debug(f"Platform: {get_platform_info()}")

        self.bridge.start()
        self.controller = InputController(
            self.engine,
            self.editor,
            KeyBindings(self.dispatcher),
            LoopScheduler(self.bridge.loop),
            self.ui,
            self.config,
            on_mode_change=self._on_mode_change,
        )
        self.keyboard.start()
        self.ui.notify("yomi ready", f"Press {self.config.toggle_key}")

        try:
            if IS_WINDOWS:
                self._shutdown_event.wait()
            else:
                while not self._shutdown_event.is_set():
                    signal.pause()
        except KeyboardInterrupt:
            pass

        self.shutdown()

    async def _shutdown_async(self):
        await self.controller.shutdown()

    def shutdown(self):
        """Clean shutdown"""
        print("\nShutting down...")
        self._shutdown_event.set()
        if self.controller is not None and self.bridge.is_running:
            try:
                self.bridge.run_sync(self._shutdown_async(), timeout=self.config.stop_timeout + 2)
            except FutureTimeoutError:
                logger.warning("Engine did not stop in time")
        self.keyboard.stop()
        self.bridge.stop()
        print("✓ Done")

    def request_shutdown(self):
        """Request application shutdown (thread-safe)"""
        self._shutdown_event.set()


def main():
    config = load_app_config()
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Yomi(config)

    def signal_handler(sig, frame):
        app.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    if not IS_WINDOWS:
        signal.signal(signal.SIGTERM, signal_handler)

    app.run()


if __name__ == "__main__":
    main()
