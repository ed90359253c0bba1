"""Env configuration adapter producing a structured AppConfig."""

from __future__ import annotations

from ..config import Config
from ..config import config as env_config
from ..core.config_model import AppConfig


def load_app_config(source: Config | None = None) -> AppConfig:
    source = source or env_config
    return AppConfig(
        engine_path=source.ENGINE_PATH,
        debounce_ms=source.DEBOUNCE_MS,
        live_conversion=source.LIVE_CONVERSION,
        learning=source.LEARNING,
        notifications_enabled=source.NOTIFICATIONS_ENABLED,
        start_timeout=source.ENGINE_START_TIMEOUT,
        stop_timeout=source.ENGINE_STOP_TIMEOUT,
        toggle_key=source.TOGGLE_KEY,
        debug=source.DEBUG,
        engine_capabilities=source.engine_capabilities(),
    )
