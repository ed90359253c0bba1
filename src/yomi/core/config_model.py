"""Core configuration model (structured view)."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AppConfig:
    engine_path: str | None = None
    debounce_ms: int = 30
    live_conversion: bool = True
    learning: bool = True
    notifications_enabled: bool = True
    start_timeout: float = 10.0
    stop_timeout: float = 3.0
    toggle_key: str = "ctrl+j"
    debug: bool = False
    # Passed verbatim in the engine's init request, keyed by capability name
    engine_capabilities: dict = field(default_factory=dict)
