"""Configuration for yomi"""
import os

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").lower() == "true"


def _env_number(name: str, default, kind):
    raw = os.getenv(name, "")
    if raw == "":
        return default
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


class Config:
    """Settings read from the environment (and a .env file, if present)"""

    def __init__(self):
        # Engine
        self.ENGINE_PATH = os.getenv("YOMI_ENGINE_PATH") or None
        self.ENGINE_START_TIMEOUT = _env_number("ENGINE_START_TIMEOUT", 10.0, float)
        self.ENGINE_STOP_TIMEOUT = _env_number("ENGINE_STOP_TIMEOUT", 3.0, float)

        # Conversion
        self.DEBOUNCE_MS = _env_number("DEBOUNCE_MS", 30, int)
        self.LIVE_CONVERSION = _env_bool("LIVE_CONVERSION", True)
        # Report commits to the engine so it can learn
        self.LEARNING = _env_bool("LEARNING", True)

        # Neural conversion (passed through to the engine on init)
        self.ZENZAI_ENABLED = _env_bool("ZENZAI_ENABLED", False)
        self.ZENZAI_MODEL_PATH = os.getenv("ZENZAI_MODEL_PATH", "")
        self.ZENZAI_INFERENCE_LIMIT = _env_number("ZENZAI_INFERENCE_LIMIT", 10, int)
        self.ZENZAI_CONTEXTUAL = _env_bool("ZENZAI_CONTEXTUAL", False)

        # Hotkey toggling Japanese input, e.g. "ctrl+j" or "alt+space"
        self.TOGGLE_KEY = os.getenv("TOGGLE_KEY", "ctrl+j").lower()

        self.NOTIFICATIONS_ENABLED = _env_bool("NOTIFICATIONS_ENABLED", True)
        self.DEBUG = _env_bool("DEBUG", False)

        if self.DEBOUNCE_MS < 0:
            raise ConfigurationError(f"DEBOUNCE_MS must not be negative, got {self.DEBOUNCE_MS}")

    def engine_capabilities(self) -> dict:
        """Capability configuration sent in the engine's init request."""
        zenzai = {
            "enabled": self.ZENZAI_ENABLED,
            "inference_limit": self.ZENZAI_INFERENCE_LIMIT,
            "contextual": self.ZENZAI_CONTEXTUAL,
        }
        if self.ZENZAI_MODEL_PATH:
            zenzai["model_path"] = self.ZENZAI_MODEL_PATH
        return {"zenzai": zenzai}


config = Config()
