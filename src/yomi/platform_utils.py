"""Platform detection and data-directory helpers for yomi"""

import os
import platform
import sys
from pathlib import Path

# Platform detection
IS_WINDOWS = sys.platform == "win32"
IS_LINUX = sys.platform.startswith("linux")
IS_MACOS = sys.platform == "darwin"

EXECUTABLE_SUFFIX = ".exe" if IS_WINDOWS else ""


def get_data_home() -> Path:
    """Per-user data directory (XDG_DATA_HOME on Linux)."""
    if IS_WINDOWS:
        return Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    if IS_MACOS:
        return Path.home() / "Library" / "Application Support"
    xdg = os.environ.get("XDG_DATA_HOME")
    return Path(xdg) if xdg else Path.home() / ".local" / "share"


def get_data_dir() -> Path:
    """yomi's own data directory."""
    return get_data_home() / "yomi"


def get_platform_info() -> dict:
    """Get platform information for debug logging."""
    return {
        "system": platform.system(),
        "release": platform.release(),
        "machine": platform.machine(),
        "python_version": platform.python_version(),
        "is_windows": IS_WINDOWS,
        "is_linux": IS_LINUX,
        "is_macos": IS_MACOS,
        "data_dir": str(get_data_dir()),
    }
