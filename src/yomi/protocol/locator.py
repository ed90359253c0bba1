"""Resolve the conversion engine executable.

Lookup order:
    1. explicit override (config / YOMI_ENGINE_PATH)
    2. installed default: <data dir>/bin/yomi-engine
    3. development build: <project>/engine/target/debug/yomi-engine
    4. development build: <project>/engine/target/release/yomi-engine
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ..errors import ConfigurationError
from ..platform_utils import EXECUTABLE_SUFFIX, get_data_dir

logger = logging.getLogger(__name__)

ENGINE_NAME = "yomi-engine" + EXECUTABLE_SUFFIX

# src/yomi/protocol/locator.py -> project root
PROJECT_ROOT = Path(__file__).resolve().parents[3]


def candidate_paths(
    override: str | Path | None = None,
    data_dir: Path | None = None,
    project_root: Path | None = None,
) -> list[Path]:
    """Every location checked, in priority order."""
    data_dir = data_dir if data_dir is not None else get_data_dir()
    project_root = project_root if project_root is not None else PROJECT_ROOT

    paths = []
    if override:
        paths.append(Path(override).expanduser())
    paths.append(data_dir / "bin" / ENGINE_NAME)
    paths.append(project_root / "engine" / "target" / "debug" / ENGINE_NAME)
    paths.append(project_root / "engine" / "target" / "release" / ENGINE_NAME)
    return paths


def find_engine_path(
    override: str | Path | None = None,
    data_dir: Path | None = None,
    project_root: Path | None = None,
) -> Path | None:
    """Return the first readable engine executable, or None."""
    for path in candidate_paths(override, data_dir, project_root):
        if path.is_file() and os.access(path, os.R_OK):
            return path
    return None


def resolve_engine_path(
    override: str | Path | None = None,
    data_dir: Path | None = None,
    project_root: Path | None = None,
) -> Path:
    """Like ``find_engine_path`` but raise when nothing resolves.

    Raises:
        ConfigurationError: If no candidate exists.
    """
    path = find_engine_path(override, data_dir, project_root)
    if path is None:
        tried = ", ".join(str(p) for p in candidate_paths(override, data_dir, project_root))
        raise ConfigurationError(
            f"{ENGINE_NAME} not found (tried: {tried}). Build it or set YOMI_ENGINE_PATH."
        )
    logger.debug(f"Using engine executable {path}")
    return path
