"""yomi - live romaji to Japanese input method front-end"""

__version__ = "0.1.0"
__description__ = "Live, segment-based romaji to kana to kanji input front-end"

__all__ = ["main", "Yomi", "__version__"]


def __getattr__(name: str):
    """Lazy import to avoid triggering pynput initialization on package import.

    This allows importing yomi.romaji or yomi.protocol without requiring an
    X display, which is needed for CI/headless environments.
    """
    if name == "Yomi":
        from .main import Yomi

        return Yomi
    if name == "main":
        from .main import main

        return main
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
