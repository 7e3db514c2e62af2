"""
User interface components for ffmpeg-simple.

Provides both Rich-based and plain-text progress displays.
"""

from ffmpeg_simple.ui.legacy_ui import JobCounts, LegacyProgressUI, ProgressLine
from ffmpeg_simple.ui.simple_rich import SimpleRichUI, _should_use_color

__all__ = [
    "LegacyProgressUI",
    "SimpleRichUI",
    "JobCounts",
    "ProgressLine",
    "make_ui",
]


def make_ui(progress: bool = True, silent: bool = False):
    """Rich UI on a color terminal, plain text otherwise."""
    if _should_use_color():
        return SimpleRichUI(progress_enabled=progress, silent=silent)
    return LegacyProgressUI(progress=progress, silent=silent)
