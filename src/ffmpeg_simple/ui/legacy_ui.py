"""
Plain-text progress UI for ffmpeg-simple.

Used when rich output is disabled or stdout is not a terminal. Also holds
the human-readable formatters shared by every UI.
"""

import math
import shutil
import sys
import traceback
from dataclasses import dataclass
from typing import Iterable, Optional, TextIO, Tuple

SIZE_UNITS = (("GB", 1024**3), ("MB", 1024**2), ("KB", 1024))
DURATION_UNITS = (("days", 86400), ("hours", 3600), ("minutes", 60))


def term_width(fallback: int = 120) -> int:
    try:
        return shutil.get_terminal_size((fallback, 20)).columns
    except (OSError, ValueError):
        return fallback


def mkbar(pct: float, width: int = 26) -> str:
    """``#`` for the done share of ``width``, ``-`` for the rest."""
    done = int(min(max(pct, 0), 100) * width / 100)
    return "#" * done + "-" * (width - done)


def shorten(s: str, maxlen: int) -> str:
    """Cut ``s`` to ``maxlen`` characters, ending in ``...`` when there's room."""
    if len(s) <= maxlen:
        return s
    if maxlen <= 3:
        return s[: max(maxlen, 0)]
    return s[: maxlen - 3] + "..."


def fmt_hms(seconds: Optional[float]) -> str:
    """Format seconds as HH:MM:SS (``--:--:--`` when unknown)."""
    if seconds is None or not math.isfinite(seconds):
        return "--:--:--"
    minutes, secs = divmod(int(round(max(seconds, 0))), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def size_string(size: float) -> str:
    """Format a byte count with the largest fitting unit (``12 MB``)."""
    for unit, factor in SIZE_UNITS:
        if size > factor:
            return f"{size / factor:.0f} {unit}"
    return f"{size:.0f} b"


def duration_string(seconds: float) -> str:
    """Format seconds with the largest fitting unit (``3 minutes``)."""
    if seconds is None or math.isinf(seconds):
        return "∞"
    for unit, factor in DURATION_UNITS:
        if seconds > factor:
            return f"{seconds / factor:.0f} {unit}"
    return f"{seconds:.0f} seconds"


def percent_string(percent: float) -> str:
    """One decimal below 10 %, whole numbers above."""
    percent = float(percent)
    if percent < 10:
        return f"{percent:.1f}%"
    return f"{int(percent)}%"


def ratio_string(ratio: Optional[float]) -> str:
    """Format an output/input ratio as a signed change (``+12%``)."""
    if ratio is None:
        return "?"
    return f"{(ratio - 1) * 100:+.0f}%"


@dataclass
class JobCounts:
    """Outcome counters shared by the UIs."""

    ok: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.ok + self.skipped + self.failed

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.ok, self.skipped, self.failed, self.processed)


@dataclass
class ProgressLine:
    """One frame of the plain progress line."""

    stage: str
    percent: int
    index: int
    total: int
    name: str
    eta: str
    speed: str = ""
    elapsed: str = ""

    def format(self, bar_width: int, columns: int) -> str:
        head = f"[{mkbar(self.percent, bar_width)}] {self.percent:3d}% | {self.stage} | ({self.index}/{self.total})"
        if self.elapsed:
            head += f" {self.elapsed}"
        tail = " ".join(x for x in ("|", self.eta, self.speed) if x)
        room = max(10, columns - len(head) - len(tail) - 3)
        return f"{head} {shorten(self.name, room)} {tail}"


class LegacyProgressUI:
    """Carriage-return progress line for dumb terminals and pipes."""

    def __init__(self, progress: bool = True, bar_width: int = 26, silent: bool = False, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.silent = silent
        self.enabled = progress and not silent and self.stream.isatty()
        self.bar_width = bar_width
        self.counts = JobCounts()
        self._shown = ""

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    def _wipe(self) -> None:
        if self._shown:
            self._write("\r" + " " * len(self._shown) + "\r")
            self._shown = ""

    def draw(self, line: ProgressLine) -> None:
        if not self.enabled:
            return
        text = line.format(self.bar_width, term_width())
        if text == self._shown:
            return
        # Pad over the tail of a longer previous frame
        self._write("\r" + text.ljust(len(self._shown)))
        self._shown = text

    def progress(self, name: str, view, cur: int = 1, total: int = 1, stage: str = "RUN", batch_view=None) -> None:
        """Draw a ProgressView; timings come from the batch view when given."""
        timing = view if batch_view is None else batch_view
        self.draw(
            ProgressLine(
                stage=stage,
                percent=int(view.percent),
                index=cur,
                total=total,
                name=name,
                eta=fmt_hms(timing.eta_seconds),
                speed=f"{view.speed:.1f}x" if view.speed else "",
                elapsed=fmt_hms(timing.elapsed_seconds),
            )
        )

    def endline(self) -> None:
        if self.enabled:
            self._wipe()

    def log(self, msg: str) -> None:
        if self.silent:
            return
        self.endline()
        print(msg, file=self.stream, flush=True)

    def warn(self, msg: str) -> None:
        """Warnings are printed even in silent mode."""
        self.endline()
        print(f"WARNING: {msg}", file=sys.stderr, flush=True)

    def error(self, msg: str) -> None:
        self.endline()
        print(f"FAILED: {msg}", file=sys.stderr, flush=True)

    def print_exception(self) -> None:
        traceback.print_exc()

    def log_file_start(self, inp: str, output: str) -> None:
        self.log(f"==> {inp}")
        self.log(f"   -> {output}")

    def log_skip(self, reason: str) -> None:
        self.log(f"   SKIP: {reason}")
        self.counts.skipped += 1

    def log_error(self, error: str) -> None:
        self.error(error)
        self.counts.failed += 1

    def log_success(self, elapsed: float, output_size: int = 0) -> None:
        size = f" ({size_string(output_size)})" if output_size > 0 else ""
        self.log(f"   DONE in {fmt_hms(elapsed)}{size}")
        self.counts.ok += 1

    def print_summary(self, total_time: float, failures: Iterable[Tuple[str, str]] = ()) -> None:
        lines = [
            "",
            "=== Summary ===",
            f"Converted: {self.counts.ok}",
            f"Skipped: {self.counts.skipped}",
            f"Failed: {self.counts.failed}",
        ]
        lines += [f"  {inp}: {message}" for inp, message in failures]
        lines.append(f"Total time: {fmt_hms(total_time)}")
        print("\n".join(lines), file=self.stream, flush=True)

    def get_stats(self) -> Tuple[int, int, int, int]:
        """(ok, skipped, failed, processed)"""
        return self.counts.as_tuple()
