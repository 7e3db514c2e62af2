"""
Progress parsing and ETA tracking for ffmpeg-simple.

Contains:
- Parsing of ffmpeg stats lines into raw ProgressSamples
- EtaTracker: stateful ratio -> elapsed/remaining conversion
- BatchTracker: blends per-job progress into whole-batch progress
"""

import math
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from ffmpeg_simple.ui.legacy_ui import percent_string

INFINITY = math.inf


@dataclass
class ProgressSample:
    """Raw progress signal from the ffmpeg process."""

    percent: Optional[float] = None
    timemark: Optional[str] = None
    current_kbps: Optional[float] = None
    current_fps: Optional[float] = None
    target_size: Optional[int] = None  # kB
    speed: Optional[float] = None
    frame: Optional[int] = None


@dataclass
class ProgressView:
    """Normalized, cumulative progress."""

    ratio: float
    percent: float
    elapsed_ms: float
    remaining_ms: float
    bitrate_kbps: Optional[float] = None
    fps: Optional[float] = None
    size_bytes: Optional[int] = None
    timemark: Optional[str] = None
    speed: Optional[float] = None

    @property
    def eta_seconds(self) -> float:
        return self.remaining_ms / 1000.0

    @property
    def elapsed_seconds(self) -> float:
        return self.elapsed_ms / 1000.0

    @property
    def string(self) -> str:
        """Short display string: ``42% 00:01:02.00 1200 kbps``."""
        parts = [percent_string(self.percent)]
        if self.timemark:
            parts.append(self.timemark)
        if self.bitrate_kbps:
            parts.append(f"{int(self.bitrate_kbps)} kbps")
        return " ".join(parts)


# -------------------- PARSING --------------------

_TIME_RE = re.compile(r"time=\s*(-?\d+:\d+:\d+(?:[\.,]\d+)?)")
_FPS_RE = re.compile(r"fps=\s*([0-9.]+)")
_BITRATE_RE = re.compile(r"bitrate=\s*([0-9.]+)\s*kbits/s")
_SIZE_RE = re.compile(r"size=\s*(\d+)\s*(kB|KiB)")
_SPEED_RE = re.compile(r"speed=\s*([0-9.]+)x")
_FRAME_RE = re.compile(r"frame=\s*(\d+)")


def parse_timemark(timemark: str) -> float:
    """
    Convert an ffmpeg timemark into seconds.

    >>> parse_timemark("00:01:30.50")
    90.5
    """
    seconds = 0.0
    for i, part in enumerate(reversed(timemark.replace(",", ".").split(":"))):
        seconds += float(part) * (60**i)
    return seconds


def parse_progress_line(line: str) -> Optional[ProgressSample]:
    """
    Parse an ffmpeg stats line.

    Example line:
        frame=  100 fps=30.0 q=28.0 size=   1234kB time=00:00:10.00 bitrate=1000.0kbits/s speed=2.5x

    Returns:
        A ProgressSample, or None if the line carries no timemark.
    """
    m = _TIME_RE.search(line)
    if not m:
        return None
    sample = ProgressSample(timemark=m.group(1).replace(",", "."))

    m = _FPS_RE.search(line)
    if m:
        try:
            sample.current_fps = float(m.group(1))
        except ValueError:
            pass

    m = _BITRATE_RE.search(line)
    if m:
        try:
            sample.current_kbps = float(m.group(1))
        except ValueError:
            pass

    m = _SIZE_RE.search(line)
    if m:
        sample.target_size = int(m.group(1))

    m = _SPEED_RE.search(line)
    if m:
        try:
            sample.speed = float(m.group(1))
        except ValueError:
            pass

    m = _FRAME_RE.search(line)
    if m:
        sample.frame = int(m.group(1))

    return sample


# -------------------- TRACKERS --------------------


def clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


class EtaTracker:
    """
    Convert fractional completion into elapsed/remaining estimates.

    Ratio priority: ``ratio`` > ``percent / 100`` > ``count / total``. When
    none is given and a total is known, the count auto-increments, which
    makes the tracker usable as a plain iteration helper.
    """

    def __init__(self, total: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.total = total
        self.clock = clock
        self.start: Optional[float] = None
        self.count = 0

    def update(
        self,
        ratio: Optional[float] = None,
        percent: Optional[float] = None,
        count: Optional[int] = None,
        sample: Optional[ProgressSample] = None,
    ) -> ProgressView:
        if ratio is None:
            if percent is not None:
                ratio = percent / 100.0
            elif self.total:
                if count is not None:
                    self.count = count
                else:
                    self.count += 1
                ratio = self.count / self.total
            else:
                raise ValueError("Need either: ratio, percent or count with a total")

        now = self.clock()
        if self.start is None:
            self.start = now
        elapsed_ms = (now - self.start) * 1000.0

        ratio = clamp(float(ratio), 0.0, 1.0)
        percent = clamp(ratio * 100.0, 0.0, 100.0)
        if ratio <= 0:
            remaining_ms = INFINITY
        else:
            remaining_ms = max(0.0, elapsed_ms / ratio - elapsed_ms)

        view = ProgressView(ratio=ratio, percent=percent, elapsed_ms=elapsed_ms, remaining_ms=remaining_ms)
        if sample is not None:
            view.timemark = sample.timemark
            view.bitrate_kbps = sample.current_kbps
            view.fps = sample.current_fps
            view.speed = sample.speed
            if sample.target_size is not None:
                view.size_bytes = sample.target_size * 1024
        return view

    def update_sample(self, sample: ProgressSample, expected_duration: float) -> ProgressView:
        """Normalize an ffmpeg sample against the expected output duration."""
        if sample.percent is not None:
            return self.update(percent=sample.percent, sample=sample)
        if sample.timemark and expected_duration > 0:
            return self.update(ratio=parse_timemark(sample.timemark) / expected_duration, sample=sample)
        return self.update(ratio=0.0, sample=sample)


class BatchTracker:
    """
    Whole-batch progress over sequential jobs.

    The blended ratio is ``(completed + current_ratio) / total`` so the ETA
    covers the remaining jobs, not only the running one.
    """

    def __init__(self, total_jobs: int, clock: Callable[[], float] = time.monotonic):
        self.total_jobs = max(1, total_jobs)
        self.completed = 0
        self.clock = clock
        self.tracker = EtaTracker(clock=clock)

    def child(self) -> EtaTracker:
        """Tracker for the job about to start."""
        if self.tracker.start is None:
            self.tracker.update(ratio=self.completed / self.total_jobs)
        return EtaTracker(clock=self.clock)

    def update(self, job_view: ProgressView) -> ProgressView:
        """Blend the running job's view into batch progress."""
        ratio = (self.completed + clamp(job_view.ratio, 0.0, 1.0)) / self.total_jobs
        view = self.tracker.update(ratio=ratio)
        view.timemark = job_view.timemark
        view.bitrate_kbps = job_view.bitrate_kbps
        view.fps = job_view.fps
        view.size_bytes = job_view.size_bytes
        view.speed = job_view.speed
        return view

    def job_done(self) -> ProgressView:
        self.completed = min(self.total_jobs, self.completed + 1)
        return self.tracker.update(ratio=self.completed / self.total_jobs)
