"""
JSON progress output for ffmpeg-simple.

One JSON object per line on stdout, for integration with other
applications (web UIs, monitoring tools, etc.). Events: ``start``,
``file_start``, ``progress``, ``file_done``, ``complete``.
"""

import json
import math
import sys
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, TextIO

from ffmpeg_simple.progress import ProgressView


def _finite(value: Optional[float]) -> Optional[float]:
    """JSON has no infinity."""
    if value is None or math.isinf(value) or math.isnan(value):
        return None
    return value


@dataclass
class JobProgress:
    """Progress information for a single job."""

    input: str
    output: str = ""
    status: str = "queued"  # "running", "done", "skipped", "failed"
    progress_percent: float = 0.0
    timemark: Optional[str] = None
    expected_duration: float = 0.0
    fps: Optional[float] = None
    speed: Optional[float] = None
    bitrate_kbps: Optional[float] = None
    size_bytes: Optional[int] = None
    eta_seconds: Optional[float] = None
    error: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None


@dataclass
class OverallProgress:
    """Overall progress for the whole run."""

    total_jobs: int = 0
    processed_jobs: int = 0
    succeeded_jobs: int = 0
    skipped_jobs: int = 0
    failed_jobs: int = 0
    current_input: Optional[str] = None
    overall_percent: float = 0.0
    eta_seconds: Optional[float] = None
    started_at: Optional[float] = None


@dataclass
class JSONProgressState:
    """Complete state for JSON progress output."""

    version: str = "1.0"
    timestamp: float = field(default_factory=time.time)
    event: str = "progress"
    overall: OverallProgress = field(default_factory=OverallProgress)
    jobs: Dict[str, JobProgress] = field(default_factory=dict)


class JSONProgressOutput:
    """Manages JSON progress output to stdout."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.state = JSONProgressState()

    def _emit(self, event: str, extra: Optional[Dict[str, Any]] = None) -> None:
        """Emit a JSON progress event."""
        self.state.timestamp = time.time()
        self.state.event = event
        output = asdict(self.state)
        if extra:
            output.update(extra)
        print(json.dumps(output), file=self.stream, flush=True)

    def start(self, total_jobs: int) -> None:
        """Signal start of processing."""
        self.state.overall = OverallProgress(total_jobs=total_jobs, started_at=time.time())
        self._emit("start")

    def file_start(self, inp: str, output: str, expected_duration: float = 0.0) -> None:
        """Signal a job's ffmpeg process has started."""
        self.state.jobs[inp] = JobProgress(
            input=inp,
            output=output,
            status="running",
            expected_duration=expected_duration,
            started_at=time.time(),
        )
        self.state.overall.current_input = inp
        self._emit("file_start", {"file": inp})

    def progress(self, inp: str, view: ProgressView, batch_view: Optional[ProgressView] = None) -> None:
        """Update progress for the running job."""
        job = self.state.jobs.get(inp)
        if job is None:
            return
        job.progress_percent = view.percent
        job.timemark = view.timemark
        job.fps = view.fps
        job.speed = view.speed
        job.bitrate_kbps = view.bitrate_kbps
        job.size_bytes = view.size_bytes
        job.eta_seconds = _finite(view.eta_seconds)
        if batch_view is not None:
            self.state.overall.overall_percent = batch_view.percent
            self.state.overall.eta_seconds = _finite(batch_view.eta_seconds)
        self._emit("progress")

    def file_done(
        self,
        inp: str,
        output: Optional[str] = None,
        skipped: bool = False,
        error: Optional[str] = None,
    ) -> None:
        """Signal a job has finished."""
        job = self.state.jobs.setdefault(inp, JobProgress(input=inp))
        job.finished_at = time.time()
        if error:
            job.status = "failed"
            job.error = error
            self.state.overall.failed_jobs += 1
        elif skipped:
            job.status = "skipped"
            self.state.overall.skipped_jobs += 1
        else:
            job.status = "done"
            job.progress_percent = 100.0
            self.state.overall.succeeded_jobs += 1
        if output:
            job.output = output

        overall = self.state.overall
        overall.processed_jobs += 1
        if overall.total_jobs:
            overall.overall_percent = min(100.0, overall.processed_jobs / overall.total_jobs * 100)
        self._emit("file_done", {"file": inp, "status": job.status})

    def complete(self) -> None:
        """Signal all processing is complete."""
        self.state.overall.overall_percent = 100.0
        self.state.overall.current_input = None
        self._emit("complete")
