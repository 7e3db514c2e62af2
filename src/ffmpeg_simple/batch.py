"""
Batch processing for ffmpeg-simple.

Batches run in two phases that never interleave: every job is compiled
first (probing inputs, no side effects), then the compiled jobs run one
at a time. A failing job aborts the batch when its ``halt`` policy is
set; otherwise the failure is collected and the batch goes on.
"""

import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from ffmpeg_simple.compiler import CompiledJob
from ffmpeg_simple.errors import FfmpegSimpleError
from ffmpeg_simple.options import JobOptions
from ffmpeg_simple.progress import BatchTracker
from ffmpeg_simple.runner import Runner, RunResult


@dataclass
class JobFailure:
    """A job that failed, with its originating input."""

    input: str
    error: FfmpegSimpleError

    @property
    def message(self) -> str:
        return self.error.message


@dataclass
class BatchSummary:
    """Counts and failures of a finished batch."""

    total: int = 0
    results: List[RunResult] = field(default_factory=list)
    failures: List[JobFailure] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def succeeded(self) -> List[RunResult]:
        return [r for r in self.results if r.ok or r.dry_run]

    @property
    def skipped(self) -> List[RunResult]:
        return [r for r in self.results if r.skipped]

    @property
    def ok(self) -> bool:
        return not self.failures

    def failure_rows(self) -> List[Tuple[str, str]]:
        return [(f.input, f.message) for f in self.failures]


def _input_label(opts: JobOptions) -> str:
    if opts.inputs:
        return ", ".join(str(i) for i in opts.inputs)
    return str(opts.input or opts.output or "?")


def compile_all(runner: Runner, jobs: Sequence[Any], summary: BatchSummary) -> List[CompiledJob]:
    """
    Phase one: compile every job.

    Raises:
        FfmpegSimpleError: The first failure of a job with ``halt`` set.
    """
    compiled: List[CompiledJob] = []
    for item in jobs:
        if isinstance(item, CompiledJob):
            compiled.append(item)
            continue
        opts = runner.job_options(item)
        try:
            compiled.append(runner.prepare(opts))
        except FfmpegSimpleError as e:
            label = e.input_path or _input_label(opts)
            runner.ui.log_error(f"{label}: {e.message}")
            summary.failures.append(JobFailure(label, e))
            if opts.halt:
                raise
    return compiled


def run_all(runner: Runner, compiled: Sequence[CompiledJob], summary: BatchSummary) -> None:
    """
    Phase two: run the compiled jobs sequentially.

    Raises:
        FfmpegSimpleError: The first failure of a job with ``halt`` set.
    """
    tracker = BatchTracker(len(compiled))
    for index, job in enumerate(compiled, start=1):
        try:
            summary.results.append(runner.run(job, batch=tracker, index=index, total=len(compiled)))
        except FfmpegSimpleError as e:
            label = job.inputs[0] if job.inputs else job.output
            runner.ui.log_error(f"{label}: {e.message}")
            summary.failures.append(JobFailure(label, e))
            if job.options.halt:
                raise
        finally:
            tracker.job_done()


def run_batch(runner: Runner, jobs: Sequence[Any], show_summary: Optional[bool] = None) -> BatchSummary:
    """
    Compile then run every job.

    Args:
        runner: Runner shared by every job (one prober cache, one UI).
        jobs: JobOptions, mappings, paths or already compiled jobs.
        show_summary: Print the summary table. Defaults to True for more
            than one job.

    Raises:
        FfmpegSimpleError: When a job with ``halt`` set fails.
    """
    start = time.time()
    summary = BatchSummary(total=len(jobs))
    if runner.json_out is not None:
        runner.json_out.start(len(jobs))

    compiled = compile_all(runner, jobs, summary)
    run_all(runner, compiled, summary)

    summary.elapsed = time.time() - start
    if runner.json_out is not None:
        runner.json_out.complete()
    if show_summary is None:
        show_summary = len(jobs) > 1
    if show_summary and not runner.config.silent:
        runner.ui.print_summary(summary.elapsed, summary.failure_rows())
    return summary
