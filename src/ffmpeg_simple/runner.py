"""
Run orchestration for ffmpeg-simple.

A job goes Compiled -> OutputResolved -> Running -> Ended ->
[PostProcessing] -> Done | Failed. Post-processing covers the rotation
metadata pass, the integrity probe and the optional replace-in-place.
"""

import os
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from ffmpeg_simple.compiler import CompiledJob, compile_job
from ffmpeg_simple.config import Config
from ffmpeg_simple.errors import Cancelled, FfmpegSimpleError, ReconciliationError
from ffmpeg_simple.fileops import file_size, remove, replace_in_place, swap_into
from ffmpeg_simple.integrity import IntegrityReport, check_output
from ffmpeg_simple.json_progress import JSONProgressOutput
from ffmpeg_simple.options import JobOptions, resolve_inputs
from ffmpeg_simple.process import FfmpegProcess, RunHooks
from ffmpeg_simple.progress import BatchTracker, EtaTracker, ProgressSample
from ffmpeg_simple.prober import ProbeCache, Prober
from ffmpeg_simple.reconcile import OutputReconciler, ReconcilePolicy
from ffmpeg_simple.ui import make_ui

ProcessFactory = Callable[..., FfmpegProcess]


@dataclass
class RunResult:
    """Outcome of one job."""

    input: str
    output: str
    ok: bool = False
    skipped: bool = False
    dry_run: bool = False
    elapsed: float = 0.0
    command: str = ""
    report: Optional[IntegrityReport] = None
    replaced: bool = False


def rotated_temp_path(output: str) -> str:
    """``/d/a.mp4`` -> ``/d/a.rotated.<pid>.mp4`` (same container)."""
    p = Path(output)
    return str(p.with_name(f"{p.stem}.rotated.{os.getpid()}{p.suffix}"))


class Runner:
    """
    Drives compiled jobs through ffmpeg.

    Every collaborator is injectable: the prober (and its cache), the UI,
    the reconciler and the factory building the ffmpeg process.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        prober: Optional[Prober] = None,
        ui=None,
        json_out: Optional[JSONProgressOutput] = None,
        reconciler: Optional[OutputReconciler] = None,
        process_factory: ProcessFactory = FfmpegProcess,
        attended: Optional[bool] = None,
    ):
        self.config = config or Config.for_library()
        self.prober = prober or Prober(self.config.ffprobe, cache=ProbeCache())
        self.ui = ui or make_ui(progress=self.config.progress, silent=self.config.silent)
        self.json_out = json_out
        self.reconciler = reconciler or OutputReconciler(prober=self.prober, log=self.ui.log)
        self.process_factory = process_factory
        if attended is None:
            attended = _stdin_is_tty() and not self.config.json_progress
        self.attended = attended

    # ---- Compiled ----

    def job_options(self, options) -> JobOptions:
        """
        Coerce ``options`` into JobOptions.

        Paths and mappings start from the configured policy defaults;
        JobOptions instances are used as given.
        """
        if isinstance(options, (str, os.PathLike)):
            options = {"input": str(options)}
        if isinstance(options, dict):
            return JobOptions.from_record({**self.config.job_defaults(), **options})
        if callable(options):
            return JobOptions.from_record({**self.config.job_defaults(), "callback": options})
        return JobOptions.coerce(options)

    def prepare(self, options) -> CompiledJob:
        """
        Resolve inputs, probe them and compile the job.

        Nothing is written and no process is started.

        Raises:
            CompileError: On invalid options or missing inputs.
            ProbeError: If an input can't be probed.
        """
        opts = self.job_options(options)
        inputs = resolve_inputs(opts)
        metadata = self.prober.probe_many(inputs, workers=self.config.probe_workers, cache=opts.cache)
        return compile_job(opts, metadata, default_suffix=self.config.suffix)

    # ---- Running ----

    def run(
        self,
        job: CompiledJob,
        batch: Optional[BatchTracker] = None,
        index: int = 1,
        total: int = 1,
    ) -> RunResult:
        """
        Run one compiled job to completion.

        Raises:
            ReconciliationError: If the output exists and wasn't resolved.
            RunError: If ffmpeg fails.
            ReplaceError: If the in-place replace failed.
        """
        name = job.inputs[0] if job.inputs else job.output
        result = RunResult(input=name, output=job.output)

        try:
            if self.config.dryrun:
                result.command = job.command_line(self.config.ffmpeg)
                result.dry_run = True
                print(result.command)
                return result
            return self._run(job, result, batch, index, total)
        except FfmpegSimpleError as e:
            if self.json_out is not None:
                self.json_out.file_done(name, job.output, error=e.message)
            raise
        finally:
            for path in job.temp_files:
                if os.path.exists(path):
                    os.remove(path)

    def _run(self, job: CompiledJob, result: RunResult, batch, index: int, total: int) -> RunResult:
        opts = job.options
        quiet = opts.silent

        # OutputResolved
        policy = ReconcilePolicy.from_options(opts, attended=self.attended)
        outcome = self.reconciler.reconcile(job.output, policy)
        if outcome.skipped:
            if not quiet:
                self.ui.log_skip(f"output exists: {outcome.output}")
            if self.json_out is not None:
                self.json_out.file_done(result.input, outcome.output, skipped=True)
            result.skipped = True
            return result
        if outcome.cancelled:
            raise Cancelled(outcome.output)
        if not outcome.ok:
            raise ReconciliationError(
                f"Output exists: {outcome.output} (use --overwrite or --skip)", input_path=result.input
            )
        job.output = outcome.output
        result.output = job.output

        argv = job.args(self.config.ffmpeg)
        if not quiet:
            self.ui.log_file_start(result.input, job.output)
        if self.json_out is not None:
            self.json_out.file_start(result.input, job.output, job.expected_duration)

        started = time.time()
        tracker = batch.child() if batch is not None else EtaTracker()
        self._execute(argv, job, tracker, batch, index, total, stage="RUN", quiet=quiet)
        result.command = job.command_line(self.config.ffmpeg)

        # PostProcessing
        if job.rotate_meta is not None:
            self.rotate_metadata(job.output, job.rotate_meta, recoverable=opts.trash)

        result.report = check_output(self.prober, job.output, job.input_size, job.expected_duration)
        if result.report.warning:
            self.ui.warn(result.report.warning)
        elif not quiet:
            for line in result.report.lines():
                self.ui.log(f"  {line}")

        if opts.replace:
            replace_in_place(job.inputs[0], job.output)
            result.output = job.inputs[0]
            result.replaced = True
            self.prober.cache.discard(job.inputs[0])

        result.ok = True
        result.elapsed = time.time() - started
        if not quiet:
            self.ui.log_success(result.elapsed, file_size(result.output))
        if self.json_out is not None:
            self.json_out.file_done(result.input, result.output)
        return result

    def _execute(
        self,
        argv: List[str],
        job: CompiledJob,
        tracker: EtaTracker,
        batch: Optional[BatchTracker],
        index: int,
        total: int,
        stage: str,
        quiet: bool,
    ) -> None:
        name = os.path.basename(job.inputs[0]) if job.inputs else job.output
        log_path = job.options.log_file
        log: Optional[TextIO] = None
        if log_path:
            log = open(os.path.expanduser(log_path), "a", encoding="utf-8", errors="replace")

        def on_start(command_line: str) -> None:
            if log is not None:
                log.write(f"CMD: {command_line}\n")
            if self.config.verbose and not quiet:
                self.ui.log(f"CMD: {command_line}")

        def on_stderr(line: str) -> None:
            if log is not None:
                log.write(line + "\n")
            if self.config.verbose and not quiet:
                self.ui.log(line)

        def on_progress(sample: ProgressSample) -> None:
            view = tracker.update_sample(sample, job.expected_duration)
            batch_view = batch.update(view) if batch is not None else None
            if not quiet:
                self.ui.progress(name, view, index, total, stage, batch_view)
            if self.json_out is not None and stage == "RUN":
                self.json_out.progress(job.inputs[0], view, batch_view)

        hooks = RunHooks(on_start=on_start, on_stderr=on_stderr, on_progress=on_progress)
        process = self.process_factory(argv, timeout=self.config.timeout, attended=self.attended and not quiet)
        try:
            process.run(hooks)
        finally:
            self.ui.endline()
            if log is not None:
                log.close()

    # ---- PostProcessing ----

    def rotate_metadata(self, output: str, rotate: int, recoverable: bool = True) -> None:
        """
        Write rotation metadata into ``output`` without re-encoding.

        A silent stream-copy job writes to a temporary file that is then
        swapped over ``output``.
        """
        temp = rotated_temp_path(output)
        opts = JobOptions(
            input=output,
            output=temp,
            copy=True,
            output_options=["-map", "0", "-metadata:s:v:0", f"rotate={int(rotate)}"],
            silent=True,
            overwrite=True,
            trash=recoverable,
            cache=False,
        )
        sub = self.prepare(opts)
        self._execute(sub.args(self.config.ffmpeg), sub, EtaTracker(), None, 1, 1, stage="ROTATE", quiet=True)
        swap_into(temp, output, delete=lambda p: remove(p, recoverable=recoverable))
        self.prober.cache.discard(output)

    def run_options(self, options) -> RunResult:
        """Prepare and run a single job."""
        return self.run(self.prepare(options))


def _stdin_is_tty() -> bool:
    try:
        return sys.stdin is not None and sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


def run_job(options, config: Optional[Config] = None, **kwargs) -> RunResult:
    """
    Convenience entry point for library use.

    Example:
        >>> from ffmpeg_simple import run_job
        >>> run_job({"input": "clip.mp4", "scale": "640:-2"})  # doctest: +SKIP
    """
    runner = Runner(config=config or Config.for_library(), **kwargs)
    return runner.run_options(options)
