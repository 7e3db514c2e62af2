"""
ffmpeg-simple - Common ffmpeg operations with sane defaults.

Builds ffmpeg command lines from a flat set of options, resolves output
collisions (skip, overwrite through the trash, rename, cancel), shows
progress with ETA and checks the result.

License: GPL-3.0 (https://www.gnu.org/licenses/gpl-3.0.html)

Example usage:
    # As a command-line tool
    $ ffmpeg-simple convert clip.mov --scale 1280:-2 --crf 28
    $ ffmpeg-simple concat part1.mp4 part2.mp4 -o full.mp4

    # As a Python module
    from ffmpeg_simple import Config, run_job

    result = run_job({"input": "clip.mov", "scale": "1280:-2"}, Config.for_library(overwrite=True))
"""

__version__ = "1.0.0"
__license__ = "GPL-3.0"
__description__ = "Common ffmpeg operations with sane defaults, progress and safe output handling"

# Public API exports
from ffmpeg_simple.batch import BatchSummary, run_batch
from ffmpeg_simple.compiler import CompiledJob, compile_job, find_exponent, normalize_angle
from ffmpeg_simple.config import Config, load_config_file
from ffmpeg_simple.errors import (
    Cancelled,
    CompileError,
    FfmpegSimpleError,
    InvalidSubtitlesError,
    InvalidSubtitlesModeError,
    MissingInputError,
    MissingOutputError,
    ProbeError,
    ReconciliationError,
    RenameExhaustedError,
    ReplaceError,
    RunError,
    UnsupportedSpeedError,
)
from ffmpeg_simple.filtergraph import FilterGraph, FilterNode
from ffmpeg_simple.json_progress import JSONProgressOutput
from ffmpeg_simple.options import JobOptions
from ffmpeg_simple.prober import InputMetadata, ProbeCache, Prober
from ffmpeg_simple.progress import BatchTracker, EtaTracker, ProgressSample, ProgressView
from ffmpeg_simple.reconcile import OutputReconciler, ReconcilePolicy, ReconciliationResult
from ffmpeg_simple.runner import Runner, RunResult, run_job

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Config
    "Config",
    "load_config_file",
    # Options / compiler
    "JobOptions",
    "CompiledJob",
    "compile_job",
    "find_exponent",
    "normalize_angle",
    "FilterGraph",
    "FilterNode",
    # Probing
    "InputMetadata",
    "ProbeCache",
    "Prober",
    # Reconciliation
    "OutputReconciler",
    "ReconcilePolicy",
    "ReconciliationResult",
    # Progress
    "BatchTracker",
    "EtaTracker",
    "ProgressSample",
    "ProgressView",
    "JSONProgressOutput",
    # Running
    "Runner",
    "RunResult",
    "run_job",
    "BatchSummary",
    "run_batch",
    # Errors
    "FfmpegSimpleError",
    "ProbeError",
    "CompileError",
    "InvalidSubtitlesError",
    "InvalidSubtitlesModeError",
    "UnsupportedSpeedError",
    "MissingInputError",
    "MissingOutputError",
    "ReconciliationError",
    "RenameExhaustedError",
    "Cancelled",
    "RunError",
    "ReplaceError",
]
