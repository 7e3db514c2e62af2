"""
Option compiler for ffmpeg-simple.

Translates a JobOptions record plus the probed metadata of its inputs into
ffmpeg input declarations, input options, output options and one filter
expression. The steps run in a fixed order; later steps may append to or
override earlier ones.
"""

import math
import os
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ffmpeg_simple.errors import (
    CompileError,
    InvalidSubtitlesError,
    InvalidSubtitlesModeError,
    UnsupportedSpeedError,
)
from ffmpeg_simple.filtergraph import FilterGraph, FilterNode, unique
from ffmpeg_simple.options import JobOptions, output_for, parse_time
from ffmpeg_simple.prober import TAG_FIELDS, InputMetadata

SUBTITLES_MODES = ("burn", "stream")
ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0
ATEMPO_MAX_STAGES = 10

# Portrait compensation: rotate into landscape, filter, rotate back
PORTRAIT_PRE = "transpose=1"
PORTRAIT_POST = "transpose=2"
FLIP_SWAP = {"hflip": "vflip", "vflip": "hflip"}

MOV_TEXT_EXTENSIONS = (".mp4", ".m4v", ".mov")


@dataclass
class CompiledJob:
    """Everything needed to start one ffmpeg invocation."""

    options: JobOptions
    inputs: List[str]
    output: str
    metadata: List[InputMetadata] = field(default_factory=list)
    input_options: List[str] = field(default_factory=list)
    output_options: List[str] = field(default_factory=list)
    extra_inputs: List[str] = field(default_factory=list)
    video_filters: List[str] = field(default_factory=list)
    audio_filters: List[str] = field(default_factory=list)
    graph: FilterGraph = field(default_factory=FilterGraph)
    filter_flag: Optional[str] = None  # -vf or -filter_complex
    filter_chain: List[str] = field(default_factory=list)
    maps: List[str] = field(default_factory=list)
    input_duration: float = 0.0
    input_size: int = 0
    expected_duration: float = 0.0
    rotate_meta: Optional[int] = None
    temp_files: List[str] = field(default_factory=list)

    @property
    def filter_expression(self) -> str:
        if self.filter_flag == "-vf":
            return ",".join(self.filter_chain)
        return ";".join(self.filter_chain)

    @property
    def is_portrait(self) -> bool:
        first = next((m for m in self.metadata if m.has_video), None)
        return first is not None and first.is_portrait

    def args(self, ffmpeg: str = "ffmpeg") -> List[str]:
        """Full ffmpeg argv. ``-y`` is set: the output was reconciled beforehand."""
        argv = [ffmpeg, "-hide_banner", "-y"]
        for path in self.inputs:
            argv += self.input_options
            argv += ["-i", path]
        for path in self.extra_inputs:
            argv += ["-i", path]
        if self.filter_flag and self.filter_chain:
            argv += [self.filter_flag, self.filter_expression]
        if self.audio_filters:
            argv += ["-af", ",".join(self.audio_filters)]
        argv += self.maps
        argv += self.output_options
        argv.append(self.output)
        return argv

    def command_line(self, ffmpeg: str = "ffmpeg") -> str:
        return shlex.join(self.args(ffmpeg))


# -------------------- HELPERS --------------------


def split_options(options: Sequence[Any]) -> List[str]:
    """Split raw passthrough options (``["-f concat", "-safe", 0]``) into argv items."""
    result: List[str] = []
    for item in options:
        if isinstance(item, str):
            result.extend(shlex.split(item))
        else:
            result.append(str(item))
    return result


def fmt_number(value: float) -> str:
    """Format a number without a trailing ``.0``."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.6f}".rstrip("0").rstrip(".")


def normalize_angle(value: float) -> float:
    """
    Return a rotation angle in radians.

    Magnitudes above pi are taken as degrees.

    >>> round(normalize_angle(90), 4)
    1.5708
    >>> normalize_angle(1.0)
    1.0
    """
    value = float(value)
    if abs(value) > math.pi:
        return math.radians(value)
    return value


def find_exponent(speed: float) -> Tuple[int, float]:
    """
    Decompose an audio speed factor into ``n`` atempo stages of factor ``m``.

    atempo only accepts factors in [0.5, 2.0], so ``m ** n == speed`` with
    the smallest ``n`` in 1..10 that keeps ``m`` in range.

    Raises:
        UnsupportedSpeedError: If no such ``n`` exists.
    """
    if speed <= 0 or not math.isfinite(speed):
        raise UnsupportedSpeedError(speed)
    log = math.log10(speed)
    for n in range(1, ATEMPO_MAX_STAGES + 1):
        m = round(10 ** (log / n), 10)
        if ATEMPO_MIN <= m <= ATEMPO_MAX:
            return n, m
    raise UnsupportedSpeedError(speed)


def escape_filter_path(path: str) -> str:
    """Escape a path for use as a filter argument."""
    return path.replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def resolve_subtitles(subtitles: Any, first_input: str) -> str:
    """
    Return an existing subtitles path.

    Falls back to the input's same-named ``.srt`` file when ``subtitles``
    is ``True`` or points to a missing file.

    Raises:
        InvalidSubtitlesError: If neither exists.
    """
    guess = os.path.splitext(first_input)[0] + ".srt"
    if isinstance(subtitles, str) and subtitles:
        candidate = os.path.expanduser(subtitles)
        if os.path.isfile(candidate):
            return candidate
        if os.path.isfile(guess):
            return guess
        raise InvalidSubtitlesError(subtitles, guess)
    if os.path.isfile(guess):
        return guess
    raise InvalidSubtitlesError(guess)


def orient_filters(filters: List[str], portrait: bool) -> List[str]:
    """
    Compensate landscape-relative filters for portrait input.

    Portrait chains are wrapped in a transpose pair and flips are swapped.
    """
    if not portrait or not filters:
        return list(filters)
    body = [FLIP_SWAP.get(f, f) for f in filters]
    return [PORTRAIT_PRE, *body, PORTRAIT_POST]


def _push_node(graph: FilterGraph, node: Any) -> None:
    if isinstance(node, (str, FilterNode)):
        graph.push(node)
    elif isinstance(node, dict):
        graph.push(node["filter"], inputs=node.get("inputs"), outputs=node.get("outputs"))
    else:
        raise TypeError(f"Invalid complex filter node: {node!r}")


# -------------------- COMPILER --------------------


def compile_job(
    opts: JobOptions,
    metadata: List[InputMetadata],
    default_suffix: str = "_compressed",
) -> CompiledJob:
    """
    Compile options and input metadata into a CompiledJob.

    Args:
        opts: Job options.
        metadata: Probed metadata, one per input, in input order.
        default_suffix: Suffix used when deriving the output path.

    Raises:
        CompileError: On invalid subtitles, subtitles mode, speed or output.
    """
    inputs = [m.input for m in metadata]
    if opts.replace and len(inputs) != 1:
        raise CompileError("Replacing in place needs exactly one input")
    job = CompiledJob(options=opts, inputs=inputs, output=output_for(opts, inputs, default_suffix), metadata=metadata)

    # 1. Inputs and aggregates
    job.input_duration = sum(m.duration or 0 for m in metadata)
    job.input_size = sum(m.size or 0 for m in metadata)

    # 2. Input side options
    job.input_options = split_options(opts.input_options)
    start = parse_time(opts.start)
    if start:
        job.input_options += ["-ss", fmt_number(start)]

    # 3. Codec selection
    stream_copy = opts.is_stream_copy
    if opts.codec:
        job.output_options += ["-c", opts.codec]
    elif opts.video_codec:
        job.output_options += ["-c:v", opts.video_codec]
    elif opts.copy:
        job.output_options += ["-c", "copy"]
    if opts.audio_codec and not opts.codec:
        job.output_options += ["-c:a", opts.audio_codec]
    if not stream_copy:
        if opts.crf is not None:
            job.output_options += ["-crf", str(opts.crf)]
        if opts.quality is not None:
            job.output_options += ["-q:v", str(opts.quality)]
        if opts.preset:
            job.output_options += ["-preset", opts.preset]

    # 4. Visual transforms
    if opts.scale:
        job.video_filters.append(f"scale={opts.scale}")
    if opts.crop:
        job.video_filters.append(f"crop={opts.crop}")
    if opts.rotate:
        job.video_filters.append(f"rotate={fmt_number(normalize_angle(opts.rotate))}")
    if opts.transpose is not None:
        job.video_filters.append(f"transpose={opts.transpose}")
    if opts.hflip:
        job.video_filters.append("hflip")
    if opts.vflip:
        job.video_filters.append("vflip")
    job.video_filters.extend(opts.filters)
    if opts.subtitles:
        _apply_subtitles(job, opts, stream_copy)

    # 5. Speed
    if opts.speed is not None and float(opts.speed) != 1.0:
        speed = float(opts.speed)
        n, m = find_exponent(speed)
        if opts.video:
            job.video_filters.append(f"setpts=PTS/{fmt_number(speed)}")
        if opts.audio:
            job.audio_filters += [f"atempo={fmt_number(m)}"] * n

    # 6. Framerate cap (never upsample)
    if opts.framerate:
        rates = [m.framerate for m in metadata if m.framerate and m.framerate > 0]
        native = min(rates) if rates else 0.0
        if not native or float(opts.framerate) < native:
            job.output_options += ["-r", fmt_number(opts.framerate)]

    # 7. Trim
    duration = parse_time(opts.duration)
    to = parse_time(opts.to)
    if duration:
        job.output_options += ["-t", fmt_number(duration)]
    elif to:
        if start:
            # -ss on the input resets timestamps
            job.output_options += ["-t", fmt_number(max(0.0, to - start))]
        else:
            job.output_options += ["-to", fmt_number(to)]
    if not opts.audio:
        job.output_options.append("-an")
    if not opts.video:
        job.output_options.append("-vn")
    job.expected_duration = _expected_duration(job.input_duration, start, to, duration, opts.speed)

    # 8. Raw output options
    job.output_options += split_options(opts.output_options)

    for node in opts.complex_filter:
        _push_node(job.graph, node)
    if opts.callback is not None:
        opts.callback(job.graph, job)

    # 9. Filter assembly
    _assemble_filters(job)

    # 10. Tag metadata
    job.output_options += _metadata_options(metadata, opts.metadata)

    # 11. Rotation metadata is written by a separate stream-copy pass
    job.rotate_meta = opts.rotate_meta
    return job


def _apply_subtitles(job: CompiledJob, opts: JobOptions, stream_copy: bool) -> None:
    mode = opts.subtitles_mode or "burn"
    if mode not in SUBTITLES_MODES:
        raise InvalidSubtitlesModeError(mode)
    if stream_copy:
        # Burn-in needs a re-encode
        mode = "stream"
    path = resolve_subtitles(opts.subtitles, job.inputs[0])

    if mode == "burn":
        job.video_filters.append(f"subtitles={escape_filter_path(path)}")
        return

    index = len(job.inputs) + len(job.extra_inputs)
    job.extra_inputs.append(path)
    sub_codec = "mov_text" if job.output.lower().endswith(MOV_TEXT_EXTENSIONS) else "copy"
    job.maps += ["-map", "0", "-map", f"{index}:s"]
    job.output_options += ["-c:s", sub_codec]


def _assemble_filters(job: CompiledJob) -> None:
    if job.video_filters:
        job.filter_flag = "-vf"
        job.filter_chain = orient_filters(job.video_filters, job.is_portrait)
    elif job.graph:
        job.filter_flag = "-filter_complex"
        job.filter_chain = unique(job.graph.to_strings())
        for label in job.graph.last_output:
            job.maps += ["-map", f"[{label}]"]


def _metadata_options(metadata: List[InputMetadata], overrides: Dict[str, str]) -> List[str]:
    tags: Dict[str, str] = {}
    if metadata:
        tags.update(metadata[0].tags)
    tags.update(overrides)
    options: List[str] = []
    for key in list(TAG_FIELDS) + [k for k in tags if k not in TAG_FIELDS]:
        if key in tags:
            options += ["-metadata", f"{key}={tags[key]}"]
    return options


def _expected_duration(
    total: float,
    start: Optional[float],
    to: Optional[float],
    duration: Optional[float],
    speed: Optional[float],
) -> float:
    """Output duration the progress percentage is measured against."""
    expected = total - (start or 0.0) if total else 0.0
    if duration:
        expected = min(expected, duration) if expected else duration
    elif to:
        span = to - (start or 0.0)
        expected = min(expected, span) if expected else span
    if speed:
        expected /= float(speed)
    return max(0.0, expected)
