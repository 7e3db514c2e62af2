"""
Job builders for the ffmpeg-simple subcommands.

Each builder turns base JobOptions plus the subcommand's own arguments
into the jobs handed to ``run_batch``: JobOptions, or an already
compiled job where compiling needs more than the options (concat).
"""

import os
import tempfile
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Union

from ffmpeg_simple.compiler import CompiledJob, compile_job, orient_filters
from ffmpeg_simple.errors import MissingOutputError
from ffmpeg_simple.options import JobOptions, resolve_inputs
from ffmpeg_simple.runner import Runner

Job = Union[JobOptions, CompiledJob]

CONCAT_MODES = ("demux", "filter")
DEFAULT_SAMPLE_SECONDS = 10.0
DEFAULT_GIF_FPS = 10
DEFAULT_GIF_WIDTH = 480


def _with_suffix(opts: JobOptions, suffix: str, **overrides: Any) -> JobOptions:
    """Apply ``suffix`` unless the caller chose one."""
    if opts.suffix is None:
        overrides["suffix"] = suffix
    return opts.merged(**overrides)


def convert(opts: JobOptions) -> List[Job]:
    return [opts]


def batch(opts: JobOptions) -> List[Job]:
    """
    One job per resolved input.

    An explicit output can't name several files, so it is only kept for a
    single input.
    """
    inputs = resolve_inputs(opts)
    output = opts.output if len(inputs) == 1 else None
    return [opts.merged(input=path, inputs=[], output=output) for path in inputs]


def cut(
    opts: JobOptions,
    start: Union[str, float, None] = None,
    to: Union[str, float, None] = None,
    duration: Union[str, float, None] = None,
) -> List[Job]:
    """Trim without re-encoding unless a codec was asked for."""
    copy = opts.copy or not (opts.codec or opts.video_codec)
    return [
        _with_suffix(
            opts,
            "_cut",
            start=start if start is not None else opts.start,
            to=to if to is not None else opts.to,
            duration=duration if duration is not None else opts.duration,
            copy=copy,
        )
    ]


def sample(runner: Runner, opts: JobOptions, duration: float = DEFAULT_SAMPLE_SECONDS) -> List[Job]:
    """A ``duration`` seconds excerpt from the middle of each input."""
    jobs: List[Job] = []
    for path in resolve_inputs(opts):
        metadata = runner.prober.probe(path, cache=opts.cache)
        total = metadata.duration if metadata and metadata.duration else 0.0
        start = max(0.0, (total - duration) / 2) if total > duration else 0.0
        jobs.append(_with_suffix(opts, "_sample", input=path, inputs=[], start=round(start, 3), duration=duration))
    return jobs


def caption(opts: JobOptions, subtitles: Union[str, bool, None] = None, mode: Optional[str] = None) -> List[Job]:
    """Add subtitles; without a path the input's same-named ``.srt`` is used."""
    return [
        _with_suffix(
            opts,
            "_captioned",
            subtitles=subtitles or opts.subtitles or True,
            subtitles_mode=mode or opts.subtitles_mode,
        )
    ]


def rotate_meta(opts: JobOptions, rotate: int) -> List[Job]:
    """Set the rotation metadata of the video stream, stream copy only."""
    return [
        _with_suffix(
            opts,
            "_rotated",
            copy=True,
            codec=None,
            video_codec=None,
            output_options=list(opts.output_options) + ["-map", "0", "-metadata:s:v:0", f"rotate={int(rotate)}"],
        )
    ]


def take_video_filters(job: CompiledJob) -> List[str]:
    """
    Move the job's plain video filters out for use inside its graph.

    ffmpeg refuses -vf on streams fed by -filter_complex, so graph builders
    fold the chain into their own nodes.
    """
    chain = orient_filters(job.video_filters, job.is_portrait)
    job.video_filters = []
    return chain


def gif_graph(fps: int = DEFAULT_GIF_FPS, width: int = DEFAULT_GIF_WIDTH) -> Callable[..., None]:
    """Filter-graph callback: resample, scale, then a generated palette."""

    def build(graph, job) -> None:
        chain = [f"fps={fps}", f"scale={width}:-1:flags=lanczos", *take_video_filters(job), "split"]
        # No audio in a gif
        job.audio_filters = []
        graph.push(",".join(chain), inputs="0:v", outputs=["frames", "source"])
        palette = graph.push("palettegen", inputs="source")
        graph.push("paletteuse", inputs=["frames", *palette])

    return build


def gif(opts: JobOptions, fps: int = DEFAULT_GIF_FPS, width: int = DEFAULT_GIF_WIDTH) -> List[Job]:
    return [
        _with_suffix(
            opts,
            "",
            callback=gif_graph(fps, width),
            extension=opts.extension or "gif",
            audio=False,
        )
    ]


# -------------------- CONCAT --------------------


def concat_list_line(path: str) -> str:
    """One concat demuxer entry, quotes escaped."""
    escaped = os.path.abspath(path).replace("'", "'\\''")
    return f"file '{escaped}'\n"


def write_concat_list(paths: List[str]) -> str:
    """Write a concat demuxer list file and return its path."""
    with tempfile.NamedTemporaryFile(
        "w", prefix="ffmpeg-simple-", suffix=".txt", delete=False, encoding="utf-8"
    ) as f:
        for path in paths:
            f.write(concat_list_line(path))
    return f.name


def concat_graph(count: int, audio: bool, then: Optional[Callable[..., Any]] = None) -> Callable[..., None]:
    """Filter-graph callback joining ``count`` inputs with the concat filter."""

    def build(graph, job) -> None:
        labels: List[str] = []
        for i in range(count):
            labels.append(f"{i}:v:0")
            if audio:
                labels.append(f"{i}:a:0")
        video_chain = take_video_filters(job)
        audio_chain = job.audio_filters if audio else []
        job.audio_filters = []

        outputs = ["vc" if video_chain else "v"]
        if audio:
            outputs.append("ac" if audio_chain else "a")
        graph.push(f"concat=n={count}:v=1:a={1 if audio else 0}", inputs=labels, outputs=outputs)
        if video_chain:
            graph.push(",".join(video_chain), inputs="vc", outputs="v")
        if audio_chain:
            graph.push(",".join(audio_chain), inputs="ac", outputs="a")
        graph.cursor = ["v", "a"] if audio else ["v"]

        if then is not None:
            then(graph, job)

    return build


def concat(runner: Runner, opts: JobOptions, mode: str = "demux") -> List[Job]:
    """
    Join every input into one output.

    ``demux`` stream-copies through the concat demuxer (inputs must share
    codecs). ``filter`` re-encodes through the concat filter.

    Raises:
        ValueError: On an unknown mode.
        MissingOutputError: Without an output path.
    """
    if mode not in CONCAT_MODES:
        raise ValueError(f"Unknown concat mode: {mode} (expected one of {', '.join(CONCAT_MODES)})")
    if not opts.output:
        raise MissingOutputError("concat needs an output path")
    inputs = resolve_inputs(opts)
    metadata = runner.prober.probe_many(inputs, workers=runner.config.probe_workers, cache=opts.cache)

    if mode == "filter":
        audio = opts.audio and all(m.has_audio for m in metadata)
        build = concat_graph(len(inputs), audio, then=opts.callback)
        return [opts.merged(inputs=inputs, input=None, callback=build)]

    list_file = write_concat_list(inputs)
    aggregate = replace(
        metadata[0],
        input=list_file,
        duration=sum(m.duration or 0 for m in metadata),
        size=sum(m.size or 0 for m in metadata),
    )
    demux_opts = opts.merged(
        input=list_file,
        inputs=[],
        copy=True,
        input_options=["-f", "concat", "-safe", "0"] + list(opts.input_options),
        subtitles_mode="stream",
    )
    try:
        job = compile_job(demux_opts, [aggregate], default_suffix=runner.config.suffix)
    except Exception:
        os.remove(list_file)
        raise
    job.temp_files.append(list_file)
    return [job]


# -------------------- PROBE --------------------


def probe(runner: Runner, opts: JobOptions, full: bool = False) -> List[Dict[str, Any]]:
    """Probe every input and return JSON-ready records."""
    results = []
    for path in resolve_inputs(opts):
        metadata = runner.prober.probe(path, cache=opts.cache, full=full)
        if metadata is not None:
            results.append(metadata.to_dict())
    return results
