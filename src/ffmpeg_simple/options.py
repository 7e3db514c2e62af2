"""
Job options for ffmpeg-simple.

A JobOptions record is the single shape the compiler accepts. Callers
with a bare path or a filter callback go through the ``from_*``
constructors (or ``coerce``) at the boundary.
"""

import glob
import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from ffmpeg_simple.errors import MissingInputError, MissingOutputError

# Keys accepted by from_record that differ from the attribute names
RECORD_ALIASES = {
    "from": "start",
    "videoCodec": "video_codec",
    "audioCodec": "audio_codec",
    "subtitlesMode": "subtitles_mode",
    "rotateMeta": "rotate_meta",
    "inputOptions": "input_options",
    "outputOptions": "output_options",
    "complexFilter": "complex_filter",
    "outputDir": "output_dir",
    "logFile": "log_file",
}

GLOB_CHARS = re.compile(r"[*?\[]")


@dataclass
class JobOptions:
    """Flat options driving one conversion."""

    # Inputs / output
    input: Optional[str] = None
    inputs: List[str] = field(default_factory=list)
    output: Optional[str] = None
    output_dir: Optional[str] = None
    prefix: str = ""
    suffix: Optional[str] = None  # None: use Config.suffix
    extension: Optional[str] = None  # None: keep the input extension

    # Codec selection
    codec: Optional[str] = None
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None
    copy: bool = False
    crf: Optional[int] = None
    quality: Optional[int] = None
    preset: Optional[str] = None

    # Visual transforms
    scale: Optional[str] = None
    crop: Optional[str] = None
    rotate: Optional[float] = None
    transpose: Optional[int] = None
    hflip: bool = False
    vflip: bool = False
    filters: List[str] = field(default_factory=list)

    # Subtitles
    subtitles: Union[str, bool, None] = None
    subtitles_mode: Optional[str] = None  # burn, stream

    # Timing
    speed: Optional[float] = None
    framerate: Optional[float] = None
    start: Union[str, float, None] = None
    to: Union[str, float, None] = None
    duration: Union[str, float, None] = None

    # Streams
    audio: bool = True
    video: bool = True

    # Metadata
    rotate_meta: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    # Raw passthrough
    input_options: List[str] = field(default_factory=list)
    output_options: List[str] = field(default_factory=list)
    complex_filter: List[Any] = field(default_factory=list)
    callback: Optional[Callable[..., Any]] = None

    # Policy
    overwrite: bool = False
    skip: bool = False
    silent: bool = False
    halt: bool = True
    replace: bool = False
    trash: bool = True

    # Misc
    log_file: Optional[str] = None
    cache: bool = True

    @classmethod
    def from_string(cls, path: str) -> "JobOptions":
        """A bare path becomes a single-input job."""
        return cls(input=path)

    @classmethod
    def from_callback(cls, callback: Callable[..., Any], **kwargs: Any) -> "JobOptions":
        """A callable becomes the job's filter-graph callback."""
        return cls(callback=callback, **kwargs)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "JobOptions":
        """
        Build options from a mapping (config presets, JSON, CLI namespace).

        camelCase aliases such as ``videoCodec`` or ``from`` are accepted.
        ``None`` values are ignored so that defaults survive.

        Raises:
            TypeError: On keys that are not job options.
        """
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        unknown = []
        for key, value in record.items():
            name = RECORD_ALIASES.get(key, key)
            if name not in known:
                unknown.append(key)
                continue
            if value is None:
                continue
            values[name] = value
        if unknown:
            raise TypeError(f"Unknown job options: {', '.join(sorted(unknown))}")
        if isinstance(values.get("input"), (list, tuple)):
            values["inputs"] = list(values.pop("input"))
        return cls(**values)

    @classmethod
    def coerce(cls, value: Any) -> "JobOptions":
        """Turn a path, callable, mapping or JobOptions into JobOptions."""
        if isinstance(value, cls):
            return value
        if isinstance(value, (str, os.PathLike)):
            return cls.from_string(str(value))
        if callable(value):
            return cls.from_callback(value)
        if isinstance(value, dict):
            return cls.from_record(value)
        raise TypeError(f"Can't build job options from {type(value).__name__}")

    def merged(self, **overrides: Any) -> "JobOptions":
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)

    @property
    def is_stream_copy(self) -> bool:
        """True when the effective codec re-multiplexes without re-encoding."""
        if self.codec:
            return self.codec == "copy"
        if self.video_codec:
            return self.video_codec == "copy"
        return self.copy


# -------------------- INPUTS --------------------


def expand_input(pattern: str) -> List[str]:
    """Expand ``~`` and glob patterns. Plain paths are returned as-is."""
    pattern = os.path.expanduser(str(pattern))
    if GLOB_CHARS.search(pattern):
        return sorted(glob.glob(pattern))
    return [pattern]


def resolve_inputs(opts: JobOptions) -> List[str]:
    """
    Resolve the concrete input paths of a job.

    Exactly one of ``input``/``inputs`` is used (``inputs`` wins when both
    are set). Glob patterns expand to every match.

    Raises:
        MissingInputError: If nothing resolves to a path.
    """
    patterns = list(opts.inputs) if opts.inputs else ([opts.input] if opts.input else [])
    if not patterns:
        raise MissingInputError()

    paths: List[str] = []
    for pattern in patterns:
        matched = expand_input(pattern)
        if not matched:
            raise MissingInputError(str(pattern))
        for p in matched:
            if p not in paths:
                paths.append(p)
    return paths


# -------------------- OUTPUT --------------------


def derive_output(
    input_path: str,
    prefix: str = "",
    suffix: str = "",
    extension: Optional[str] = None,
    output_dir: Optional[str] = None,
) -> str:
    """
    Derive an output path from an input path.

    >>> derive_output("/v/a.mp4", suffix="_compressed")
    '/v/a_compressed.mp4'
    >>> derive_output("/v/a.mp4", extension="gif", output_dir="/out")
    '/out/a.gif'
    """
    p = Path(input_path)
    ext = p.suffix if extension is None else ("." + extension.lstrip(".") if extension else "")
    directory = Path(output_dir).expanduser() if output_dir else p.parent
    return str(directory / f"{prefix}{p.stem}{suffix}{ext}")


def output_for(opts: JobOptions, inputs: List[str], default_suffix: str) -> str:
    """
    Return the job's output path: explicit, or derived from its single input.

    An output naming one of the inputs is refused, except when replacing a
    single input: ffmpeg then writes a temporary file next to it.

    Raises:
        MissingOutputError: If there are several inputs and no explicit
            output, or the output would overwrite an input.
    """
    if opts.output:
        out = os.path.expanduser(str(opts.output))
        if opts.output_dir and not os.path.isabs(out):
            out = os.path.join(os.path.expanduser(opts.output_dir), out)
    elif len(inputs) != 1:
        raise MissingOutputError()
    else:
        suffix = default_suffix if opts.suffix is None else opts.suffix
        out = derive_output(inputs[0], opts.prefix, suffix, opts.extension, opts.output_dir)

    target = os.path.abspath(out)
    clash = next((p for p in inputs if os.path.abspath(p) == target), None)
    if clash is not None:
        if not (opts.replace and len(inputs) == 1):
            raise MissingOutputError(f"Output would overwrite the input: {clash}")
        # Replaced over the input after the run
        root, ext = os.path.splitext(out)
        out = f"{root}.tmp.{os.getpid()}{ext}"
    return out


# -------------------- TIME --------------------


def parse_time(value: Union[str, float, int, None]) -> Optional[float]:
    """
    Parse a time position into seconds.

    Accepts numbers and ``SS``, ``MM:SS`` or ``HH:MM:SS[.ms]`` strings.

    >>> parse_time("01:02:03.5")
    3723.5
    >>> parse_time(90)
    90.0
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", ".")
    total = 0.0
    for part in text.split(":"):
        total = total * 60 + float(part)
    return total
