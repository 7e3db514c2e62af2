"""
Metadata probing for ffmpeg-simple.

Wraps a single ffprobe invocation per input and normalizes its JSON into
an InputMetadata record. Results are cached per resolved path in a
ProbeCache owned by the Prober.
"""

import datetime
import json
import os
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from fractions import Fraction
from typing import Any, Dict, List, Optional

from ffmpeg_simple.errors import ProbeError
from ffmpeg_simple.ui.legacy_ui import duration_string, size_string

TAG_FIELDS = ("title", "artist", "date", "comment")


@dataclass(frozen=True)
class InputMetadata:
    """Normalized probe snapshot of one input."""

    input: str
    size: int = 0
    duration: float = 0.0
    bitrate: int = 0  # kbps
    created_at: Optional[datetime.datetime] = None

    # Format tags
    title: Optional[str] = None
    artist: Optional[str] = None
    date: Optional[str] = None
    comment: Optional[str] = None

    # Video stream
    codec: Optional[str] = None
    codec_profile: Optional[str] = None
    codec_level: Optional[int] = None
    width: int = 0
    height: int = 0
    aspect_ratio: Optional[str] = None
    framerate: float = 0.0
    video_duration: Optional[float] = None

    # Audio stream
    audio_codec: Optional[str] = None
    audio_channels: int = 0
    audio_sample_rate: int = 0
    audio_bitrate: int = 0  # kbps
    audio_duration: Optional[float] = None

    full: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False)

    @property
    def has_video(self) -> bool:
        return self.codec is not None

    @property
    def has_audio(self) -> bool:
        return self.audio_codec is not None

    @property
    def is_portrait(self) -> bool:
        """True when the picture is taller than wide."""
        return self.height > self.width

    @property
    def human_size(self) -> str:
        return size_string(self.size)

    @property
    def human_duration(self) -> str:
        return duration_string(self.duration)

    @property
    def tags(self) -> Dict[str, str]:
        """Format tags that are set."""
        return {k: getattr(self, k) for k in TAG_FIELDS if getattr(self, k)}

    def to_dict(self) -> Dict[str, Any]:
        """JSON friendly representation (used by the probe command)."""
        data = asdict(self)
        if not data.get("full"):
            data.pop("full", None)
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        data["human_size"] = self.human_size
        data["human_duration"] = self.human_duration
        return {k: v for k, v in data.items() if v is not None}


class ProbeCache:
    """Thread-safe metadata cache keyed by normalized path."""

    def __init__(self):
        self._data: Dict[str, InputMetadata] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(path: str) -> str:
        return os.path.normcase(os.path.abspath(os.path.expanduser(str(path))))

    def get(self, path: str) -> Optional[InputMetadata]:
        with self._lock:
            return self._data.get(self.key(path))

    def put(self, path: str, metadata: InputMetadata) -> None:
        with self._lock:
            self._data[self.key(path)] = metadata

    def discard(self, path: str) -> None:
        with self._lock:
            self._data.pop(self.key(path), None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return self.key(str(path)) in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


# -------------------- PARSING --------------------


def parse_rate(value: Any) -> float:
    """Parse an ffprobe rate such as ``30000/1001``; 0 when unknown."""
    if not value:
        return 0.0
    try:
        rate = Fraction(str(value))
    except (ValueError, ZeroDivisionError):
        return 0.0
    return float(rate)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def metadata_from_probe(
    path: str,
    probe: Dict[str, Any],
    size: int = 0,
    ctime: Optional[float] = None,
    full: bool = False,
) -> InputMetadata:
    """
    Normalize ffprobe JSON output.

    Missing tags or a missing audio/video stream leave the matching
    fields unset instead of failing.
    """
    data: Dict[str, Any] = {"input": path, "size": size}

    fmt = probe.get("format") or {}
    tags = fmt.get("tags") or {}
    for key in TAG_FIELDS:
        # Container tags are case-insensitive (TITLE in mkv)
        value = tags.get(key) or tags.get(key.upper())
        if value:
            data[key] = value
    data["duration"] = _to_float(fmt.get("duration"))
    data["bitrate"] = round(_to_float(fmt.get("bit_rate")) / 1000)

    streams = probe.get("streams") or []
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video:
        data["codec"] = video.get("codec_name")
        data["codec_profile"] = video.get("profile")
        data["codec_level"] = video.get("level")
        data["width"] = _to_int(video.get("width"))
        data["height"] = _to_int(video.get("height"))
        data["aspect_ratio"] = video.get("display_aspect_ratio")
        rates = [r for r in (parse_rate(video.get("r_frame_rate")), parse_rate(video.get("avg_frame_rate"))) if r > 0]
        data["framerate"] = min(rates) if rates else 0.0
        data["video_duration"] = _optional_float(video.get("duration"))

    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
    if audio:
        data["audio_codec"] = audio.get("codec_name")
        data["audio_channels"] = _to_int(audio.get("channels"))
        data["audio_sample_rate"] = _to_int(audio.get("sample_rate"))
        data["audio_bitrate"] = round(_to_float(audio.get("bit_rate")) / 1000)
        data["audio_duration"] = _optional_float(audio.get("duration"))

    if ctime is not None:
        data["created_at"] = datetime.datetime.fromtimestamp(ctime)
    if full:
        data["full"] = probe
    return InputMetadata(**data)


# -------------------- PROBER --------------------


class Prober:
    """Runs ffprobe and caches normalized results."""

    def __init__(self, ffprobe: str = "ffprobe", cache: Optional[ProbeCache] = None, timeout: float = 60.0):
        self.ffprobe = ffprobe
        self.cache = cache if cache is not None else ProbeCache()
        self.timeout = timeout

    def ffprobe_json(self, path: str) -> Dict[str, Any]:
        """Run ffprobe and return its JSON output."""
        cmd = [self.ffprobe, "-v", "error", "-print_format", "json", "-show_streams", "-show_format", str(path)]
        out = subprocess.check_output(cmd, stderr=subprocess.PIPE, timeout=self.timeout)
        result: Dict[str, Any] = json.loads(out)
        return result

    def probe(self, path: str, cache: bool = True, full: bool = False, halt: bool = True) -> Optional[InputMetadata]:
        """
        Probe one input.

        Args:
            path: Input path.
            cache: Use and update the cache. ``False`` forces a fresh probe.
            full: Keep the raw ffprobe payload on the record.
            halt: Raise on failure. With ``False`` failures return None.

        Raises:
            ProbeError: If the file can't be read or ffprobe fails.
        """
        path = str(path)
        if cache:
            cached = self.cache.get(path)
            if cached is not None and (cached.full is not None or not full):
                return cached

        try:
            st = os.stat(path)
            probe = self.ffprobe_json(path)
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            if halt:
                raise ProbeError(path, cause=e) from e
            return None

        metadata = metadata_from_probe(path, probe, size=st.st_size, ctime=st.st_ctime, full=full)
        if cache:
            self.cache.put(path, metadata)
        return metadata

    def probe_many(self, paths: List[str], workers: int = 0, cache: bool = True) -> List[InputMetadata]:
        """
        Probe several inputs in parallel, preserving order.

        Args:
            paths: Input paths.
            workers: Max parallel ffprobe processes (0 = CPU count).
            cache: See ``probe``.
        """
        if len(paths) <= 1:
            return [self.probe(p, cache=cache) for p in paths]  # type: ignore[misc]
        max_workers = workers if workers > 0 else (os.cpu_count() or 1)
        with ThreadPoolExecutor(max_workers=min(max_workers, len(paths))) as executor:
            return list(executor.map(lambda p: self.probe(p, cache=cache), paths))
