"""
Pytest configuration and shared fixtures for ffmpeg-simple tests.
"""

import io
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

import pytest

# Add src to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture(scope="session")
def test_data_dir() -> Path:
    """Return the test data directory path."""
    return Path(__file__).parent / "data"


@pytest.fixture(scope="session")
def test_sample_mp4(test_data_dir: Path) -> Path:
    """
    Create a small test MP4 file using ffmpeg.

    - H.264 video, 320x240, 24 fps
    - AAC audio
    - 3 seconds duration
    """
    test_data_dir.mkdir(parents=True, exist_ok=True)
    mp4_path = test_data_dir / "test_sample.mp4"

    if mp4_path.exists() and mp4_path.stat().st_size > 10000:
        return mp4_path

    if not shutil.which("ffmpeg") or not shutil.which("ffprobe"):
        pytest.skip("ffmpeg not available for creating test files")

    cmd = [
        "ffmpeg",
        "-y",
        "-f",
        "lavfi",
        "-i",
        "testsrc=duration=3:size=320x240:rate=24",
        "-f",
        "lavfi",
        "-i",
        "sine=frequency=440:duration=3",
        "-c:v",
        "libx264",
        "-preset",
        "ultrafast",
        "-pix_fmt",
        "yuv420p",
        "-c:a",
        "aac",
        "-b:a",
        "64k",
        "-metadata",
        "title=Test pattern",
        str(mp4_path),
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, timeout=60)
        if result.returncode != 0:
            pytest.skip(f"Failed to create test file: {result.stderr.decode()[:200]}")
    except subprocess.TimeoutExpired:
        pytest.skip("Timeout creating test file")
    except OSError as e:
        pytest.skip(f"Error creating test file: {e}")

    return mp4_path


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_dir(temp_dir: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = temp_dir / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def mock_xdg_dirs(temp_dir: Path, monkeypatch):
    """Mock XDG directories to use temporary paths."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(temp_dir / "xdg-config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(temp_dir / "xdg-state"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(temp_dir / "xdg-cache"))


@pytest.fixture
def default_config():
    """Return a default Config instance for testing."""
    from ffmpeg_simple.config import Config

    return Config()


# -------------------- METADATA --------------------


@pytest.fixture
def make_metadata() -> Callable:
    """Factory for InputMetadata records without ffprobe."""
    from ffmpeg_simple.prober import InputMetadata

    def factory(path: str = "a.mp4", width: int = 1920, height: int = 1080, **kwargs):
        values = {
            "input": str(path),
            "size": 10_000_000,
            "duration": 60.0,
            "codec": "h264",
            "width": width,
            "height": height,
            "framerate": 30.0,
            "audio_codec": "aac",
        }
        values.update(kwargs)
        return InputMetadata(**values)

    return factory


class FakeProber:
    """Prober double serving canned metadata."""

    def __init__(self, records: Optional[Dict[str, object]] = None):
        from ffmpeg_simple.prober import ProbeCache

        self.records = dict(records or {})
        self.cache = ProbeCache()
        self.calls: List[str] = []

    def probe(self, path, cache=True, full=False, halt=True):
        from ffmpeg_simple.errors import ProbeError

        path = str(path)
        self.calls.append(path)
        if path in self.records:
            return self.records[path]
        if halt:
            raise ProbeError(path)
        return None

    def probe_many(self, paths, workers=0, cache=True):
        return [self.probe(p, cache=cache) for p in paths]


@pytest.fixture
def fake_prober():
    return FakeProber()


# -------------------- PROCESS --------------------


class FakeProcess:
    """
    Stand-in for FfmpegProcess.

    Emits a start event, a few progress samples and a stderr line, then
    writes the output (last argv item) unless told to fail.
    """

    instances: List["FakeProcess"] = []
    returncode = 0
    output_bytes = b"x" * 2048

    def __init__(self, argv, timeout=0, attended=False):
        self.argv = list(argv)
        self.timeout = timeout
        self.attended = attended
        FakeProcess.instances.append(self)

    @property
    def command_line(self) -> str:
        return " ".join(self.argv)

    def run(self, hooks=None):
        from ffmpeg_simple.errors import RunError
        from ffmpeg_simple.process import RunHooks
        from ffmpeg_simple.progress import ProgressSample

        hooks = hooks or RunHooks()
        if hooks.on_start:
            hooks.on_start(self.command_line)
        for timemark in ("00:00:15.00", "00:00:30.00"):
            if hooks.on_progress:
                hooks.on_progress(ProgressSample(timemark=timemark, current_kbps=800.0, current_fps=30.0))
        if hooks.on_stderr:
            hooks.on_stderr("Stream mapping:")
        if self.returncode != 0:
            error = RunError(f"ffmpeg exited with code {self.returncode}", self.returncode, ["boom"])
            if hooks.on_error:
                hooks.on_error(error)
            raise error
        Path(self.argv[-1]).write_bytes(self.output_bytes)
        if hooks.on_end:
            hooks.on_end()


@pytest.fixture
def fake_process():
    """FakeProcess class with a clean record of instances."""
    FakeProcess.instances = []
    FakeProcess.returncode = 0
    yield FakeProcess
    FakeProcess.instances = []
    FakeProcess.returncode = 0


@pytest.fixture
def plain_ui():
    """LegacyProgressUI writing to a buffer."""
    from ffmpeg_simple.ui.legacy_ui import LegacyProgressUI

    return LegacyProgressUI(progress=False, stream=io.StringIO())


@pytest.fixture
def runner_factory(fake_prober, fake_process, plain_ui):
    """Build a Runner wired to the fakes."""
    from ffmpeg_simple.config import Config
    from ffmpeg_simple.reconcile import OutputReconciler
    from ffmpeg_simple.runner import Runner

    def factory(config=None, prompt=None, delete=None, **kwargs):
        reconciler = OutputReconciler(
            prober=fake_prober,
            prompt=prompt or (lambda message, choices: "cancel"),
            delete=delete or (lambda path, recoverable=True: Path(path).unlink()),
        )
        return Runner(
            config=config or Config.for_library(),
            prober=fake_prober,
            ui=plain_ui,
            reconciler=reconciler,
            process_factory=fake_process,
            attended=kwargs.pop("attended", False),
            **kwargs,
        )

    return factory
