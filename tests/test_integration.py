"""
End-to-end tests running the real ffmpeg and ffprobe.

Skipped when ffmpeg isn't installed.
"""

import shutil

import pytest

pytestmark = pytest.mark.skipif(
    not shutil.which("ffmpeg") or not shutil.which("ffprobe"), reason="ffmpeg not available"
)


@pytest.fixture
def clip(test_sample_mp4, temp_dir):
    """A private copy of the sample so outputs land in the temp dir."""
    path = temp_dir / "clip.mp4"
    shutil.copy(test_sample_mp4, path)
    return path


@pytest.fixture
def runner(plain_ui):
    from ffmpeg_simple.config import Config
    from ffmpeg_simple.runner import Runner

    return Runner(config=Config.for_library(overwrite=True, trash=False), ui=plain_ui, attended=False)


def _probe(path):
    from ffmpeg_simple.prober import Prober

    return Prober().probe(str(path), cache=False)


class TestProbe:
    """Tests for probing the sample."""

    def test_sample_metadata(self, clip):
        metadata = _probe(clip)

        assert (metadata.width, metadata.height) == (320, 240)
        assert metadata.framerate == pytest.approx(24.0)
        assert metadata.duration == pytest.approx(3.0, abs=0.2)
        assert metadata.audio_codec == "aac"
        assert metadata.title == "Test pattern"
        assert not metadata.is_portrait

    def test_probe_command(self, runner, clip):
        from ffmpeg_simple import commands
        from ffmpeg_simple.options import JobOptions

        records = commands.probe(runner, JobOptions(input=str(clip)), full=True)

        assert records[0]["width"] == 320
        assert "streams" in records[0]["full"]


class TestConvert:
    """Tests for conversions with real ffmpeg."""

    def test_scale(self, runner, clip):
        """Scaled output next to the input with the default suffix."""
        result = runner.run_options({"input": str(clip), "scale": "160:-2", "preset": "ultrafast"})

        output = clip.parent / "clip_compressed.mp4"
        assert result.output == str(output)
        assert (_probe(output).width, _probe(output).height) == (160, 120)

    def test_speed_shortens(self, runner, clip):
        """Doubling the speed halves the duration."""
        runner.run_options({"input": str(clip), "speed": 2, "preset": "ultrafast"})

        assert _probe(clip.parent / "clip_compressed.mp4").duration == pytest.approx(1.5, abs=0.2)

    def test_framerate_cap(self, runner, clip):
        runner.run_options({"input": str(clip), "framerate": 12, "preset": "ultrafast"})

        assert _probe(clip.parent / "clip_compressed.mp4").framerate == pytest.approx(12.0)

    def test_no_audio(self, runner, clip):
        runner.run_options({"input": str(clip), "audio": False, "copy": True})

        output = _probe(clip.parent / "clip_compressed.mp4")
        assert not output.has_audio
        assert output.has_video

    def test_metadata_override(self, runner, clip):
        """Input tags are carried over with overrides on top."""
        runner.run_options({"input": str(clip), "copy": True, "metadata": {"artist": "Tester"}})

        output = _probe(clip.parent / "clip_compressed.mp4")
        assert output.title == "Test pattern"
        assert output.artist == "Tester"

    def test_rotate_meta_post_pass(self, runner, clip):
        """The rotation pass leaves a single output and no temp files."""
        runner.run_options({"input": str(clip), "rotate_meta": 90, "preset": "ultrafast"})

        names = sorted(p.name for p in clip.parent.iterdir())
        assert names == ["clip.mp4", "clip_compressed.mp4"]

    def test_replace_in_place(self, runner, clip):
        """The input is replaced and no backup is left behind."""
        runner.run_options({"input": str(clip), "scale": "160:-2", "replace": True, "preset": "ultrafast"})

        assert _probe(clip).width == 160
        assert sorted(p.name for p in clip.parent.iterdir()) == ["clip.mp4"]


class TestCommands:
    """Tests for the command helpers with real ffmpeg."""

    def test_cut(self, runner, clip):
        from ffmpeg_simple import commands
        from ffmpeg_simple.batch import run_batch
        from ffmpeg_simple.options import JobOptions

        summary = run_batch(runner, commands.cut(JobOptions(input=str(clip)), start=1, duration=1))

        assert summary.ok
        assert _probe(clip.parent / "clip_cut.mp4").duration <= 2.5

    def test_concat_demux(self, runner, clip):
        from ffmpeg_simple import commands
        from ffmpeg_simple.batch import run_batch
        from ffmpeg_simple.options import JobOptions

        second = clip.parent / "second.mp4"
        shutil.copy(clip, second)
        output = clip.parent / "joined.mp4"

        summary = run_batch(runner, commands.concat(runner, JobOptions(inputs=[str(clip), str(second)], output=str(output))))

        assert summary.ok
        assert _probe(output).duration == pytest.approx(6.0, abs=0.5)

    def test_gif(self, runner, clip):
        from ffmpeg_simple import commands
        from ffmpeg_simple.batch import run_batch
        from ffmpeg_simple.options import JobOptions

        summary = run_batch(runner, commands.gif(JobOptions(input=str(clip)), fps=5, width=160))

        assert summary.ok
        assert _probe(clip.parent / "clip.gif").width == 160


class TestCli:
    """Tests for the CLI entry point with real ffmpeg."""

    def test_convert(self, clip, monkeypatch):
        from ffmpeg_simple import cli

        monkeypatch.setenv("NO_COLOR", "1")
        monkeypatch.setattr(cli, "load_config_file", lambda: {})

        code = cli.main(["convert", str(clip), "--scale", "160:-2", "--encoder-preset", "ultrafast", "--no-progress"])

        assert code == cli.EXIT_OK
        assert _probe(clip.parent / "clip_compressed.mp4").width == 160
