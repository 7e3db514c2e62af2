"""
Tests for job options, input resolution and output naming.
"""

import os

import pytest


class TestJobOptions:
    """Tests for the JobOptions constructors."""

    def test_from_string(self):
        from ffmpeg_simple.options import JobOptions

        assert JobOptions.from_string("a.mp4").input == "a.mp4"

    def test_from_callback(self):
        """A callable becomes the filter callback."""
        from ffmpeg_simple.options import JobOptions

        def build(graph, job):
            pass

        opts = JobOptions.from_callback(build, input="a.mp4")

        assert opts.callback is build
        assert opts.input == "a.mp4"

    def test_from_record_aliases(self):
        """camelCase keys and ``from`` are accepted."""
        from ffmpeg_simple.options import JobOptions

        opts = JobOptions.from_record({"input": "a.mp4", "from": "10", "videoCodec": "libx265", "rotateMeta": 90})

        assert opts.start == "10"
        assert opts.video_codec == "libx265"
        assert opts.rotate_meta == 90

    def test_from_record_ignores_none(self):
        """None values keep the defaults."""
        from ffmpeg_simple.options import JobOptions

        opts = JobOptions.from_record({"input": "a.mp4", "halt": None})

        assert opts.halt is True

    def test_from_record_input_list(self):
        """A list input becomes inputs."""
        from ffmpeg_simple.options import JobOptions

        opts = JobOptions.from_record({"input": ["a.mp4", "b.mp4"]})

        assert opts.inputs == ["a.mp4", "b.mp4"]
        assert opts.input is None

    def test_from_record_unknown_keys(self):
        """Unknown keys are a TypeError."""
        from ffmpeg_simple.options import JobOptions

        with pytest.raises(TypeError, match="bogus"):
            JobOptions.from_record({"input": "a.mp4", "bogus": 1})

    def test_coerce(self):
        """Every accepted shape coerces to JobOptions."""
        from pathlib import Path

        from ffmpeg_simple.options import JobOptions

        opts = JobOptions(input="a.mp4")
        assert JobOptions.coerce(opts) is opts
        assert JobOptions.coerce(Path("a.mp4")).input == "a.mp4"
        assert JobOptions.coerce({"input": "a.mp4"}).input == "a.mp4"
        assert JobOptions.coerce(lambda graph, job: None).callback is not None
        with pytest.raises(TypeError):
            JobOptions.coerce(42)

    def test_merged_copies(self):
        """merged returns a new record."""
        from ffmpeg_simple.options import JobOptions

        opts = JobOptions(input="a.mp4")
        other = opts.merged(crf=20)

        assert other.crf == 20
        assert opts.crf is None

    @pytest.mark.parametrize(
        "kwargs,expected",
        [
            ({"copy": True}, True),
            ({"codec": "copy"}, True),
            ({"codec": "libx264", "copy": True}, False),
            ({"video_codec": "copy"}, True),
            ({}, False),
        ],
    )
    def test_is_stream_copy(self, kwargs, expected):
        from ffmpeg_simple.options import JobOptions

        assert JobOptions(**kwargs).is_stream_copy is expected


class TestResolveInputs:
    """Tests for input resolution."""

    def test_no_input(self):
        from ffmpeg_simple.errors import MissingInputError
        from ffmpeg_simple.options import JobOptions, resolve_inputs

        with pytest.raises(MissingInputError):
            resolve_inputs(JobOptions())

    def test_glob_sorted_and_deduplicated(self, temp_dir):
        """Globs expand in order; repeated paths are kept once."""
        from ffmpeg_simple.options import JobOptions, resolve_inputs

        for name in ("b.mp4", "a.mp4", "c.mkv"):
            (temp_dir / name).write_bytes(b"")

        paths = resolve_inputs(JobOptions(inputs=[str(temp_dir / "*.mp4"), str(temp_dir / "a.mp4")]))

        assert [os.path.basename(p) for p in paths] == ["a.mp4", "b.mp4"]

    def test_glob_without_match(self, temp_dir):
        from ffmpeg_simple.errors import MissingInputError
        from ffmpeg_simple.options import JobOptions, resolve_inputs

        with pytest.raises(MissingInputError, match="No input matched"):
            resolve_inputs(JobOptions(input=str(temp_dir / "*.avi")))

    def test_inputs_wins_over_input(self):
        from ffmpeg_simple.options import JobOptions, resolve_inputs

        assert resolve_inputs(JobOptions(input="a.mp4", inputs=["b.mp4"])) == ["b.mp4"]


class TestOutputNaming:
    """Tests for output derivation."""

    def test_derive_output(self):
        from ffmpeg_simple.options import derive_output

        assert derive_output("/v/a.mp4", suffix="_compressed") == "/v/a_compressed.mp4"
        assert derive_output("/v/a.mp4", prefix="new_", extension="mkv") == "/v/new_a.mkv"
        assert derive_output("/v/a.mp4", extension="gif", output_dir="/out") == "/out/a.gif"

    def test_explicit_output_in_output_dir(self):
        """A relative explicit output is placed in output_dir."""
        from ffmpeg_simple.options import JobOptions, output_for

        assert output_for(JobOptions(output="x.mp4", output_dir="/out"), ["a.mp4"], "_c") == "/out/x.mp4"
        assert output_for(JobOptions(output="/abs/x.mp4", output_dir="/out"), ["a.mp4"], "_c") == "/abs/x.mp4"

    def test_explicit_suffix_overrides_default(self):
        from ffmpeg_simple.options import JobOptions, output_for

        assert output_for(JobOptions(suffix="_s"), ["/v/a.mp4"], "_c") == "/v/a_s.mp4"
        assert output_for(JobOptions(), ["/v/a.mp4"], "_c") == "/v/a_c.mp4"

    def test_output_equal_to_input(self):
        """Deriving the input's own path is refused unless replacing."""
        from ffmpeg_simple.errors import MissingOutputError
        from ffmpeg_simple.options import JobOptions, output_for

        with pytest.raises(MissingOutputError):
            output_for(JobOptions(suffix=""), ["/v/a.mp4"], "_c")

        temp = output_for(JobOptions(suffix="", replace=True), ["/v/a.mp4"], "_c")
        assert temp == f"/v/a.tmp.{os.getpid()}.mp4"

    def test_explicit_output_equal_to_input(self, temp_dir, monkeypatch):
        """An explicit output naming an input is refused, in any spelling."""
        from ffmpeg_simple.errors import MissingOutputError
        from ffmpeg_simple.options import JobOptions, output_for

        monkeypatch.chdir(temp_dir)
        source = str(temp_dir / "a.mp4")

        with pytest.raises(MissingOutputError, match="overwrite the input"):
            output_for(JobOptions(output="a.mp4", overwrite=True), [source], "_c")
        with pytest.raises(MissingOutputError):
            output_for(JobOptions(output=source), [str(temp_dir / "b.mp4"), source], "_c")

    def test_explicit_output_equal_to_input_when_replacing(self):
        """Replacing writes beside the input and swaps it in afterwards."""
        from ffmpeg_simple.options import JobOptions, output_for

        out = output_for(JobOptions(output="/v/a.mp4", replace=True), ["/v/a.mp4"], "_c")

        assert out == f"/v/a.tmp.{os.getpid()}.mp4"

    def test_overwrite_never_deletes_the_input(self, temp_dir, make_metadata):
        """Compiling such a job fails before reconciliation can touch the input."""
        from ffmpeg_simple.compiler import compile_job
        from ffmpeg_simple.errors import MissingOutputError
        from ffmpeg_simple.options import JobOptions

        source = temp_dir / "a.mp4"
        source.write_bytes(b"keep")

        with pytest.raises(MissingOutputError):
            compile_job(JobOptions(input=str(source), output=str(source), overwrite=True), [make_metadata(str(source))])
        assert source.read_bytes() == b"keep"


class TestParseTime:
    """Tests for time parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (90, 90.0),
            ("90", 90.0),
            ("1:30", 90.0),
            ("01:02:03.5", 3723.5),
            ("00:00:01,25", 1.25),
            (None, None),
            ("", None),
        ],
    )
    def test_parse_time(self, value, expected):
        from ffmpeg_simple.options import parse_time

        assert parse_time(value) == expected
