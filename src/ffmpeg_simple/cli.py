"""
Command-line interface for ffmpeg-simple.

This is the main entry point for the application.
"""

import argparse
import json
import sys
from typing import Any, Dict, List, Optional, Tuple

from ffmpeg_simple import __version__, commands
from ffmpeg_simple.batch import run_batch
from ffmpeg_simple.compiler import SUBTITLES_MODES
from ffmpeg_simple.config import Config, apply_config_to_args, load_config_file
from ffmpeg_simple.errors import CompileError, FfmpegSimpleError
from ffmpeg_simple.json_progress import JSONProgressOutput
from ffmpeg_simple.options import JobOptions, parse_time
from ffmpeg_simple.process import terminate_all_processes
from ffmpeg_simple.runner import Runner
from ffmpeg_simple.ui import make_ui

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_FAILED = 2
EXIT_INTERRUPTED = 130

# Namespace attributes that configure the run, not the job
GLOBAL_DESTS = {
    "command",
    "dryrun",
    "timeout",
    "json_progress",
    "progress",
    "verbose",
    "ffmpeg",
    "ffprobe",
    "preset_name",
    "inputs",
    "mode",
    "full",
    "angle",
    "fps",
    "width",
}


class ArgumentParser(argparse.ArgumentParser):
    """argparse with usage errors mapped to exit status 1."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


# -------------------- ARGUMENT PARSING --------------------


def _job_options_parser() -> argparse.ArgumentParser:
    """Options shared by every subcommand. Defaults are None so presets show through."""
    p = ArgumentParser(add_help=False)

    io = p.add_argument_group("Input / output")
    io.add_argument("inputs", nargs="+", metavar="INPUT", help="Input files or glob patterns")
    io.add_argument("-o", "--output", help="Output file")
    io.add_argument("--output-dir", help="Directory for derived outputs")
    io.add_argument("--prefix", help="Prefix of derived output names")
    io.add_argument("--suffix", help="Suffix of derived output names (default: _compressed)")
    io.add_argument("-e", "--extension", help="Extension of derived output names")

    codec = p.add_argument_group("Codecs")
    codec.add_argument("-c", "--codec", help="Codec for all streams (-c)")
    codec.add_argument("--video-codec", help="Video codec (-c:v)")
    codec.add_argument("--audio-codec", help="Audio codec (-c:a)")
    codec.add_argument("--copy", action="store_true", default=None, help="Stream copy, no re-encode")
    codec.add_argument("--crf", type=int, help="Constant rate factor")
    codec.add_argument("--quality", type=int, help="Quality scale (-q:v)")
    codec.add_argument("--encoder-preset", dest="preset", help="Encoder preset (-preset)")

    video = p.add_argument_group("Filters")
    video.add_argument("--scale", help="Scale, e.g. 1280:-2")
    video.add_argument("--crop", help="Crop, e.g. iw/2:ih:0:0")
    video.add_argument("--rotate", type=float, help="Rotate (radians, or degrees above pi)")
    video.add_argument("--transpose", type=int, choices=range(0, 4), help="Transpose direction")
    video.add_argument("--hflip", action="store_true", default=None, help="Mirror horizontally")
    video.add_argument("--vflip", action="store_true", default=None, help="Mirror vertically")
    video.add_argument("--filter", dest="filters", action="append", help="Extra -vf filter (repeatable)")
    video.add_argument("--subtitles", nargs="?", const=True, help="Subtitles file (default: same-named .srt)")
    video.add_argument("--subtitles-mode", choices=SUBTITLES_MODES, help="Burn in or mux as a stream")
    video.add_argument("--speed", type=float, help="Playback speed factor")
    video.add_argument("--framerate", type=float, help="Maximum framerate")

    timing = p.add_argument_group("Trimming")
    timing.add_argument("--from", dest="start", help="Start position (seconds or HH:MM:SS)")
    timing.add_argument("--to", help="End position")
    timing.add_argument("--duration", help="Duration")

    streams = p.add_argument_group("Streams / metadata")
    streams.add_argument("--no-audio", dest="audio", action="store_false", default=None, help="Drop audio")
    streams.add_argument("--no-video", dest="video", action="store_false", default=None, help="Drop video")
    streams.add_argument("--rotate-meta", type=int, help="Rotation metadata written after encoding")
    streams.add_argument("--metadata", action="append", metavar="KEY=VALUE", help="Container metadata")
    streams.add_argument("--input-option", dest="input_options", action="append", help="Raw input option")
    streams.add_argument("--output-option", dest="output_options", action="append", help="Raw output option")

    policy = p.add_argument_group("Policy")
    policy.add_argument("-y", "--overwrite", "--force", action="store_true", default=None, help="Overwrite outputs")
    policy.add_argument("-n", "--skip", action="store_true", default=None, help="Skip existing outputs")
    policy.add_argument("-s", "--silent", action="store_true", default=None, help="No progress or info output")
    policy.add_argument("--halt", dest="halt", action="store_true", default=None, help="Stop at the first failure")
    policy.add_argument("--no-halt", dest="halt", action="store_false", default=None, help="Keep going after failures")
    policy.add_argument("--replace", action="store_true", default=None, help="Replace the input with the output")
    policy.add_argument("--no-trash", dest="trash", action="store_false", default=None, help="Delete permanently")
    policy.add_argument("--no-cache", dest="cache", action="store_false", default=None, help="Always re-probe")
    policy.add_argument("--log-file", help="Append commands and ffmpeg stderr to this file")

    run = p.add_argument_group("Run")
    run.add_argument("--dry-run", dest="dryrun", action="store_true", default=None, help="Print commands only")
    run.add_argument("--timeout", type=float, help="Kill ffmpeg after this many seconds")
    run.add_argument("--json-progress", action="store_true", default=None, help="JSON progress events on stdout")
    run.add_argument("--no-progress", dest="progress", action="store_false", default=None, help="No progress bar")
    run.add_argument("-v", "--verbose", action="store_true", default=None, help="Show commands and ffmpeg output")
    run.add_argument("--ffmpeg", help="ffmpeg binary")
    run.add_argument("--ffprobe", help="ffprobe binary")
    run.add_argument("--preset", dest="preset_name", help="Apply a [presets.NAME] table from the config")
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(
        prog="ffmpeg-simple",
        description="Common ffmpeg operations with sane defaults, progress and safe output handling.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ffmpeg-simple convert clip.mov --scale 1280:-2 --crf 28
  ffmpeg-simple cut talk.mp4 --from 00:01:00 --to 00:02:30
  ffmpeg-simple concat part1.mp4 part2.mp4 -o full.mp4
  ffmpeg-simple batch '~/Videos/*.mkv' -c libx264 --no-halt
  ffmpeg-simple gif clip.mp4 --fps 12 --width 320
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    common = _job_options_parser()
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    sub.add_parser("convert", parents=[common], help="Convert one job (several inputs need -o)")
    p = sub.add_parser("probe", parents=[common], help="Print input metadata as JSON")
    p.add_argument("--full", action="store_true", help="Include the raw ffprobe payload")
    p = sub.add_parser("concat", parents=[common], help="Join inputs into one output")
    p.add_argument("--mode", choices=commands.CONCAT_MODES, default="demux", help="demux (copy) or filter")
    sub.add_parser("cut", parents=[common], help="Trim with --from/--to/--duration (stream copy)")
    sub.add_parser("sample", parents=[common], help="Short excerpt from the middle (--duration, default 10s)")
    p = sub.add_parser("rotate-meta", aliases=["rotateMeta"], parents=[common], help="Set rotation metadata")
    p.add_argument("--angle", type=int, required=True, help="Rotation in degrees")
    sub.add_parser("caption", parents=[common], help="Burn in or mux subtitles")
    sub.add_parser("batch", parents=[common], help="One job per input")
    p = sub.add_parser("gif", parents=[common], help="Animated GIF with a generated palette")
    p.add_argument("--fps", type=int, default=commands.DEFAULT_GIF_FPS, help="Frames per second")
    p.add_argument("--width", type=int, default=commands.DEFAULT_GIF_WIDTH, help="Width in pixels")
    return parser


def parse_metadata(items: List[str]) -> Dict[str, str]:
    """``["title=x", "artist=y"]`` -> dict."""
    result: Dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid metadata (expected KEY=VALUE): {item}")
        result[key] = value
    return result


def options_record(args: argparse.Namespace) -> Dict[str, Any]:
    """Job option values explicitly given on the command line."""
    record = {k: v for k, v in vars(args).items() if k not in GLOBAL_DESTS and v is not None}
    if "metadata" in record:
        record["metadata"] = parse_metadata(record["metadata"])
    inputs = list(args.inputs)
    record["input"] = inputs[0] if len(inputs) == 1 else inputs
    return record


def build_config(args: argparse.Namespace, file_config: Optional[dict] = None) -> Config:
    """File config first, explicit CLI values on top."""
    cfg = Config()
    apply_config_to_args(file_config if file_config is not None else load_config_file(), cfg)
    if args.progress is None:
        cfg.apply_script_mode()
    for name in ("dryrun", "timeout", "json_progress", "progress", "verbose", "ffmpeg", "ffprobe", "silent", "log_file"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(cfg, name, value)
    return cfg


def job_options(args: argparse.Namespace, cfg: Config) -> JobOptions:
    """
    Build the base JobOptions: config defaults, then the preset, then flags.

    Raises:
        KeyError: If the preset doesn't exist.
    """
    record = cfg.job_defaults(args.preset_name)
    record.update(options_record(args))
    return JobOptions.from_record(record)


def build_jobs(command: str, args: argparse.Namespace, opts: JobOptions, runner: Runner) -> List[Any]:
    """Turn the subcommand into jobs for run_batch."""
    if command == "convert":
        return commands.convert(opts)
    if command == "batch":
        return commands.batch(opts)
    if command == "concat":
        return commands.concat(runner, opts, mode=args.mode)
    if command == "cut":
        return commands.cut(opts)
    if command == "sample":
        duration = parse_time(opts.duration) or commands.DEFAULT_SAMPLE_SECONDS
        return commands.sample(runner, opts, duration=duration)
    if command in ("rotate-meta", "rotateMeta"):
        return commands.rotate_meta(opts, args.angle)
    if command == "caption":
        return commands.caption(opts)
    if command == "gif":
        return commands.gif(opts, fps=args.fps, width=args.width)
    raise ValueError(f"Unknown command: {command}")


def _report(ui, cfg: Config, error: BaseException) -> None:
    """One line by default, full traceback in verbose mode."""
    if cfg.verbose:
        ui.print_exception()
    else:
        if isinstance(error, FfmpegSimpleError):
            message = error.message
        else:
            message = str(error.args[0]) if error.args else str(error)
        ui.error(message)


def setup(argv: Optional[List[str]] = None) -> Tuple[argparse.Namespace, Config]:
    args = build_parser().parse_args(argv)
    return args, build_config(args)


# -------------------- MAIN --------------------


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args, cfg = setup(argv)
    ui = make_ui(progress=cfg.progress, silent=cfg.silent or cfg.json_progress)
    json_out = JSONProgressOutput() if cfg.json_progress else None
    runner = Runner(config=cfg, ui=ui, json_out=json_out)

    try:
        opts = job_options(args, cfg)
        if args.command == "probe":
            print(json.dumps(commands.probe(runner, opts, full=args.full), indent=2, default=str))
            return EXIT_OK
        jobs = build_jobs(args.command, args, opts, runner)
    except (CompileError, KeyError, TypeError, ValueError) as e:
        _report(ui, cfg, e)
        return EXIT_USAGE
    except FfmpegSimpleError as e:
        _report(ui, cfg, e)
        return EXIT_FAILED
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED

    try:
        summary = run_batch(runner, jobs)
    except KeyboardInterrupt:
        ui.endline()
        terminate_all_processes()
        ui.warn("Interrupted")
        return EXIT_INTERRUPTED
    except FfmpegSimpleError as e:
        # Already reported by the batch
        if cfg.verbose:
            ui.print_exception()
        return EXIT_USAGE if isinstance(e, CompileError) else EXIT_FAILED

    return EXIT_OK if summary.ok else EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
