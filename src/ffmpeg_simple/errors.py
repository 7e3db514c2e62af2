"""
Exceptions raised by ffmpeg-simple.

Every error carries a human readable message suitable for a one-line
report; the optional ``cause`` keeps the underlying exception for verbose
diagnostics.
"""

from typing import List, Optional


class FfmpegSimpleError(Exception):
    """Base exception for all ffmpeg-simple errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, input_path: Optional[str] = None):
        self.message = message
        self.cause = cause
        self.input_path = input_path
        super().__init__(message)


class ProbeError(FfmpegSimpleError):
    """Raised when ffprobe fails or the input cannot be read."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        super().__init__(f"Couldn't read input: {path}", cause=cause, input_path=path)


# -------------------- COMPILE ERRORS --------------------


class CompileError(FfmpegSimpleError):
    """Base class for errors found while translating options to ffmpeg arguments."""


class InvalidSubtitlesError(CompileError):
    """Raised when neither the subtitles path nor the same-named .srt exists."""

    def __init__(self, subtitles: str, guess: Optional[str] = None):
        self.subtitles = subtitles
        self.guess = guess
        message = f"Subtitles file not found: {subtitles}"
        if guess and guess != subtitles:
            message += f" (also tried {guess})"
        super().__init__(message)


class InvalidSubtitlesModeError(CompileError):
    """Raised when the subtitles mode is not one of burn/stream."""

    def __init__(self, mode: str):
        self.mode = mode
        super().__init__(f"Invalid subtitles mode: {mode!r} (expected 'burn' or 'stream')")


class UnsupportedSpeedError(CompileError):
    """Raised when no atempo chain of 10 stages or less can reach the speed."""

    def __init__(self, speed: float):
        self.speed = speed
        super().__init__(f"Unsupported speed: {speed}")


class MissingInputError(CompileError):
    """Raised when neither input nor inputs resolve to a concrete path."""

    def __init__(self, pattern: str = ""):
        self.pattern = pattern
        super().__init__(f"No input matched: {pattern}" if pattern else "Need an input")


class MissingOutputError(CompileError):
    """Raised when an output path cannot be derived from the inputs."""

    def __init__(self, message: str = "Need an output path when there is more than one input"):
        super().__init__(message)


# -------------------- RECONCILIATION ERRORS --------------------


class ReconciliationError(FfmpegSimpleError):
    """Base class for errors while resolving an existing output."""


class RenameExhaustedError(ReconciliationError):
    """Raised when no free numbered name was found for the output."""

    def __init__(self, output: str, attempts: int):
        self.output = output
        self.attempts = attempts
        super().__init__(f"Couldn't find a free name for {output} after {attempts} attempts")


class Cancelled(ReconciliationError):
    """Raised when the operator cancels at the overwrite prompt."""

    def __init__(self, output: str):
        self.output = output
        super().__init__(f"Cancelled: {output} already exists")


# -------------------- RUN ERRORS --------------------


class RunError(FfmpegSimpleError):
    """Raised when the ffmpeg process signals failure."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr_tail: Optional[List[str]] = None,
        cause: Optional[BaseException] = None,
    ):
        self.returncode = returncode
        self.stderr_tail = stderr_tail or []
        super().__init__(message, cause=cause)


class ReplaceError(FfmpegSimpleError):
    """Raised when replacing the input in place failed.

    ``errors`` holds every intermediate failure (move, fallback move and,
    when it also failed, the restore of the backup).
    """

    def __init__(self, message: str, errors: List[BaseException], backup: Optional[str] = None):
        self.errors = errors
        self.backup = backup
        super().__init__(message, cause=errors[-1] if errors else None)
