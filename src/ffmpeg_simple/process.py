"""
ffmpeg process handling for ffmpeg-simple.

FfmpegProcess runs one ffmpeg invocation to completion and reports
start/progress/stderr/stdout/end/error through RunHooks. A deadline
terminates, then kills, an unresponsive process. When attended, a ``q``
typed on the terminal is forwarded to ffmpeg's stdin.
"""

import os
import re
import select
import shlex
import subprocess
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

from ffmpeg_simple.errors import RunError
from ffmpeg_simple.progress import ProgressSample, parse_progress_line

STDERR_TAIL_LINES = 20
KILL_GRACE_SECONDS = 5.0

_LINE_SPLIT = re.compile(rb"[\r\n]+")


@dataclass
class RunHooks:
    """Callbacks for process events. Unset hooks are ignored."""

    on_start: Optional[Callable[[str], None]] = None
    on_progress: Optional[Callable[[ProgressSample], None]] = None
    on_stderr: Optional[Callable[[str], None]] = None
    on_stdout: Optional[Callable[[str], None]] = None
    on_end: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[BaseException], None]] = None


# -------------------- PROCESS REGISTRY --------------------

# Track all running ffmpeg processes for cleanup on Ctrl+C
_active_processes: List[subprocess.Popen] = []
_processes_lock = threading.Lock()


def register_process(proc: subprocess.Popen) -> None:
    """Register a process for tracking."""
    with _processes_lock:
        _active_processes.append(proc)


def unregister_process(proc: subprocess.Popen) -> None:
    """Unregister a process from tracking."""
    with _processes_lock:
        if proc in _active_processes:
            _active_processes.remove(proc)


def terminate_all_processes() -> None:
    """Terminate all active processes, then kill the ones still running."""
    with _processes_lock:
        procs = list(_active_processes)

    for proc in procs:
        try:
            if proc.poll() is None:
                proc.terminate()
        except OSError:
            pass

    time.sleep(0.5)

    for proc in procs:
        try:
            if proc.poll() is None:
                proc.kill()
        except OSError:
            pass

    with _processes_lock:
        _active_processes.clear()


def iter_stream_lines(stream) -> Iterator[str]:
    """Yield lines split on both ``\\n`` and ``\\r`` (ffmpeg rewrites its stats line)."""
    buf = b""
    read = getattr(stream, "read1", stream.read)
    while True:
        chunk = read(4096)
        if not chunk:
            break
        buf += chunk
        parts = _LINE_SPLIT.split(buf)
        buf = parts.pop()
        for part in parts:
            if part:
                yield part.decode("utf-8", errors="replace")
    if buf:
        yield buf.decode("utf-8", errors="replace")


# -------------------- KEY FORWARDING --------------------


class QuitKeyForwarder:
    """
    Forward ``q`` keystrokes from the terminal to a process.

    Does nothing when stdin is not a terminal or termios is unavailable.
    """

    def __init__(self, on_quit: Callable[[], None], stdin=None):
        self.on_quit = on_quit
        self.stdin = stdin or sys.stdin
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._saved_attrs = None

    def __enter__(self) -> "QuitKeyForwarder":
        try:
            if not self.stdin.isatty():
                return self
            import termios
            import tty

            fd = self.stdin.fileno()
            self._saved_attrs = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        except (ImportError, OSError, ValueError):
            self._saved_attrs = None
            return self
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()
        return self

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                ready, _, _ = select.select([self.stdin], [], [], 0.2)
            except (OSError, ValueError):
                return
            if ready:
                ch = os.read(self.stdin.fileno(), 1).decode("utf-8", errors="ignore")
                if ch in ("q", "Q"):
                    self.on_quit()

    def __exit__(self, *exc) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        if self._saved_attrs is not None:
            import termios

            try:
                termios.tcsetattr(self.stdin.fileno(), termios.TCSADRAIN, self._saved_attrs)
            except (termios.error, OSError):
                pass


# -------------------- PROCESS --------------------


class FfmpegProcess:
    """One ffmpeg invocation, run to completion."""

    def __init__(self, argv: List[str], timeout: float = 0, attended: bool = False):
        self.argv = argv
        self.timeout = timeout
        self.attended = attended
        self.proc: Optional[subprocess.Popen] = None
        self.timed_out = False
        self.stderr_tail: deque = deque(maxlen=STDERR_TAIL_LINES)
        self._quit_lock = threading.Lock()

    @property
    def command_line(self) -> str:
        return shlex.join(self.argv)

    def send_quit(self) -> None:
        """Ask ffmpeg to stop cleanly (``q`` on its stdin)."""
        with self._quit_lock:
            if self.proc is None or self.proc.stdin is None or self.proc.poll() is not None:
                return
            try:
                self.proc.stdin.write(b"q")
                self.proc.stdin.flush()
            except (BrokenPipeError, OSError, ValueError):
                pass

    def kill(self, grace: float = KILL_GRACE_SECONDS) -> bool:
        """
        Terminate, wait up to ``grace`` seconds, then kill.

        Returns False when the process had already exited.
        """
        if self.proc is None or self.proc.poll() is not None:
            return False
        self.proc.terminate()
        try:
            self.proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            self.proc.kill()
        return True

    def _on_deadline(self) -> None:
        # A deadline firing after a normal exit is not a timeout
        if self.kill():
            self.timed_out = True

    def _read_stdout(self, hooks: RunHooks) -> None:
        if self.proc is None or self.proc.stdout is None:
            return
        for line in iter_stream_lines(self.proc.stdout):
            if hooks.on_stdout:
                hooks.on_stdout(line)

    def run(self, hooks: Optional[RunHooks] = None) -> None:
        """
        Start ffmpeg and block until it ends.

        The end hook fires only for a zero exit status; any failure fires
        the error hook and raises.

        Raises:
            RunError: If ffmpeg can't start, exits non-zero or times out.
        """
        hooks = hooks or RunHooks()
        try:
            self.proc = subprocess.Popen(
                self.argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            error = RunError(f"Couldn't start {self.argv[0]}: {e}", cause=e)
            if hooks.on_error:
                hooks.on_error(error)
            raise error from e

        register_process(self.proc)
        timer: Optional[threading.Timer] = None
        try:
            if hooks.on_start:
                hooks.on_start(self.command_line)
            if self.timeout and self.timeout > 0:
                timer = threading.Timer(self.timeout, self._on_deadline)
                timer.daemon = True
                timer.start()
            stdout_thread = threading.Thread(target=self._read_stdout, args=(hooks,), daemon=True)
            stdout_thread.start()

            if self.attended:
                with QuitKeyForwarder(self.send_quit):
                    self._pump_stderr(hooks)
            else:
                self._pump_stderr(hooks)

            rc = self.proc.wait()
            stdout_thread.join(timeout=1.0)
        finally:
            if timer is not None:
                timer.cancel()
            unregister_process(self.proc)
            if self.proc.stdin:
                try:
                    self.proc.stdin.close()
                except OSError:
                    pass

        error: Optional[RunError] = None
        if self.timed_out:
            error = RunError(f"ffmpeg timed out after {self.timeout:g}s", rc, list(self.stderr_tail))
        elif rc != 0:
            last = self.stderr_tail[-1] if self.stderr_tail else ""
            error = RunError(f"ffmpeg exited with code {rc}: {last}".rstrip(": "), rc, list(self.stderr_tail))
        if error is not None:
            if hooks.on_error:
                hooks.on_error(error)
            raise error
        if hooks.on_end:
            hooks.on_end()

    def _pump_stderr(self, hooks: RunHooks) -> None:
        if self.proc is None or self.proc.stderr is None:
            return
        for line in iter_stream_lines(self.proc.stderr):
            sample = parse_progress_line(line)
            if sample is not None:
                if hooks.on_progress:
                    hooks.on_progress(sample)
                continue
            self.stderr_tail.append(line)
            if hooks.on_stderr:
                hooks.on_stderr(line)
