"""
Rich progress UI for ffmpeg-simple.

Colors and the live display are turned off by NO_COLOR, by
FFMPEG_SIMPLE_SCRIPT_MODE, and when stdout isn't a terminal.
"""

import os
import sys
from typing import Iterable, Optional, Tuple

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from ffmpeg_simple.ui.legacy_ui import JobCounts, fmt_hms, shorten, size_string


def _should_use_color() -> bool:
    """False under NO_COLOR (https://no-color.org/), script mode or a non-tty stdout."""
    if os.getenv("NO_COLOR") or os.getenv("FFMPEG_SIMPLE_SCRIPT_MODE"):
        return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


def _columns() -> tuple:
    return (
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(bar_width=36),
        TextColumn("{task.percentage:>5.1f}%"),
        TextColumn("[cyan]{task.fields[info]}"),
        TimeElapsedColumn(),
        TextColumn("ETA {task.fields[eta]}"),
    )


class SimpleRichUI:
    """Rich UI: one bar for the running job, one for the batch."""

    def __init__(self, progress_enabled: bool = True, silent: bool = False, console: Optional[Console] = None):
        color = _should_use_color()
        self.console = console or Console(force_terminal=color or None, no_color=not color)
        self.err_console = Console(stderr=True, no_color=not color)
        self.silent = silent
        self.enabled = progress_enabled and not silent and color
        self.counts = JobCounts()

        self.progress_bar: Optional[Progress] = None
        self.job_task: Optional[TaskID] = None
        self.batch_task: Optional[TaskID] = None

    def _start(self, total: int) -> Progress:
        bar = Progress(*_columns(), console=self.console, transient=True)
        bar.start()
        self.job_task = bar.add_task("", total=100, info="", eta="")
        if total > 1:
            self.batch_task = bar.add_task("Batch", total=100, info="", eta="")
        self.progress_bar = bar
        return bar

    def progress(self, name: str, view, cur: int = 1, total: int = 1, stage: str = "RUN", batch_view=None) -> None:
        """Show a ProgressView for the running job (and the batch when given)."""
        if not self.enabled:
            return
        bar = self.progress_bar or self._start(total)
        details = [shorten(name, 40), view.timemark or ""]
        if view.speed:
            details.append(f"{view.speed:.1f}x")
        bar.update(
            self.job_task,
            description=f"[{cur}/{total}] {stage}",
            completed=view.percent,
            info=" ".join(d for d in details if d),
            eta=fmt_hms(view.eta_seconds),
        )
        if batch_view is not None and self.batch_task is not None:
            bar.update(
                self.batch_task,
                completed=batch_view.percent,
                info=f"{cur - 1}/{total} done",
                eta=fmt_hms(batch_view.eta_seconds),
            )

    def endline(self) -> None:
        """Stop the live display."""
        if self.progress_bar is None:
            return
        self.progress_bar.stop()
        self.progress_bar = self.job_task = self.batch_task = None

    def log(self, msg: str, style: str = "") -> None:
        if not self.silent:
            self.console.print(msg, style=style or None)

    def warn(self, msg: str) -> None:
        self.err_console.print(f"[yellow]⚠ WARNING[/yellow]: {msg}")

    def error(self, msg: str) -> None:
        self.err_console.print(f"[red]✗ FAILED[/red]: {msg}")

    def print_exception(self) -> None:
        self.err_console.print_exception()

    def log_file_start(self, inp: str, output: str) -> None:
        self.log(f"\n[bold blue]▶[/bold blue] [cyan]{inp}[/cyan]\n  [dim]→ {output}[/dim]")

    def log_skip(self, reason: str) -> None:
        self.log(f"  [yellow]⊘ SKIP[/yellow]: {reason}")
        self.counts.skipped += 1

    def log_error(self, error: str) -> None:
        self.endline()
        self.error(error)
        self.counts.failed += 1

    def log_success(self, elapsed: float, output_size: int = 0) -> None:
        size = f" ({size_string(output_size)})" if output_size > 0 else ""
        self.log(f"  [green]✓ OK[/green] in {fmt_hms(elapsed)}{size}")
        self.counts.ok += 1

    def print_summary(self, total_time: float, failures: Iterable[Tuple[str, str]] = ()) -> None:
        """Counts table, then a table of failed inputs if any."""
        summary = Table(title="Summary", box=None, show_header=False)
        summary.add_column("Outcome", style="bold")
        summary.add_column("Jobs", justify="right")
        summary.add_row("✓ Converted", f"[green]{self.counts.ok}[/green]")
        summary.add_row("⊘ Skipped", f"[yellow]{self.counts.skipped}[/yellow]")
        summary.add_row("✗ Failed", f"[red]{self.counts.failed}[/red]")
        summary.add_row("⏱ Total time", fmt_hms(total_time))
        self.console.print()
        self.console.print(summary)

        rows = list(failures)
        if rows:
            failed = Table(title="Failures", box=None)
            failed.add_column("Input", style="cyan")
            failed.add_column("Error", style="red")
            for row in rows:
                failed.add_row(*row)
            self.console.print(failed)

    def get_stats(self) -> Tuple[int, int, int, int]:
        return self.counts.as_tuple()
