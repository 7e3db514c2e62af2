"""
Output reconciliation for ffmpeg-simple.

Decides what happens when the output path is already taken: skip,
overwrite (through the trash), rename to a free numbered name, or cancel.
Without a policy and with an operator present, the choice is prompted.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rich.prompt import Prompt

from ffmpeg_simple.errors import ProbeError, RenameExhaustedError
from ffmpeg_simple.fileops import ensure_parent, remove
from ffmpeg_simple.options import JobOptions
from ffmpeg_simple.prober import InputMetadata, Prober

MAX_RENAME_ATTEMPTS = 100
CHOICES = ("overwrite", "rename", "cancel")

PromptFn = Callable[[str, tuple], str]


@dataclass
class ReconcilePolicy:
    """How to treat an existing output."""

    overwrite: bool = False
    skip: bool = False
    quiet: bool = False  # no operator to ask
    recoverable: bool = True  # overwrite through the trash

    @classmethod
    def from_options(cls, opts: JobOptions, attended: bool = True) -> "ReconcilePolicy":
        return cls(
            overwrite=opts.overwrite,
            skip=opts.skip,
            quiet=opts.silent or not attended,
            recoverable=opts.trash,
        )


@dataclass
class ReconciliationResult:
    """
    Outcome of reconciling one output path.

    Exactly one of ok/cancelled/skipped is True, except for an unanswered
    prompt (quiet mode) where all three are False and ``unanswered`` is set.
    """

    output: str
    ok: bool = False
    cancelled: bool = False
    skipped: bool = False
    unanswered: bool = False
    existing: Optional[InputMetadata] = None
    existing_unreadable: bool = False
    renamed: bool = False


def rich_prompt(message: str, choices: tuple) -> str:
    """Ask the operator on the terminal."""
    return Prompt.ask(message, choices=list(choices), default="cancel")


def numbered_name(path: str, n: int) -> str:
    """``/d/a.mp4`` -> ``/d/a (n).mp4``"""
    p = Path(path)
    return str(p.with_name(f"{p.stem} ({n}){p.suffix}"))


def next_free_name(path: str, max_attempts: int = MAX_RENAME_ATTEMPTS) -> str:
    """
    First ``name (N).ext`` that does not exist.

    Raises:
        RenameExhaustedError: If none of the ``max_attempts`` names is free.
    """
    for n in range(1, max_attempts + 1):
        candidate = numbered_name(path, n)
        if not os.path.lexists(candidate):
            return candidate
    raise RenameExhaustedError(path, max_attempts)


class OutputReconciler:
    """Resolve -> probe existing -> decide -> commit."""

    def __init__(
        self,
        prober: Optional[Prober] = None,
        prompt: Optional[PromptFn] = None,
        delete: Callable[..., None] = remove,
        max_renames: int = MAX_RENAME_ATTEMPTS,
        log: Optional[Callable[[str], None]] = None,
    ):
        self.prober = prober
        self.prompt = prompt or rich_prompt
        self.delete = delete
        self.max_renames = max_renames
        self.log = log

    def _describe(self, result: ReconciliationResult) -> str:
        if result.existing is not None:
            m = result.existing
            details = f"{m.human_size}, {m.human_duration}"
        elif result.existing_unreadable:
            details = "unreadable"
        else:
            details = "exists"
        return f"Output already exists: {result.output} ({details})"

    def _probe_existing(self, result: ReconciliationResult) -> None:
        if self.prober is None:
            return
        try:
            result.existing = self.prober.probe(result.output, cache=False)
        except ProbeError:
            result.existing_unreadable = True

    def _commit(self, result: ReconciliationResult) -> ReconciliationResult:
        ensure_parent(result.output)
        result.ok = True
        return result

    def reconcile(self, output: str, policy: Optional[ReconcilePolicy] = None) -> ReconciliationResult:
        """
        Decide the final output path.

        Raises:
            RenameExhaustedError: If renaming found no free name.
        """
        policy = policy or ReconcilePolicy()
        result = ReconciliationResult(output=str(output))

        if not os.path.lexists(result.output):
            return self._commit(result)

        if policy.skip:
            result.skipped = True
            return result

        self._probe_existing(result)

        if policy.overwrite:
            self.delete(result.output, recoverable=policy.recoverable)
            return self._commit(result)

        if policy.quiet:
            result.unanswered = True
            return result

        choice = self.prompt(self._describe(result), CHOICES)
        if choice == "overwrite":
            self.delete(result.output, recoverable=policy.recoverable)
            return self._commit(result)
        if choice == "rename":
            result.output = next_free_name(result.output, self.max_renames)
            result.renamed = True
            if self.log:
                self.log(f"Renamed output to {result.output}")
            return self._commit(result)

        result.cancelled = True
        return result
