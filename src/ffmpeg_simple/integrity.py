"""
Output integrity checking for ffmpeg-simple.

After a run the output is probed again and compared with the inputs:
- Size ratio against the aggregate input size
- Duration ratio against the expected output duration

A ratio is only reported as significant outside [0.95, 1.05]; smaller
differences are container overhead.
"""

from dataclasses import dataclass
from typing import List, Optional

from ffmpeg_simple.errors import ProbeError
from ffmpeg_simple.fileops import file_size
from ffmpeg_simple.prober import InputMetadata, Prober
from ffmpeg_simple.ui.legacy_ui import duration_string, ratio_string, size_string

SIGNIFICANT_LOW = 0.95
SIGNIFICANT_HIGH = 1.05


def compute_ratio(new: Optional[float], old: Optional[float]) -> Optional[float]:
    """``new / old``, or None when either side is unknown."""
    if not new or not old:
        return None
    return float(new) / float(old)


def is_significant(ratio: Optional[float]) -> bool:
    """
    Check if a ratio is worth reporting.

    Both band limits count as not significant.

    >>> is_significant(1.02), is_significant(1.10), is_significant(0.95)
    (False, True, False)
    """
    if ratio is None:
        return False
    return not (SIGNIFICANT_LOW <= ratio <= SIGNIFICANT_HIGH)


@dataclass
class IntegrityReport:
    """Result of probing a finished output."""

    output: str
    size: int = 0
    duration: Optional[float] = None
    size_ratio: Optional[float] = None
    duration_ratio: Optional[float] = None
    metadata: Optional[InputMetadata] = None
    warning: Optional[str] = None

    @property
    def size_significant(self) -> bool:
        return is_significant(self.size_ratio)

    @property
    def duration_significant(self) -> bool:
        return is_significant(self.duration_ratio)

    def lines(self) -> List[str]:
        """Human readable summary lines."""
        result = [f"Output size: {size_string(self.size)}"]
        if self.size_significant:
            result[0] += f" ({ratio_string(self.size_ratio)} vs input)"
        if self.duration is not None:
            line = f"Output duration: {duration_string(self.duration)}"
            if self.duration_significant:
                line += f" ({ratio_string(self.duration_ratio)} vs expected)"
            result.append(line)
        return result


def check_output(
    prober: Prober,
    output: str,
    input_size: int,
    expected_duration: float,
) -> IntegrityReport:
    """
    Probe ``output`` and compare it with the inputs.

    Probe failure is not an error: the report carries a warning instead.

    Args:
        prober: Prober used for the fresh (uncached) probe.
        output: Finished output path.
        input_size: Aggregate size of the inputs in bytes.
        expected_duration: Expected output duration in seconds.
    """
    report = IntegrityReport(output=output, size=file_size(output))
    try:
        metadata = prober.probe(output, cache=False)
    except ProbeError as e:
        report.warning = f"Couldn't probe output: {e.message}"
        report.size_ratio = compute_ratio(report.size, input_size)
        return report

    report.metadata = metadata
    if metadata is not None:
        report.size = metadata.size or report.size
        report.duration = metadata.duration
    report.size_ratio = compute_ratio(report.size, input_size)
    report.duration_ratio = compute_ratio(report.duration, expected_duration)
    return report
