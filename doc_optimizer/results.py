"""
results.py - Run inputs, outputs and the bookkeeping shared by both walkers.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

OUTPUT_PREFIX = "optimized_"

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class DocumentArtifact:
    """A named, read-only document buffer."""
    name: str
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def suffix(self) -> str:
        return Path(self.name).suffix.lower()

    @classmethod
    def from_path(cls, path: Path) -> "DocumentArtifact":
        path = Path(path)
        return cls(name=path.name, data=path.read_bytes())


@dataclass(frozen=True)
class OptimizationResult:
    """Result of optimizing one document."""
    original_size: int
    compressed_size: int
    file_name: str
    reduction_percentage: float
    data: bytes = field(repr=False)
    logs: Tuple[str, ...] = ()

    images_found: int = 0
    images_replaced: int = 0
    images_failed: int = 0

    @property
    def output_name(self) -> str:
        return OUTPUT_PREFIX + self.file_name

    @property
    def saved_bytes(self) -> int:
        return max(0, self.original_size - self.compressed_size)

    def summary(self) -> str:
        return (
            f"Input:  {self.file_name} ({self.original_size:,} bytes)\n"
            f"Output: {self.output_name} ({self.compressed_size:,} bytes)\n"
            f"Reduction: {self.reduction_percentage:.1f}%\n"
            f"Images: {self.images_replaced}/{self.images_found} replaced, "
            f"{self.images_failed} failed"
        )


def reduction_percentage(original_size: int, compressed_size: int) -> float:
    """Size reduction in percent, never negative."""
    if original_size <= 0:
        return 0.0
    return max(0.0, (original_size - compressed_size) / original_size * 100)


class RunLog:
    """
    Ordered, append-only trace of one run.

    Every line is also forwarded to the module logger so the trail shows up
    in regular logging output.
    """

    def __init__(self, first_line: Optional[str] = None):
        self._lines: List[str] = []
        if first_line:
            self.info(first_line)

    def info(self, message: str):
        self._lines.append(message)
        logger.info(message)

    def warning(self, message: str):
        self._lines.append(message)
        logger.warning(message)

    @property
    def lines(self) -> Tuple[str, ...]:
        return tuple(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class ProgressReporter:
    """Forwards progress to a caller sink, clamped to 0-100 and non-decreasing."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self.current = 0

    def report(self, value: int):
        value = min(100, max(self.current, int(value)))
        self.current = value
        if self._callback:
            self._callback(value)

    def scaled(self, done: int, total: int, start: int, end: int):
        """Report done/total mapped into [start, end], rounding half up."""
        if total <= 0:
            self.report(end)
            return
        self.report(start + int((done / total) * (end - start) + 0.5))
