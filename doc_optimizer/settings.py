"""
settings.py - User-facing knobs for one optimization run.
"""

import multiprocessing
from dataclasses import dataclass

MIN_QUALITY = 10
MAX_QUALITY = 100
DEFAULT_QUALITY = 70


@dataclass(frozen=True)
class OptimizeSettings:
    """
    Options shared by both walkers.

    Attributes:
        quality: Recompression quality, 10-100 (maps linearly to 0.0-1.0)
        skip_alpha: Leave images that may carry transparency untouched
        max_workers: Parallel recompression workers (1 = sequential, 0 = auto)
    """
    quality: int = DEFAULT_QUALITY
    skip_alpha: bool = True
    max_workers: int = 1

    def __post_init__(self):
        if isinstance(self.quality, bool) or not isinstance(self.quality, int):
            raise ValueError(f"quality must be an integer, got {self.quality!r}")
        if not MIN_QUALITY <= self.quality <= MAX_QUALITY:
            raise ValueError(
                f"quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {self.quality}"
            )
        if self.max_workers < 0:
            raise ValueError(f"max_workers must be >= 0, got {self.max_workers}")

    @property
    def encoder_quality(self) -> float:
        """Quality on the encoder's 0.0-1.0 scale."""
        return self.quality / 100

    @property
    def worker_count(self) -> int:
        if self.max_workers <= 0:
            return multiprocessing.cpu_count()
        return self.max_workers
