"""Batch progress accounting.

This module keeps the live progress record of a running batch and
recomputes percentage, throughput, and ETA on every finished file.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from core.types import DatasetProgress, ProgressOperation


@dataclass
class BatchProgressTracker:
    """Track per-file outcomes for one batch, chunked or not."""

    operation: ProgressOperation
    total: int
    started_at: float = field(default_factory=time.monotonic)
    progress: DatasetProgress = field(init=False)

    def __post_init__(self) -> None:
        self.progress = DatasetProgress(
            operation=self.operation,
            total=self.total,
            timestamp=datetime.now(timezone.utc),
        )

    @property
    def processed(self) -> int:
        """Number of files with an outcome so far."""
        return self.progress.completed + self.progress.failed

    def record_success(self, file_path: str) -> DatasetProgress:
        """Count one stored file and return a progress copy."""
        self.progress.completed += 1
        return self._refresh(file_path)

    def record_failure(self, file_path: str) -> DatasetProgress:
        """Count one failed file and return a progress copy."""
        self.progress.failed += 1
        return self._refresh(file_path)

    def _refresh(self, file_path: str) -> DatasetProgress:
        elapsed_ms = (time.monotonic() - self.started_at) * 1000
        progress = self.progress
        progress.current_file = file_path
        progress.timestamp = datetime.now(timezone.utc)
        progress.percentage = progress_percentage(self.processed, progress.total)
        progress.rate = compute_rate(progress.completed, elapsed_ms)
        progress.eta_ms = compute_eta_ms(progress.total - self.processed, progress.rate)
        return replace(progress)


def progress_percentage(processed: int, total: int) -> float:
    """Compute bounded processed percentage."""
    if total <= 0:
        return 0.0
    return min(100.0, max(0.0, processed / total * 100))


def compute_rate(completed: int, elapsed_ms: float) -> float:
    """Compute stored files per second."""
    if elapsed_ms <= 0:
        return 0.0
    return completed / elapsed_ms * 1000


def compute_eta_ms(remaining: int, rate: float | None) -> float | None:
    """Estimate milliseconds remaining, or None while nothing has been stored."""
    if not rate:
        return None
    return remaining / rate * 1000
