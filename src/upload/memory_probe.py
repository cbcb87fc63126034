"""Advisory process memory observation.

Large batches sample resident memory periodically. Observations are
logged only; they never pause or reject uploads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import psutil

from core.logging_config import get_logger

_LOGGER = get_logger(__name__)
_BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class MemoryObservation:
    """One memory sample of the current process."""

    rss_mb: float
    vms_mb: float
    percent: float
    above_threshold: bool


class MemoryProbe:
    """Sample process memory and log it against a warning threshold."""

    def __init__(self, warning_mb: int, process: Any | None = None) -> None:
        self._warning_mb = warning_mb
        self._process = process or psutil.Process()

    def observe(self, context: str, **fields: object) -> MemoryObservation:
        """Record one memory sample.

        Args:
            context: Name of the batch stage taking the sample.
            fields: Extra structured fields for the log event.

        Returns:
            The sampled observation.
        """
        info = self._process.memory_info()
        rss_mb = info.rss / _BYTES_PER_MB
        observation = MemoryObservation(
            rss_mb=round(rss_mb, 2),
            vms_mb=round(info.vms / _BYTES_PER_MB, 2),
            percent=round(float(self._process.memory_percent()), 2),
            above_threshold=rss_mb > self._warning_mb,
        )
        if observation.above_threshold:
            _LOGGER.warning(
                "high_memory_usage",
                context=context,
                rss_mb=observation.rss_mb,
                warning_mb=self._warning_mb,
                percent=observation.percent,
                **fields,
            )
        _LOGGER.debug(
            "memory_usage",
            context=context,
            rss_mb=observation.rss_mb,
            vms_mb=observation.vms_mb,
            **fields,
        )
        return observation
