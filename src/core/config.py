"""Runtime configuration model for Cairn.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_DATA_ROOT,
    DEFAULT_LARGE_BATCH_THRESHOLD,
    DEFAULT_MEMORY_WARNING_MB,
    DEFAULT_UPLOAD_CONCURRENCY,
    DEFAULT_UPLOAD_TIMEOUT_SECONDS,
    MAX_UPLOAD_CONCURRENCY,
)
from core.errors import CairnConfigError


@dataclass(frozen=True)
class CairnConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for stored objects and the catalog.
        upload_concurrency: Default number of in-flight uploads per batch.
        upload_timeout_seconds: Per-file upload timeout.
        chunk_size: Window size used for large batches.
        large_batch_threshold: File count at which batches are chunked.
        memory_warning_mb: Resident memory above which batches log a warning.
    """

    data_root: Path
    upload_concurrency: int = DEFAULT_UPLOAD_CONCURRENCY
    upload_timeout_seconds: float = DEFAULT_UPLOAD_TIMEOUT_SECONDS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    large_batch_threshold: int = DEFAULT_LARGE_BATCH_THRESHOLD
    memory_warning_mb: int = DEFAULT_MEMORY_WARNING_MB

    @classmethod
    def from_env(cls) -> "CairnConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            CairnConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv("CAIRN_DATA_ROOT", str(DEFAULT_DATA_ROOT))
        concurrency = _parse_positive_int(
            "CAIRN_UPLOAD_CONCURRENCY",
            os.getenv("CAIRN_UPLOAD_CONCURRENCY", str(DEFAULT_UPLOAD_CONCURRENCY)),
        )
        timeout_seconds = _parse_positive_float(
            "CAIRN_UPLOAD_TIMEOUT_SECONDS",
            os.getenv("CAIRN_UPLOAD_TIMEOUT_SECONDS", str(DEFAULT_UPLOAD_TIMEOUT_SECONDS)),
        )
        chunk_size = _parse_positive_int(
            "CAIRN_CHUNK_SIZE",
            os.getenv("CAIRN_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE)),
        )
        large_batch_threshold = _parse_positive_int(
            "CAIRN_LARGE_BATCH_THRESHOLD",
            os.getenv("CAIRN_LARGE_BATCH_THRESHOLD", str(DEFAULT_LARGE_BATCH_THRESHOLD)),
        )
        memory_warning_mb = _parse_positive_int(
            "CAIRN_MEMORY_WARNING_MB",
            os.getenv("CAIRN_MEMORY_WARNING_MB", str(DEFAULT_MEMORY_WARNING_MB)),
        )
        return cls(
            data_root=Path(data_root_value).expanduser().resolve(),
            upload_concurrency=min(concurrency, MAX_UPLOAD_CONCURRENCY),
            upload_timeout_seconds=timeout_seconds,
            chunk_size=chunk_size,
            large_batch_threshold=large_batch_threshold,
            memory_warning_mb=memory_warning_mb,
        )


def _parse_positive_int(variable_name: str, raw_value: str) -> int:
    """Parse a strictly positive integer environment value.

    Args:
        variable_name: Environment variable name used in error messages.
        raw_value: Raw string from environment.

    Returns:
        Parsed integer.

    Raises:
        CairnConfigError: If value is not a positive integer.
    """
    try:
        value = int(raw_value)
    except ValueError as error:
        raise CairnConfigError(
            f"Invalid {variable_name} value: expected integer, got '{raw_value}'. "
            f"Set {variable_name} to a positive whole number."
        ) from error
    if value <= 0:
        raise CairnConfigError(
            f"Invalid {variable_name} value: expected a positive integer, got {value}."
        )
    return value


def _parse_positive_float(variable_name: str, raw_value: str) -> float:
    """Parse a strictly positive float environment value.

    Args:
        variable_name: Environment variable name used in error messages.
        raw_value: Raw string from environment.

    Returns:
        Parsed float.

    Raises:
        CairnConfigError: If value is not a positive number.
    """
    try:
        value = float(raw_value)
    except ValueError as error:
        raise CairnConfigError(
            f"Invalid {variable_name} value: expected number, got '{raw_value}'. "
            f"Set {variable_name} to a positive number of seconds."
        ) from error
    if value <= 0:
        raise CairnConfigError(
            f"Invalid {variable_name} value: expected a positive number, got {value}."
        )
    return value
