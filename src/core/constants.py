"""Core constants used across Cairn modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".cairn")
OBJECTS_DIR_NAME = "objects"
CATALOG_FILE_NAME = "catalog.json"
CATALOG_FORMAT_VERSION = 1
HASH_ALGORITHM = "sha256"
CID_PREFIX = "b"
INITIAL_DATASET_VERSION = "1.0.0"
DEFAULT_UPLOAD_CONCURRENCY = 5
MAX_UPLOAD_CONCURRENCY = 20
MEDIUM_BATCH_CONCURRENCY = 10
MEDIUM_BATCH_THRESHOLD = 100
DEFAULT_UPLOAD_TIMEOUT_SECONDS = 30.0
DEFAULT_CHUNK_SIZE = 50
DEFAULT_LARGE_BATCH_THRESHOLD = 1000
MEMORY_CHECK_INTERVAL = 100
DEFAULT_MEMORY_WARNING_MB = 500
MAX_FILES_PER_DATASET = 10_000
MAX_DATASET_NAME_LENGTH = 255
SYSTEM_CREATOR = "system"
USER_CREATOR = "user"
