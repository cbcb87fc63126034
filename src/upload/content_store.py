"""Content-addressed upload primitive.

This module defines the upload capability the batch engine consumes
and a local filesystem implementation keyed by content id.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from core.config import CairnConfig
from core.constants import OBJECTS_DIR_NAME
from core.content_id import build_content_id, hash_bytes, is_content_id
from core.errors import CairnStoreError
from core.logging_config import get_logger
from core.types import UploadOptions, UploadResult

_LOGGER = get_logger(__name__)


class UploadPrimitive(Protocol):
    """Stores one file and returns its content id and size."""

    async def upload(self, file_path: str, options: UploadOptions) -> UploadResult:
        """Store one file or raise on failure."""
        ...


class LocalContentStore:
    """Filesystem-backed content store.

    Objects are written once under ``<data_root>/objects/<cid>``; uploading
    identical content twice yields the same cid and a single object.
    Encryption is recorded on the result but not applied to the bytes.
    """

    def __init__(self, config: CairnConfig) -> None:
        """Initialize the store from config.

        Args:
            config: Runtime configuration.
        """
        self._objects_root = config.data_root / OBJECTS_DIR_NAME
        self._objects_root.mkdir(parents=True, exist_ok=True)

    async def upload(self, file_path: str, options: UploadOptions) -> UploadResult:
        """Store one file.

        Args:
            file_path: Local file path.
            options: Upload options shared by the batch.

        Returns:
            Stored file record.

        Raises:
            CairnStoreError: If the file is missing or cannot be stored.
        """
        return await asyncio.to_thread(self._store_file, file_path, options)

    async def fetch(self, cid: str, output_path: str) -> Path:
        """Copy a stored object to a local path.

        Args:
            cid: Content id of the stored object.
            output_path: Destination file path.

        Returns:
            Resolved destination path.

        Raises:
            CairnStoreError: If the cid is malformed or unknown.
        """
        return await asyncio.to_thread(self._fetch_object, cid, Path(output_path))

    def has_object(self, cid: str) -> bool:
        """Return true when an object with this cid is stored."""
        return is_content_id(cid) and (self._objects_root / cid).exists()

    def _store_file(self, file_path: str, options: UploadOptions) -> UploadResult:
        source_path = Path(file_path).expanduser()
        if not source_path.is_file():
            raise CairnStoreError(
                f"File not found: {file_path}. Provide an existing regular file path."
            )
        try:
            payload = source_path.read_bytes()
        except OSError as error:
            raise CairnStoreError(f"Failed to read {file_path}: {error}.") from error
        cid = build_content_id(payload)
        object_path = self._objects_root / cid
        if not object_path.exists():
            _write_object(object_path, payload)
        _LOGGER.debug("object_stored", cid=cid, size=len(payload), file_path=file_path)
        return UploadResult(
            cid=cid,
            size=len(payload),
            encrypted=options.encrypt,
            uploaded_at=datetime.now(timezone.utc),
            access_conditions=options.access_conditions,
            tags=options.tags,
            original_path=str(source_path),
            content_hash=hash_bytes(payload),
        )

    def _fetch_object(self, cid: str, output_path: Path) -> Path:
        if not is_content_id(cid):
            raise CairnStoreError(f"Invalid content id format: {cid}.")
        object_path = self._objects_root / cid
        if not object_path.exists():
            raise CairnStoreError(
                f"Object {cid} not found under {self._objects_root}. Upload it before fetching."
            )
        resolved_output = output_path.expanduser().resolve()
        resolved_output.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(object_path, resolved_output)
        except OSError as error:
            raise CairnStoreError(f"Failed to fetch {cid} to {resolved_output}: {error}.") from error
        return resolved_output


def _write_object(object_path: Path, payload: bytes) -> None:
    """Write object bytes through a temp file so readers never see partial data."""
    temp_path = object_path.with_name(f".{object_path.name}.{uuid4().hex}.tmp")
    try:
        temp_path.write_bytes(payload)
        os.replace(temp_path, object_path)
    except OSError as error:
        raise CairnStoreError(f"Failed to write object {object_path.name}: {error}.") from error
