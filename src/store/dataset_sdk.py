"""Python SDK for dataset operations.

This module wires the content store, batch upload engine, version
manager, and event bus into one client rooted at a local data directory.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from core.config import CairnConfig
from core.constants import CATALOG_FILE_NAME
from core.events import EventBus
from store.dataset_service import DatasetService
from store.version_manager import VersionManager
from upload.batch_upload import BatchUploadEngine
from upload.content_store import LocalContentStore, UploadPrimitive


class CairnClient:
    """Primary SDK entry point for dataset workflows."""

    def __init__(
        self,
        config: CairnConfig | None = None,
        primitive: UploadPrimitive | None = None,
        persist: bool = True,
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration; read from env when omitted.
            primitive: Optional upload capability; a local content store
                under the data root when omitted.
            persist: Whether to keep a JSON catalog under the data root.
        """
        self._config = config or CairnConfig.from_env()
        self._primitive = primitive
        self._persist = persist
        self._content_store = LocalContentStore(self._config)
        self._engine = BatchUploadEngine(primitive or self._content_store, self._config)
        self._events = EventBus()
        catalog_path = self._config.data_root / CATALOG_FILE_NAME if persist else None
        self._service = DatasetService(
            self._engine,
            self._config,
            version_manager=VersionManager(),
            events=self._events,
            catalog_path=catalog_path,
        )

    @property
    def config(self) -> CairnConfig:
        """Runtime configuration used by this client."""
        return self._config

    @property
    def datasets(self) -> DatasetService:
        """Dataset operations."""
        return self._service

    @property
    def events(self) -> EventBus:
        """Lifecycle and progress events."""
        return self._events

    async def fetch_file(self, cid: str, output_path: str) -> Path:
        """Copy a stored object out of the local content store.

        Args:
            cid: Content id of a stored file.
            output_path: Destination path.

        Returns:
            The written destination path.

        Raises:
            CairnStoreError: If the object is not stored locally.
        """
        return await self._content_store.fetch(cid, output_path)

    def with_data_root(self, data_root: str) -> "CairnClient":
        """Clone the client with a different local data root.

        Args:
            data_root: New data root path.

        Returns:
            New SDK client instance.
        """
        resolved_root = Path(data_root).expanduser().resolve()
        updated_config = replace(self._config, data_root=resolved_root)
        return CairnClient(updated_config, primitive=self._primitive, persist=self._persist)
