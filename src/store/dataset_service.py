"""Dataset orchestration.

This module owns the live dataset registry and composes the batch upload
engine with the version manager to create, mutate, roll back, and delete
datasets. Mutations of one dataset are serialized by a per-dataset lock
and applied to a working copy that is committed only once complete.
"""

from __future__ import annotations

import asyncio
import copy
import json
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Sequence

from core.config import CairnConfig
from core.constants import (
    INITIAL_DATASET_VERSION,
    MAX_DATASET_NAME_LENGTH,
    MAX_FILES_PER_DATASET,
    SYSTEM_CREATOR,
    USER_CREATOR,
)
from core.content_id import build_record_id
from core.errors import (
    CairnConcurrencyError,
    CairnConflictError,
    CairnNotFoundError,
    CairnUploadError,
    CairnValidationError,
)
from core.events import (
    CreateCompletedEvent,
    CreateFailedEvent,
    CreateStartedEvent,
    EventBus,
    ProgressEvent,
)
from core.logging_config import get_logger
from core.types import (
    BatchRunOptions,
    BatchUploadResult,
    CreateOptions,
    Dataset,
    DatasetConfig,
    DatasetFilter,
    DatasetMetadata,
    DatasetProgress,
    DatasetStats,
    DatasetUpdate,
    DatasetVersion,
    ProgressOperation,
    ServiceStats,
    UploadOptions,
    UploadResult,
    VersionChanges,
    VersionDiff,
)
from store.catalog_io import read_catalog, write_catalog
from store.dataset_filtering import filter_datasets
from store.record_payload import dataset_to_payload
from store.dataset_stats import build_dataset_stats, build_service_stats
from store.version_manager import VersionManager
from upload.batch_upload import BatchUploadEngine

_LOGGER = get_logger(__name__)


class DatasetService:
    """Live dataset registry and the public dataset operations."""

    def __init__(
        self,
        engine: BatchUploadEngine,
        config: CairnConfig,
        version_manager: VersionManager | None = None,
        events: EventBus | None = None,
        catalog_path: Path | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            engine: Batch upload engine used for every file upload.
            config: Runtime configuration.
            version_manager: Version store; a fresh one when omitted.
            events: Event bus for lifecycle and progress events.
            catalog_path: Optional JSON catalog to load now and rewrite
                after every committed mutation.
        """
        self._engine = engine
        self._config = config
        self._versions = version_manager or VersionManager()
        self._events = events or EventBus()
        self._catalog_path = catalog_path
        self._datasets: dict[str, Dataset] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._reserved_names: set[str] = set()
        self._engine.add_progress_listener(self._forward_progress)
        if catalog_path is not None:
            self._load_catalog(catalog_path)
        _LOGGER.info(
            "dataset_service_initialized",
            datasets=len(self._datasets),
            catalog_path=str(catalog_path) if catalog_path else None,
        )

    @property
    def events(self) -> EventBus:
        """Event bus carrying lifecycle and progress events."""
        return self._events

    async def create_dataset(
        self,
        config: DatasetConfig,
        files: Sequence[str],
        options: CreateOptions | None = None,
    ) -> Dataset:
        """Upload files and register a new dataset at version 1.0.0.

        Files that fail to upload are left out of the dataset unless strict
        mode was requested, in which case nothing is registered.

        Args:
            config: Dataset configuration.
            files: Local file paths to upload.
            options: Optional creation options.

        Returns:
            Copy of the created dataset.

        Raises:
            CairnValidationError: If the name or file list is invalid.
            CairnConflictError: If a live dataset already uses the name.
            CairnUploadError: If strict mode is on and any file failed.
        """
        create_options = options or CreateOptions()
        started_at = time.monotonic()
        try:
            _validate_dataset_config(config)
            _validate_files(files)
            self._reserve_name(config.name)
        except (CairnValidationError, CairnConflictError) as error:
            self._report_create_failure(config.name, len(files), error)
            raise
        try:
            _LOGGER.info("dataset_create_started", name=config.name, file_count=len(files))
            self._events.publish(CreateStartedEvent(name=config.name, file_count=len(files)))
            batch_result = await self._upload_for_create(config, files, create_options)
            if batch_result.failed:
                _LOGGER.warning(
                    "dataset_create_partial_upload",
                    name=config.name,
                    successful=batch_result.successful,
                    failed=batch_result.failed,
                )
                if not create_options.continue_on_error:
                    raise CairnUploadError(
                        f"Failed to upload {batch_result.failed} of {batch_result.total} files "
                        f"for dataset '{config.name}'. Set continue_on_error to create the "
                        "dataset from the files that succeeded."
                    )
            dataset = _build_dataset(config, batch_result.successful_uploads)
            _require_storable(dataset)
            self._versions.record_initial_version(
                dataset,
                VersionChanges(
                    files_added=tuple(upload.cid for upload in dataset.files),
                    summary=f"Initial dataset creation with {len(dataset.files)} files",
                ),
                SYSTEM_CREATOR,
            )
            self._datasets[dataset.id] = dataset
        except Exception as error:
            self._report_create_failure(config.name, len(files), error)
            raise
        finally:
            self._reserved_names.discard(config.name)
        self._persist()
        execution_time_ms = (time.monotonic() - started_at) * 1000
        _LOGGER.info(
            "dataset_created",
            dataset_id=dataset.id,
            name=dataset.name,
            file_count=len(dataset.files),
            failed_count=batch_result.failed,
            execution_time_ms=round(execution_time_ms, 3),
        )
        self._events.publish(
            CreateCompletedEvent(
                dataset=dataset,
                batch_result=batch_result,
                execution_time_ms=execution_time_ms,
            )
        )
        return copy.deepcopy(dataset)

    async def get_dataset(self, dataset_id: str, version: str | None = None) -> Dataset:
        """Return a dataset, optionally reconstructed at a past version.

        Args:
            dataset_id: Dataset identifier.
            version: Optional version whose snapshot supplies files and metadata.

        Returns:
            Independent copy of the dataset.

        Raises:
            CairnNotFoundError: If the dataset or version does not exist.
        """
        dataset = self._require_dataset(dataset_id)
        if version is None:
            return copy.deepcopy(dataset)
        record = self._versions.require_version(dataset_id, version)
        reconstructed = copy.deepcopy(dataset)
        reconstructed.files = list(copy.deepcopy(record.snapshot.files))
        reconstructed.metadata = copy.deepcopy(record.snapshot.metadata)
        reconstructed.version = record.version
        return reconstructed

    async def update_dataset(
        self,
        dataset_id: str,
        update: DatasetUpdate,
        expected_revision: int | None = None,
        run_options: BatchRunOptions | None = None,
    ) -> Dataset:
        """Apply several mutations and record them as one version.

        Args:
            dataset_id: Dataset identifier.
            update: Requested mutations.
            expected_revision: Optional revision the caller last read.
            run_options: Optional upload options for added files.

        Returns:
            Copy of the updated dataset.

        Raises:
            CairnNotFoundError: If the dataset does not exist.
            CairnConcurrencyError: If ``expected_revision`` is stale.
            CairnValidationError: If the added file list is too large.
        """
        async with self._lock_for(dataset_id):
            dataset = self._require_dataset(dataset_id)
            _check_revision(dataset, expected_revision)
            working = copy.deepcopy(dataset)
            files_added: tuple[str, ...] = ()
            files_removed: tuple[str, ...] = ()
            metadata_changed = False
            config_changed = False
            if update.description is not None:
                working.description = update.description
                config_changed = True
            if update.metadata is not None:
                working.metadata = merge_metadata(working.metadata, update.metadata)
                metadata_changed = True
            if update.add_files:
                _validate_files(update.add_files)
                batch_result = await self._engine.upload_batch(
                    update.add_files,
                    _dataset_upload_options(working),
                    _with_operation(run_options, "update"),
                )
                files_added = _append_files(working, batch_result.successful_uploads)
                _LOGGER.info(
                    "dataset_files_added",
                    dataset_id=dataset_id,
                    added=len(files_added),
                    failed=batch_result.failed,
                )
            if update.remove_files:
                files_removed = _remove_files(working, update.remove_files)
                _LOGGER.info(
                    "dataset_files_removed", dataset_id=dataset_id, removed=len(files_removed)
                )
            if update.add_tags or update.remove_tags:
                working.metadata.keywords = edit_keywords(
                    working.metadata.keywords, update.add_tags, update.remove_tags
                )
                metadata_changed = True
            changes = VersionChanges(
                files_added=files_added,
                files_removed=files_removed,
                metadata_changed=metadata_changed,
                config_changed=config_changed,
                summary=summarize_update(
                    len(files_added), len(files_removed), metadata_changed, config_changed
                ),
            )
            _require_storable(working)
            working.updated_at = _utc_now()
            record = self._versions.create_version(working, changes, USER_CREATOR)
            self._commit(working, dataset.revision, record.version)
            _LOGGER.info(
                "dataset_updated",
                dataset_id=dataset_id,
                version=working.version,
                changes=changes.summary,
            )
            return copy.deepcopy(working)

    async def add_files(
        self,
        dataset_id: str,
        files: Sequence[str],
        run_options: BatchRunOptions | None = None,
        create_version: bool = True,
        expected_revision: int | None = None,
    ) -> BatchUploadResult:
        """Upload files into an existing dataset.

        Args:
            dataset_id: Dataset identifier.
            files: Local file paths to upload.
            run_options: Optional upload run options.
            create_version: Whether to record a dedicated version.
            expected_revision: Optional revision the caller last read.

        Returns:
            Batch outcome; failed files are reported, not raised.

        Raises:
            CairnNotFoundError: If the dataset does not exist.
            CairnConcurrencyError: If ``expected_revision`` is stale.
            CairnValidationError: If the file list is empty or too large.
        """
        async with self._lock_for(dataset_id):
            dataset = self._require_dataset(dataset_id)
            _check_revision(dataset, expected_revision)
            _validate_files(files)
            working = copy.deepcopy(dataset)
            batch_result = await self._engine.upload_batch(
                files,
                _dataset_upload_options(working),
                _with_operation(run_options, "upload"),
            )
            added = _append_files(working, batch_result.successful_uploads)
            working.updated_at = _utc_now()
            version = working.version
            if create_version:
                record = self._versions.create_version(
                    working,
                    VersionChanges(files_added=added, summary=f"Added {len(added)} files"),
                )
                version = record.version
            self._commit(working, dataset.revision, version)
            _LOGGER.info(
                "dataset_files_added",
                dataset_id=dataset_id,
                added=len(added),
                failed=batch_result.failed,
                version=working.version,
            )
            return batch_result

    async def remove_files(
        self,
        dataset_id: str,
        cids: Sequence[str],
        create_version: bool = True,
        expected_revision: int | None = None,
    ) -> Dataset:
        """Remove files from a dataset by content id.

        Args:
            dataset_id: Dataset identifier.
            cids: Content ids to remove; unknown ids are ignored.
            create_version: Whether to record a dedicated version.
            expected_revision: Optional revision the caller last read.

        Returns:
            Copy of the updated dataset.

        Raises:
            CairnNotFoundError: If the dataset does not exist.
            CairnConcurrencyError: If ``expected_revision`` is stale.
        """
        async with self._lock_for(dataset_id):
            dataset = self._require_dataset(dataset_id)
            _check_revision(dataset, expected_revision)
            working = copy.deepcopy(dataset)
            removed = _remove_files(working, cids)
            working.updated_at = _utc_now()
            version = working.version
            if create_version:
                record = self._versions.create_version(
                    working,
                    VersionChanges(files_removed=removed, summary=f"Removed {len(removed)} files"),
                )
                version = record.version
            self._commit(working, dataset.revision, version)
            _LOGGER.info(
                "dataset_files_removed",
                dataset_id=dataset_id,
                removed=len(removed),
                version=working.version,
            )
            return copy.deepcopy(working)

    async def rollback_to_version(
        self,
        dataset_id: str,
        version: str,
        expected_revision: int | None = None,
    ) -> Dataset:
        """Restore a dataset's files and metadata from an earlier version.

        The rollback records a new, higher version; the dataset never
        returns to the target's version string.

        Args:
            dataset_id: Dataset identifier.
            version: Version to restore.
            expected_revision: Optional revision the caller last read.

        Returns:
            Copy of the restored dataset.

        Raises:
            CairnNotFoundError: If the dataset or version does not exist.
            CairnConcurrencyError: If ``expected_revision`` is stale.
        """
        async with self._lock_for(dataset_id):
            dataset = self._require_dataset(dataset_id)
            _check_revision(dataset, expected_revision)
            restored = self._versions.rollback_to_version(dataset, version)
            self._commit(restored, dataset.revision, restored.version)
            return copy.deepcopy(restored)

    async def compare_versions(
        self,
        dataset_id: str,
        from_version: str,
        to_version: str,
    ) -> VersionDiff:
        """Diff two versions of a dataset.

        Raises:
            CairnNotFoundError: If the dataset or either version does not exist.
        """
        self._require_dataset(dataset_id)
        return self._versions.compare_versions(dataset_id, from_version, to_version)

    async def create_version(
        self,
        dataset_id: str,
        changes: VersionChanges,
        created_by: str | None = None,
    ) -> DatasetVersion:
        """Record a version of the current state with caller-supplied changes.

        Raises:
            CairnNotFoundError: If the dataset does not exist.
        """
        async with self._lock_for(dataset_id):
            dataset = self._require_dataset(dataset_id)
            working = copy.deepcopy(dataset)
            record = self._versions.create_version(working, changes, created_by)
            working.updated_at = _utc_now()
            self._commit(working, dataset.revision, record.version)
            return copy.deepcopy(record)

    async def list_versions(self, dataset_id: str) -> list[DatasetVersion]:
        """List versions of a dataset, newest first.

        Raises:
            CairnNotFoundError: If the dataset does not exist.
        """
        self._require_dataset(dataset_id)
        return copy.deepcopy(self._versions.list_versions(dataset_id))

    async def get_version(self, dataset_id: str, version: str) -> DatasetVersion:
        """Return one version record.

        Raises:
            CairnNotFoundError: If the dataset or version does not exist.
        """
        self._require_dataset(dataset_id)
        return copy.deepcopy(self._versions.require_version(dataset_id, version))

    async def list_datasets(self, dataset_filter: DatasetFilter | None = None) -> list[Dataset]:
        """List live datasets in creation order, filtered and paginated.

        Raises:
            CairnValidationError: If the filter is invalid.
        """
        datasets: Iterable[Dataset] = self._datasets.values()
        if dataset_filter is not None:
            datasets = filter_datasets(datasets, dataset_filter)
        return [copy.deepcopy(dataset) for dataset in datasets]

    async def delete_dataset(self, dataset_id: str) -> bool:
        """Remove a dataset and purge its version history.

        Returns:
            True when a dataset was deleted, False when it did not exist.
        """
        if dataset_id not in self._datasets:
            return False
        async with self._lock_for(dataset_id):
            dataset = self._datasets.pop(dataset_id, None)
            if dataset is None:
                return False
            self._versions.clear_dataset_versions(dataset_id)
            self._locks.pop(dataset_id, None)
        self._persist()
        _LOGGER.info("dataset_deleted", dataset_id=dataset_id, name=dataset.name)
        return True

    async def get_dataset_stats(self, dataset_id: str) -> DatasetStats:
        """Return size and version statistics for one dataset.

        Raises:
            CairnNotFoundError: If the dataset does not exist.
        """
        dataset = self._require_dataset(dataset_id)
        return build_dataset_stats(dataset, self._versions.version_count(dataset_id))

    def get_all_stats(self) -> ServiceStats:
        """Return aggregate statistics across live datasets."""
        return build_service_stats(
            self._datasets.values(), self._versions.total_version_count()
        )

    def clear(self) -> None:
        """Drop every dataset and version history."""
        self._datasets.clear()
        self._locks.clear()
        self._versions.clear()
        self._persist()
        _LOGGER.info("all_datasets_cleared")

    def _forward_progress(self, progress: DatasetProgress) -> None:
        self._events.publish(ProgressEvent(progress=progress))

    async def _upload_for_create(
        self,
        config: DatasetConfig,
        files: Sequence[str],
        options: CreateOptions,
    ) -> BatchUploadResult:
        plan = self._engine.plan(len(files))
        run_options = BatchRunOptions(
            concurrency=options.concurrency or plan.concurrency,
            timeout_seconds=options.timeout_seconds,
            chunk_size=plan.chunk_size if plan.use_chunking else None,
            on_progress=options.on_progress,
            operation="create",
        )
        upload_options = UploadOptions(
            encrypt=config.encrypt,
            access_conditions=config.access_conditions,
            tags=config.tags,
        )
        if plan.use_chunking:
            _LOGGER.info(
                "dataset_create_chunked", file_count=len(files), chunk_size=plan.chunk_size
            )
            return await self._engine.upload_files_in_chunks(files, upload_options, run_options)
        return await self._engine.upload_files(files, upload_options, run_options)

    def _reserve_name(self, name: str) -> None:
        taken = name in self._reserved_names or any(
            dataset.name == name for dataset in self._datasets.values()
        )
        if taken:
            raise CairnConflictError(
                f"Dataset with name '{name}' already exists. "
                "Choose another name or delete the existing dataset first."
            )
        self._reserved_names.add(name)

    def _report_create_failure(self, name: str, file_count: int, error: Exception) -> None:
        _LOGGER.error(
            "dataset_create_failed",
            name=name,
            file_count=file_count,
            error=str(error),
        )
        self._events.publish(CreateFailedEvent(name=name, error=str(error)))

    def _require_dataset(self, dataset_id: str) -> Dataset:
        dataset = self._datasets.get(dataset_id)
        if dataset is None:
            raise CairnNotFoundError(
                f"Dataset not found: {dataset_id}. Use list_datasets to discover valid ids."
            )
        return dataset

    def _lock_for(self, dataset_id: str) -> asyncio.Lock:
        self._require_dataset(dataset_id)
        lock = self._locks.get(dataset_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[dataset_id] = lock
        return lock

    def _commit(self, working: Dataset, base_revision: int, version: str) -> None:
        working.version = version
        working.revision = base_revision + 1
        self._datasets[working.id] = working
        self._persist()

    def _persist(self) -> None:
        if self._catalog_path is None:
            return
        histories = {dataset_id: self._versions.history(dataset_id) for dataset_id in self._datasets}
        write_catalog(self._catalog_path, self._datasets.values(), histories)

    def _load_catalog(self, catalog_path: Path) -> None:
        contents = read_catalog(catalog_path)
        for dataset in contents.datasets:
            self._datasets[dataset.id] = dataset
            self._versions.restore_history(dataset.id, contents.histories.get(dataset.id, ()))


def merge_metadata(current: DatasetMetadata, patch: DatasetMetadata) -> DatasetMetadata:
    """Merge metadata fields that are set on ``patch`` into a copy of ``current``.

    Unset scalar fields and an empty keyword list leave the current value;
    custom properties are merged key by key.
    """
    merged = copy.deepcopy(current)
    if patch.author is not None:
        merged.author = patch.author
    if patch.license is not None:
        merged.license = patch.license
    if patch.category is not None:
        merged.category = patch.category
    if patch.keywords:
        merged.keywords = list(dict.fromkeys(patch.keywords))
    merged.custom = {**merged.custom, **copy.deepcopy(patch.custom)}
    return merged


def edit_keywords(
    keywords: Sequence[str],
    add_tags: Sequence[str],
    remove_tags: Sequence[str],
) -> list[str]:
    """Add then remove keywords, keeping first-insertion order without duplicates."""
    ordered = list(dict.fromkeys([*keywords, *add_tags]))
    removed = set(remove_tags)
    return [keyword for keyword in ordered if keyword not in removed]


def summarize_update(
    added: int,
    removed: int,
    metadata_changed: bool,
    config_changed: bool,
) -> str:
    """Render the summary of a combined update."""
    parts: list[str] = []
    if added:
        parts.append(f"Added {added} files")
    if removed:
        parts.append(f"Removed {removed} files")
    if metadata_changed:
        parts.append("Updated metadata")
    if config_changed:
        parts.append("Updated configuration")
    return ", ".join(parts) if parts else "No changes"


def _build_dataset(config: DatasetConfig, uploads: Sequence[UploadResult]) -> Dataset:
    metadata = copy.deepcopy(config.metadata) if config.metadata else DatasetMetadata()
    metadata.keywords = list(dict.fromkeys([*metadata.keywords, *config.tags]))
    now = _utc_now()
    return Dataset(
        id=build_record_id("dataset", config.name),
        name=config.name,
        description=config.description,
        files=_unique_by_cid(uploads, set()),
        metadata=metadata,
        version=INITIAL_DATASET_VERSION,
        created_at=now,
        updated_at=now,
        encrypted=config.encrypt,
        access_conditions=config.access_conditions,
    )


def _append_files(dataset: Dataset, uploads: Sequence[UploadResult]) -> tuple[str, ...]:
    """Append uploads whose cid is not yet live and return the added cids."""
    added = _unique_by_cid(uploads, {upload.cid for upload in dataset.files})
    dataset.files.extend(added)
    return tuple(upload.cid for upload in added)


def _remove_files(dataset: Dataset, cids: Iterable[str]) -> tuple[str, ...]:
    """Drop live files by cid and return the cids actually removed."""
    remove_set = set(cids)
    removed = tuple(upload.cid for upload in dataset.files if upload.cid in remove_set)
    dataset.files = [upload for upload in dataset.files if upload.cid not in remove_set]
    return removed


def _unique_by_cid(uploads: Iterable[UploadResult], seen: set[str]) -> list[UploadResult]:
    unique: list[UploadResult] = []
    for upload in uploads:
        if upload.cid in seen:
            continue
        seen.add(upload.cid)
        unique.append(upload)
    return unique


def _dataset_upload_options(dataset: Dataset) -> UploadOptions:
    return UploadOptions(
        encrypt=dataset.encrypted,
        access_conditions=dataset.access_conditions,
    )


def _with_operation(
    run_options: BatchRunOptions | None,
    operation: ProgressOperation,
) -> BatchRunOptions:
    if run_options is None:
        return BatchRunOptions(operation=operation)
    return replace(run_options, operation=operation)


def _validate_dataset_config(config: DatasetConfig) -> None:
    if not config.name or not config.name.strip():
        raise CairnValidationError("Dataset name is required and cannot be blank.")
    if len(config.name) > MAX_DATASET_NAME_LENGTH:
        raise CairnValidationError(
            f"Dataset name must be at most {MAX_DATASET_NAME_LENGTH} characters, "
            f"got {len(config.name)}."
        )


def _validate_files(files: Sequence[str]) -> None:
    if not files:
        raise CairnValidationError("At least one file is required.")
    if len(files) > MAX_FILES_PER_DATASET:
        raise CairnValidationError(
            f"At most {MAX_FILES_PER_DATASET} files are accepted per call, got {len(files)}."
        )


def _check_revision(dataset: Dataset, expected_revision: int | None) -> None:
    if expected_revision is not None and dataset.revision != expected_revision:
        raise CairnConcurrencyError(
            f"Dataset {dataset.id} is at revision {dataset.revision}, "
            f"expected {expected_revision}. Reload the dataset and retry."
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_storable(dataset: Dataset) -> None:
    """Reject datasets holding values the catalog cannot serialize."""
    try:
        json.dumps(dataset_to_payload(dataset))
    except (TypeError, ValueError) as error:
        raise CairnValidationError(
            f"Dataset '{dataset.name}' holds a value that cannot be stored: {error}. "
            "Use JSON-compatible values in custom metadata and access condition parameters."
        ) from error
