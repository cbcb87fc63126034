"""Dataset version history.

This module keeps an append-only list of immutable version records per
dataset, freezes independent snapshots at every version, and answers
diff and rollback queries against those snapshots.
"""

from __future__ import annotations

import copy
import json
from dataclasses import asdict, replace
from datetime import datetime, timezone

from core.constants import SYSTEM_CREATOR
from core.content_id import build_record_id
from core.errors import CairnConcurrencyError, CairnNotFoundError, CairnValidationError
from core.logging_config import get_logger
from core.types import (
    Dataset,
    DatasetMetadata,
    DatasetSnapshot,
    DatasetVersion,
    MetadataChange,
    SnapshotConfig,
    UploadResult,
    VersionChanges,
    VersionDiff,
)
from store.semantic_version import next_version, parse_version

_LOGGER = get_logger(__name__)


class VersionManager:
    """Append-only version store keyed by dataset id.

    Records are never rewritten; histories are only dropped in bulk
    when their dataset is deleted.
    """

    def __init__(self) -> None:
        self._versions: dict[str, list[DatasetVersion]] = {}

    def record_initial_version(
        self,
        dataset: Dataset,
        changes: VersionChanges,
        created_by: str | None = SYSTEM_CREATOR,
    ) -> DatasetVersion:
        """Record the first version of a dataset at its current version string.

        Args:
            dataset: Newly created dataset.
            changes: Change descriptor listing the initial files.
            created_by: Creator identity.

        Returns:
            The stored version record.

        Raises:
            CairnValidationError: If the dataset already has history or
                carries a malformed version string.
        """
        if self._versions.get(dataset.id):
            raise CairnValidationError(
                f"Dataset {dataset.id} already has version history. "
                "Use create_version for subsequent changes."
            )
        parse_version(dataset.version)
        return self._append(dataset, dataset.version, changes, created_by)

    def create_version(
        self,
        dataset: Dataset,
        changes: VersionChanges,
        created_by: str | None = None,
    ) -> DatasetVersion:
        """Bump the dataset version and freeze its current state.

        The new version string is computed from ``dataset.version`` and the
        change descriptor; the snapshot captures ``dataset`` as passed in.
        The caller is responsible for writing the returned version string
        back onto its dataset.

        Args:
            dataset: Dataset state after the change was applied.
            changes: Structural change descriptor.
            created_by: Creator identity.

        Returns:
            The stored version record.

        Raises:
            CairnConcurrencyError: If ``dataset.version`` is behind history.
        """
        version_string = next_version(dataset.version, changes)
        latest = self.latest_version(dataset.id)
        if latest is not None and parse_version(version_string) <= parse_version(latest.version):
            raise CairnConcurrencyError(
                f"Dataset {dataset.id} is at version {dataset.version} but history already "
                f"holds {latest.version}. Reload the dataset before creating a version."
            )
        return self._append(dataset, version_string, changes, created_by)

    def list_versions(self, dataset_id: str) -> list[DatasetVersion]:
        """List versions of a dataset, newest first."""
        history = self._versions.get(dataset_id, [])
        return sorted(history, key=lambda record: parse_version(record.version), reverse=True)

    def history(self, dataset_id: str) -> tuple[DatasetVersion, ...]:
        """Return versions of a dataset in creation order."""
        return tuple(self._versions.get(dataset_id, ()))

    def get_version(self, dataset_id: str, version: str) -> DatasetVersion | None:
        """Return one version record, or None when absent."""
        for record in self._versions.get(dataset_id, ()):
            if record.version == version:
                return record
        return None

    def require_version(self, dataset_id: str, version: str) -> DatasetVersion:
        """Return one version record.

        Raises:
            CairnNotFoundError: If the version does not exist.
        """
        record = self.get_version(dataset_id, version)
        if record is None:
            raise CairnNotFoundError(
                f"Version {version} not found for dataset {dataset_id}. "
                "Use list_versions to discover valid versions."
            )
        return record

    def latest_version(self, dataset_id: str) -> DatasetVersion | None:
        """Return the most recently created version record."""
        history = self._versions.get(dataset_id)
        return history[-1] if history else None

    def rollback_to_version(self, dataset: Dataset, target_version: str) -> Dataset:
        """Build a dataset whose content matches an earlier version.

        The rollback is itself versioned: a new record is appended whose
        changes are the diff from the live file set to the target snapshot,
        and the returned dataset carries that new version string, never
        the target's.

        Args:
            dataset: Live dataset.
            target_version: Version whose content should be restored.

        Returns:
            A new dataset object holding independent copies of the target
            snapshot's files and metadata.

        Raises:
            CairnNotFoundError: If the target version does not exist.
        """
        target = self.require_version(dataset.id, target_version)
        changes = compute_rollback_changes(dataset, target)
        restored = replace(
            dataset,
            files=list(copy.deepcopy(target.snapshot.files)),
            metadata=copy.deepcopy(target.snapshot.metadata),
            updated_at=datetime.now(timezone.utc),
        )
        rollback_record = self.create_version(restored, changes, SYSTEM_CREATOR)
        restored.version = rollback_record.version
        _LOGGER.info(
            "dataset_rolled_back",
            dataset_id=dataset.id,
            from_version=dataset.version,
            restored_version=target_version,
            new_version=rollback_record.version,
        )
        return restored

    def compare_versions(
        self,
        dataset_id: str,
        from_version: str,
        to_version: str,
    ) -> VersionDiff:
        """Diff the snapshots of two versions.

        Args:
            dataset_id: Dataset identifier.
            from_version: Base version.
            to_version: Target version.

        Returns:
            File and metadata differences from base to target.

        Raises:
            CairnNotFoundError: If either version does not exist.
        """
        base = self.require_version(dataset_id, from_version)
        target = self.require_version(dataset_id, to_version)
        base_files = {upload.cid: upload for upload in base.snapshot.files}
        target_files = {upload.cid: upload for upload in target.snapshot.files}
        files_added = tuple(
            upload for cid, upload in target_files.items() if cid not in base_files
        )
        files_removed = tuple(
            upload for cid, upload in base_files.items() if cid not in target_files
        )
        files_modified = tuple(
            upload
            for cid, upload in target_files.items()
            if cid in base_files and _serialize(base_files[cid]) != _serialize(upload)
        )
        metadata_changes = compute_metadata_changes(
            base.snapshot.metadata, target.snapshot.metadata
        )
        return VersionDiff(
            from_version=from_version,
            to_version=to_version,
            files_added=files_added,
            files_removed=files_removed,
            files_modified=files_modified,
            metadata_changes=metadata_changes,
            summary=summarize_diff(
                len(files_added), len(files_removed), len(files_modified), len(metadata_changes)
            ),
        )

    def version_count(self, dataset_id: str) -> int:
        """Return the number of versions recorded for a dataset."""
        return len(self._versions.get(dataset_id, ()))

    def total_version_count(self) -> int:
        """Return the number of versions across all datasets."""
        return sum(len(history) for history in self._versions.values())

    def restore_history(self, dataset_id: str, versions: tuple[DatasetVersion, ...]) -> None:
        """Load a persisted history for a dataset without any history yet.

        Raises:
            CairnValidationError: If history exists or versions are not increasing.
        """
        if self._versions.get(dataset_id):
            raise CairnValidationError(
                f"Dataset {dataset_id} already has version history in memory."
            )
        parsed = [parse_version(record.version) for record in versions]
        if any(earlier >= later for earlier, later in zip(parsed, parsed[1:])):
            raise CairnValidationError(
                f"Persisted history for dataset {dataset_id} is not strictly increasing."
            )
        self._versions[dataset_id] = list(versions)

    def clear_dataset_versions(self, dataset_id: str) -> int:
        """Drop the whole history of one dataset and return how many records it held."""
        removed = len(self._versions.pop(dataset_id, ()))
        _LOGGER.info("dataset_versions_cleared", dataset_id=dataset_id, removed=removed)
        return removed

    def clear(self) -> None:
        """Drop every history."""
        self._versions.clear()
        _LOGGER.info("all_versions_cleared")

    def _append(
        self,
        dataset: Dataset,
        version_string: str,
        changes: VersionChanges,
        created_by: str | None,
    ) -> DatasetVersion:
        record = DatasetVersion(
            id=build_record_id("version", f"{dataset.id}-{version_string}"),
            dataset_id=dataset.id,
            version=version_string,
            changes=changes,
            snapshot=create_snapshot(dataset),
            created_at=datetime.now(timezone.utc),
            created_by=created_by,
            change_description=changes.summary,
        )
        self._versions.setdefault(dataset.id, []).append(record)
        _LOGGER.info(
            "version_created",
            dataset_id=dataset.id,
            previous_version=dataset.version,
            version=version_string,
            version_id=record.id,
            files_added=len(changes.files_added),
            files_removed=len(changes.files_removed),
            created_by=created_by,
        )
        return record


def create_snapshot(dataset: Dataset) -> DatasetSnapshot:
    """Freeze a deep, independent copy of dataset state.

    Args:
        dataset: Dataset to copy.

    Returns:
        Snapshot sharing no mutable containers with ``dataset``.
    """
    files = tuple(copy.deepcopy(dataset.files))
    metadata = copy.deepcopy(dataset.metadata)
    return DatasetSnapshot(
        files=files,
        metadata=metadata,
        config=SnapshotConfig(
            name=dataset.name,
            description=dataset.description,
            encrypt=dataset.encrypted,
            access_conditions=copy.deepcopy(dataset.access_conditions),
            tags=tuple(metadata.keywords),
        ),
        total_size=sum(upload.size for upload in files),
        file_count=len(files),
    )


def compute_rollback_changes(dataset: Dataset, target: DatasetVersion) -> VersionChanges:
    """Describe the change from the live file set to a target snapshot.

    Args:
        dataset: Live dataset.
        target: Version being restored.

    Returns:
        Change descriptor; added cids are in the target only, removed
        cids are live only.
    """
    current_cids = [upload.cid for upload in dataset.files]
    target_cids = [upload.cid for upload in target.snapshot.files]
    current_set = set(current_cids)
    target_set = set(target_cids)
    metadata_changed = _serialize(dataset.metadata) != _serialize(target.snapshot.metadata)
    return VersionChanges(
        files_added=tuple(cid for cid in target_cids if cid not in current_set),
        files_removed=tuple(cid for cid in current_cids if cid not in target_set),
        metadata_changed=metadata_changed,
        summary=(
            f"Rollback to version {target.version} "
            f"with {target.snapshot.file_count} files"
        ),
    )


def compute_metadata_changes(
    base: DatasetMetadata,
    target: DatasetMetadata,
) -> dict[str, MetadataChange]:
    """Compare metadata field by field over the union of both sides' fields.

    Args:
        base: Base metadata.
        target: Target metadata.

    Returns:
        Changed fields mapped to their before and after values.
    """
    base_fields = asdict(base)
    target_fields = asdict(target)
    field_names = list(base_fields) + [name for name in target_fields if name not in base_fields]
    changes: dict[str, MetadataChange] = {}
    for name in field_names:
        base_value = base_fields.get(name)
        target_value = target_fields.get(name)
        if _serialize_value(base_value) != _serialize_value(target_value):
            changes[name] = MetadataChange(from_value=base_value, to_value=target_value)
    return changes


def summarize_diff(added: int, removed: int, modified: int, metadata_fields: int) -> str:
    """Render a human-readable diff summary."""
    parts: list[str] = []
    if added:
        parts.append(f"{added} file(s) added")
    if removed:
        parts.append(f"{removed} file(s) removed")
    if modified:
        parts.append(f"{modified} file(s) modified")
    if metadata_fields:
        parts.append(f"{metadata_fields} metadata field(s) changed")
    return ", ".join(parts) if parts else "No changes"


def _serialize(record: UploadResult | DatasetMetadata) -> str:
    return _serialize_value(asdict(record))


def _serialize_value(value: object) -> str:
    return json.dumps(value, sort_keys=True, default=str)
