"""JSON payload conversion for datasets and version records.

This module centralizes dataclass to JSON-safe dict conversion.
It is used by catalog persistence to write and reload the registry.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from core.types import (
    AccessCondition,
    Dataset,
    DatasetMetadata,
    DatasetSnapshot,
    DatasetVersion,
    SnapshotConfig,
    UploadResult,
    VersionChanges,
)


def dataset_to_payload(dataset: Dataset) -> dict[str, object]:
    """Serialize a dataset into a JSON-safe payload."""
    return {
        "id": dataset.id,
        "name": dataset.name,
        "description": dataset.description,
        "files": [upload_result_to_payload(upload) for upload in dataset.files],
        "metadata": metadata_to_payload(dataset.metadata),
        "version": dataset.version,
        "created_at": dataset.created_at.isoformat(),
        "updated_at": dataset.updated_at.isoformat(),
        "encrypted": dataset.encrypted,
        "access_conditions": [
            access_condition_to_payload(condition) for condition in dataset.access_conditions
        ],
        "revision": dataset.revision,
    }


def dataset_from_payload(payload: dict[str, Any]) -> Dataset:
    """Deserialize a dataset payload."""
    return Dataset(
        id=str(payload["id"]),
        name=str(payload["name"]),
        description=str(payload.get("description", "")),
        files=[upload_result_from_payload(item) for item in payload.get("files", [])],
        metadata=metadata_from_payload(payload.get("metadata", {})),
        version=str(payload["version"]),
        created_at=datetime.fromisoformat(str(payload["created_at"])),
        updated_at=datetime.fromisoformat(str(payload["updated_at"])),
        encrypted=bool(payload.get("encrypted", False)),
        access_conditions=tuple(
            access_condition_from_payload(item) for item in payload.get("access_conditions", [])
        ),
        revision=int(payload.get("revision", 0)),
    )


def version_to_payload(record: DatasetVersion) -> dict[str, object]:
    """Serialize a version record into a JSON-safe payload."""
    snapshot = record.snapshot
    changes = record.changes
    return {
        "id": record.id,
        "dataset_id": record.dataset_id,
        "version": record.version,
        "changes": {
            "files_added": list(changes.files_added),
            "files_removed": list(changes.files_removed),
            "files_modified": list(changes.files_modified),
            "metadata_changed": changes.metadata_changed,
            "config_changed": changes.config_changed,
            "summary": changes.summary,
        },
        "snapshot": {
            "files": [upload_result_to_payload(upload) for upload in snapshot.files],
            "metadata": metadata_to_payload(snapshot.metadata),
            "config": {
                "name": snapshot.config.name,
                "description": snapshot.config.description,
                "encrypt": snapshot.config.encrypt,
                "access_conditions": [
                    access_condition_to_payload(condition)
                    for condition in snapshot.config.access_conditions
                ],
                "tags": list(snapshot.config.tags),
            },
            "total_size": snapshot.total_size,
            "file_count": snapshot.file_count,
        },
        "created_at": record.created_at.isoformat(),
        "created_by": record.created_by,
        "change_description": record.change_description,
        "tags": list(record.tags),
    }


def version_from_payload(payload: dict[str, Any]) -> DatasetVersion:
    """Deserialize a version record payload."""
    changes_payload = payload["changes"]
    snapshot_payload = payload["snapshot"]
    config_payload = snapshot_payload["config"]
    return DatasetVersion(
        id=str(payload["id"]),
        dataset_id=str(payload["dataset_id"]),
        version=str(payload["version"]),
        changes=VersionChanges(
            files_added=tuple(str(cid) for cid in changes_payload.get("files_added", [])),
            files_removed=tuple(str(cid) for cid in changes_payload.get("files_removed", [])),
            files_modified=tuple(str(cid) for cid in changes_payload.get("files_modified", [])),
            metadata_changed=bool(changes_payload.get("metadata_changed", False)),
            config_changed=bool(changes_payload.get("config_changed", False)),
            summary=str(changes_payload.get("summary", "")),
        ),
        snapshot=DatasetSnapshot(
            files=tuple(
                upload_result_from_payload(item) for item in snapshot_payload.get("files", [])
            ),
            metadata=metadata_from_payload(snapshot_payload.get("metadata", {})),
            config=SnapshotConfig(
                name=str(config_payload["name"]),
                description=str(config_payload.get("description", "")),
                encrypt=bool(config_payload.get("encrypt", False)),
                access_conditions=tuple(
                    access_condition_from_payload(item)
                    for item in config_payload.get("access_conditions", [])
                ),
                tags=tuple(str(tag) for tag in config_payload.get("tags", [])),
            ),
            total_size=int(snapshot_payload.get("total_size", 0)),
            file_count=int(snapshot_payload.get("file_count", 0)),
        ),
        created_at=datetime.fromisoformat(str(payload["created_at"])),
        created_by=str(payload["created_by"]) if payload.get("created_by") else None,
        change_description=str(payload.get("change_description", "")),
        tags=tuple(str(tag) for tag in payload.get("tags", [])),
    )


def upload_result_to_payload(upload: UploadResult) -> dict[str, object]:
    """Serialize a stored-file record."""
    return {
        "cid": upload.cid,
        "size": upload.size,
        "encrypted": upload.encrypted,
        "uploaded_at": upload.uploaded_at.isoformat(),
        "access_conditions": [
            access_condition_to_payload(condition) for condition in upload.access_conditions
        ],
        "tags": list(upload.tags),
        "original_path": upload.original_path,
        "content_hash": upload.content_hash,
    }


def upload_result_from_payload(payload: dict[str, Any]) -> UploadResult:
    """Deserialize a stored-file record."""
    return UploadResult(
        cid=str(payload["cid"]),
        size=int(payload["size"]),
        encrypted=bool(payload.get("encrypted", False)),
        uploaded_at=datetime.fromisoformat(str(payload["uploaded_at"])),
        access_conditions=tuple(
            access_condition_from_payload(item) for item in payload.get("access_conditions", [])
        ),
        tags=tuple(str(tag) for tag in payload.get("tags", [])),
        original_path=str(payload["original_path"]) if payload.get("original_path") else None,
        content_hash=str(payload["content_hash"]) if payload.get("content_hash") else None,
    )


def metadata_to_payload(metadata: DatasetMetadata) -> dict[str, object]:
    """Serialize dataset metadata."""
    return {
        "author": metadata.author,
        "license": metadata.license,
        "category": metadata.category,
        "keywords": list(metadata.keywords),
        "custom": dict(metadata.custom),
    }


def metadata_from_payload(payload: dict[str, Any]) -> DatasetMetadata:
    """Deserialize dataset metadata."""
    custom = payload.get("custom") or {}
    return DatasetMetadata(
        author=_optional_str(payload.get("author")),
        license=_optional_str(payload.get("license")),
        category=_optional_str(payload.get("category")),
        keywords=[str(keyword) for keyword in payload.get("keywords") or []],
        custom={str(key): value for key, value in dict(custom).items()},
    )


def access_condition_to_payload(condition: AccessCondition) -> dict[str, object]:
    """Serialize one access condition."""
    return {
        "condition_type": condition.condition_type,
        "condition": condition.condition,
        "value": condition.value,
        "parameters": dict(condition.parameters),
    }


def access_condition_from_payload(payload: dict[str, Any]) -> AccessCondition:
    """Deserialize one access condition."""
    return AccessCondition(
        condition_type=str(payload["condition_type"]),
        condition=str(payload["condition"]),
        value=str(payload["value"]),
        parameters=dict(payload.get("parameters") or {}),
    )


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)
