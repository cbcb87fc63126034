"""Shared typed models.

This module defines the data shapes used by the upload engine,
version manager, and dataset service to keep interfaces explicit.
Stored-file and version records are frozen; datasets and progress
records are mutated in place by their owners.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal, Mapping

ProgressOperation = Literal["create", "update", "upload", "delete"]


@dataclass(frozen=True)
class AccessCondition:
    """Access control condition attached to files and datasets.

    Attributes:
        condition_type: Condition family, e.g. token_balance or time_based.
        condition: Condition expression to be met.
        value: Value or threshold for the condition.
        parameters: Additional condition parameters.
    """

    condition_type: str
    condition: str
    value: str
    parameters: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class UploadOptions:
    """Options shared by every file of one batch.

    Attributes:
        encrypt: Whether the backend should store the file encrypted.
        access_conditions: Access conditions applied to stored files.
        tags: Tags attached to stored files.
    """

    encrypt: bool = False
    access_conditions: tuple[AccessCondition, ...] = ()
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class UploadResult:
    """One stored file.

    Attributes:
        cid: Content identifier returned by the backend.
        size: Stored size in bytes.
        encrypted: Whether the file was stored encrypted.
        uploaded_at: UTC upload completion timestamp.
        access_conditions: Access conditions applied to the file.
        tags: Tags attached to the file.
        original_path: Local path the file was read from.
        content_hash: Hex digest of the file content.
    """

    cid: str
    size: int
    encrypted: bool
    uploaded_at: datetime
    access_conditions: tuple[AccessCondition, ...] = ()
    tags: tuple[str, ...] = ()
    original_path: str | None = None
    content_hash: str | None = None


@dataclass(frozen=True)
class FailedUpload:
    """A file that could not be stored.

    Attributes:
        file_path: Local path of the failed file.
        error: Failure message from the backend or timeout.
        retry_attempts: Number of retries performed before giving up.
        failed_at: UTC failure timestamp.
    """

    file_path: str
    error: str
    failed_at: datetime
    retry_attempts: int = 0


@dataclass(frozen=True)
class BatchUploadResult:
    """Outcome of one batch upload.

    Attributes:
        total: Number of input files.
        successful: Number of stored files.
        failed: Number of failed files.
        successful_uploads: Stored files in completion order.
        failed_uploads: Failed files in completion order.
        duration_ms: Wall-clock batch duration in milliseconds.
        average_speed: Stored bytes per second over the batch duration.
    """

    total: int
    successful: int
    failed: int
    successful_uploads: tuple[UploadResult, ...]
    failed_uploads: tuple[FailedUpload, ...]
    duration_ms: float
    average_speed: float


@dataclass
class DatasetProgress:
    """Live progress for a running batch.

    Attributes:
        operation: Kind of operation driving the batch.
        total: Files to process.
        completed: Files stored so far.
        failed: Files failed so far.
        timestamp: Time of the last update.
        current_file: Most recently finished file.
        percentage: Processed share in [0, 100].
        rate: Stored files per second since the batch started.
        eta_ms: Estimated milliseconds remaining, unset while rate is zero.
    """

    operation: ProgressOperation
    total: int
    timestamp: datetime
    completed: int = 0
    failed: int = 0
    current_file: str | None = None
    percentage: float = 0.0
    rate: float | None = None
    eta_ms: float | None = None


ProgressCallback = Callable[[DatasetProgress], None]


@dataclass(frozen=True)
class BatchRunOptions:
    """Per-call options for the batch upload engine.

    Attributes:
        concurrency: In-flight upload ceiling; config default when unset.
        timeout_seconds: Per-file timeout; config default when unset.
        chunk_size: Window size for chunked runs; config default when unset.
        on_progress: Optional callback receiving progress copies.
        operation: Operation label stamped on progress records.
    """

    concurrency: int | None = None
    timeout_seconds: float | None = None
    chunk_size: int | None = None
    on_progress: ProgressCallback | None = None
    operation: ProgressOperation = "upload"


@dataclass(frozen=True)
class BatchPlan:
    """Upload strategy chosen from the number of files.

    Attributes:
        use_chunking: Whether to run the chunked large-dataset variant.
        chunk_size: Files per window when chunking.
        concurrency: Suggested in-flight upload ceiling.
    """

    use_chunking: bool
    chunk_size: int
    concurrency: int


@dataclass
class DatasetMetadata:
    """Descriptive metadata of a dataset.

    Attributes:
        author: Author or creator.
        license: License identifier.
        category: Category or domain.
        keywords: Ordered keyword set used as dataset tags.
        custom: Free-form custom properties.
    """

    author: str | None = None
    license: str | None = None
    category: str | None = None
    keywords: list[str] = field(default_factory=list)
    custom: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class DatasetConfig:
    """Configuration for creating a dataset.

    Attributes:
        name: Dataset name, unique among live datasets.
        description: Human-readable description.
        encrypt: Whether files are stored encrypted.
        access_conditions: Access conditions for the dataset and its files.
        tags: Tags attached to every uploaded file.
        metadata: Initial dataset metadata.
    """

    name: str
    description: str = ""
    encrypt: bool = False
    access_conditions: tuple[AccessCondition, ...] = ()
    tags: tuple[str, ...] = ()
    metadata: DatasetMetadata | None = None


@dataclass(frozen=True)
class CreateOptions:
    """Options for dataset creation.

    Attributes:
        concurrency: In-flight upload ceiling; planned from file count when unset.
        timeout_seconds: Per-file timeout; config default when unset.
        on_progress: Optional callback receiving progress copies.
        continue_on_error: When false, any failed file rejects the dataset.
    """

    concurrency: int | None = None
    timeout_seconds: float | None = None
    on_progress: ProgressCallback | None = None
    continue_on_error: bool = True


@dataclass
class Dataset:
    """A named, versioned collection of stored files.

    Attributes:
        id: Dataset identifier.
        name: Dataset name.
        description: Human-readable description.
        files: Stored files, unique by cid.
        metadata: Dataset metadata.
        version: Semantic version string.
        created_at: UTC creation timestamp.
        updated_at: UTC timestamp of the last mutation.
        encrypted: Whether files are stored encrypted.
        access_conditions: Access conditions for the dataset.
        revision: Counter bumped by every committed mutation.
    """

    id: str
    name: str
    description: str
    files: list[UploadResult]
    metadata: DatasetMetadata
    version: str
    created_at: datetime
    updated_at: datetime
    encrypted: bool = False
    access_conditions: tuple[AccessCondition, ...] = ()
    revision: int = 0


@dataclass(frozen=True)
class SnapshotConfig:
    """Dataset configuration captured inside a snapshot."""

    name: str
    description: str
    encrypt: bool
    access_conditions: tuple[AccessCondition, ...]
    tags: tuple[str, ...]


@dataclass(frozen=True)
class DatasetSnapshot:
    """Independent copy of dataset state at version creation.

    Attributes:
        files: Copied file records.
        metadata: Copied metadata.
        config: Copied configuration fields.
        total_size: Sum of file sizes in bytes.
        file_count: Number of files.
    """

    files: tuple[UploadResult, ...]
    metadata: DatasetMetadata
    config: SnapshotConfig
    total_size: int
    file_count: int


@dataclass(frozen=True)
class VersionChanges:
    """Structural change descriptor for one mutation.

    Attributes:
        files_added: Cids added by the mutation.
        files_removed: Cids removed by the mutation.
        files_modified: Cids whose file record changed.
        metadata_changed: Whether dataset metadata changed.
        config_changed: Whether dataset configuration changed.
        summary: Human-readable summary.
    """

    files_added: tuple[str, ...] = ()
    files_removed: tuple[str, ...] = ()
    files_modified: tuple[str, ...] = ()
    metadata_changed: bool = False
    config_changed: bool = False
    summary: str = ""


@dataclass(frozen=True)
class DatasetVersion:
    """Immutable point-in-time version record.

    Attributes:
        id: Version record identifier.
        dataset_id: Owning dataset id.
        version: Semantic version string.
        changes: Change descriptor that produced this version.
        snapshot: Dataset state after the change.
        created_at: UTC creation timestamp.
        created_by: Creator identity.
        change_description: Human-readable summary.
        tags: Version labels.
    """

    id: str
    dataset_id: str
    version: str
    changes: VersionChanges
    snapshot: DatasetSnapshot
    created_at: datetime
    created_by: str | None
    change_description: str
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class MetadataChange:
    """Before and after values of one metadata field."""

    from_value: object
    to_value: object


@dataclass(frozen=True)
class VersionDiff:
    """Differences between two versions of one dataset.

    Attributes:
        from_version: Base version string.
        to_version: Target version string.
        files_added: Files present only in the target.
        files_removed: Files present only in the base.
        files_modified: Files present in both with different records.
        metadata_changes: Changed metadata fields keyed by field name.
        summary: Human-readable summary.
    """

    from_version: str
    to_version: str
    files_added: tuple[UploadResult, ...]
    files_removed: tuple[UploadResult, ...]
    files_modified: tuple[UploadResult, ...]
    metadata_changes: Mapping[str, MetadataChange]
    summary: str


@dataclass(frozen=True)
class DatasetUpdate:
    """Requested mutations for one dataset update.

    Attributes:
        description: New description when set.
        metadata: Metadata fields to merge; unset fields are left alone.
        add_files: Local file paths to upload and add.
        remove_files: Cids to remove.
        add_tags: Keywords to add.
        remove_tags: Keywords to remove.
    """

    description: str | None = None
    metadata: DatasetMetadata | None = None
    add_files: tuple[str, ...] = ()
    remove_files: tuple[str, ...] = ()
    add_tags: tuple[str, ...] = ()
    remove_tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class DatasetFilter:
    """Filter and pagination constraints for listing datasets.

    Attributes:
        encrypted: Optional exact encryption flag match.
        name_pattern: Optional case-insensitive regular expression on names.
        tags: Keep datasets carrying at least one of these keywords.
        author: Optional exact author match.
        category: Optional exact category match.
        created_after: Optional inclusive lower creation bound.
        created_before: Optional inclusive upper creation bound.
        min_files: Optional inclusive lower file-count bound.
        max_files: Optional inclusive upper file-count bound.
        offset: Number of matches to skip.
        limit: Maximum matches to return; unlimited when unset or zero.
    """

    encrypted: bool | None = None
    name_pattern: str | None = None
    tags: tuple[str, ...] = ()
    author: str | None = None
    category: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    min_files: int | None = None
    max_files: int | None = None
    offset: int = 0
    limit: int | None = None


@dataclass(frozen=True)
class DatasetStats:
    """Size and version statistics for one dataset."""

    id: str
    name: str
    file_count: int
    total_size: int
    encrypted: bool
    version: str
    version_count: int
    created_at: datetime
    updated_at: datetime
    average_file_size: float
    largest_file_size: int
    smallest_file_size: int


@dataclass(frozen=True)
class ServiceStats:
    """Aggregate statistics across all live datasets."""

    total_datasets: int
    total_files: int
    total_size: int
    encrypted_datasets: int
    total_versions: int
    average_files_per_dataset: float
    average_dataset_size: float
