"""Public SDK surface for Cairn.

This module provides a stable import path for SDK users.
It re-exports the primary client and typed option models.
"""

from __future__ import annotations

from core.config import CairnConfig
from core.events import (
    CreateCompletedEvent,
    CreateFailedEvent,
    CreateStartedEvent,
    EventBus,
    ProgressEvent,
)
from core.types import (
    AccessCondition,
    BatchRunOptions,
    BatchUploadResult,
    CreateOptions,
    Dataset,
    DatasetConfig,
    DatasetFilter,
    DatasetMetadata,
    DatasetProgress,
    DatasetUpdate,
    DatasetVersion,
    UploadOptions,
    UploadResult,
    VersionChanges,
    VersionDiff,
)
from store.dataset_sdk import CairnClient
from store.dataset_service import DatasetService
from upload.batch_upload import BatchUploadEngine, plan_batch
from upload.content_store import LocalContentStore, UploadPrimitive

__all__ = [
    "AccessCondition",
    "BatchRunOptions",
    "BatchUploadEngine",
    "BatchUploadResult",
    "CairnClient",
    "CairnConfig",
    "CreateCompletedEvent",
    "CreateFailedEvent",
    "CreateOptions",
    "CreateStartedEvent",
    "Dataset",
    "DatasetConfig",
    "DatasetFilter",
    "DatasetMetadata",
    "DatasetProgress",
    "DatasetService",
    "DatasetUpdate",
    "DatasetVersion",
    "EventBus",
    "LocalContentStore",
    "ProgressEvent",
    "UploadOptions",
    "UploadPrimitive",
    "UploadResult",
    "VersionChanges",
    "VersionDiff",
    "plan_batch",
]
