"""Dataset size and version statistics."""

from __future__ import annotations

from typing import Iterable

from core.types import Dataset, DatasetStats, ServiceStats


def build_dataset_stats(dataset: Dataset, version_count: int) -> DatasetStats:
    """Summarize file sizes and version count of one dataset."""
    sizes = [upload.size for upload in dataset.files]
    total_size = sum(sizes)
    return DatasetStats(
        id=dataset.id,
        name=dataset.name,
        file_count=len(sizes),
        total_size=total_size,
        encrypted=dataset.encrypted,
        version=dataset.version,
        version_count=version_count,
        created_at=dataset.created_at,
        updated_at=dataset.updated_at,
        average_file_size=total_size / len(sizes) if sizes else 0.0,
        largest_file_size=max(sizes, default=0),
        smallest_file_size=min(sizes, default=0),
    )


def build_service_stats(datasets: Iterable[Dataset], total_versions: int) -> ServiceStats:
    """Aggregate file counts and sizes across datasets."""
    dataset_list = list(datasets)
    total_files = sum(len(dataset.files) for dataset in dataset_list)
    total_size = sum(upload.size for dataset in dataset_list for upload in dataset.files)
    count = len(dataset_list)
    return ServiceStats(
        total_datasets=count,
        total_files=total_files,
        total_size=total_size,
        encrypted_datasets=sum(1 for dataset in dataset_list if dataset.encrypted),
        total_versions=total_versions,
        average_files_per_dataset=total_files / count if count else 0.0,
        average_dataset_size=total_size / count if count else 0.0,
    )
