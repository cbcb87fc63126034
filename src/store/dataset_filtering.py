"""Dataset listing filters.

This module applies metadata, size, and date constraints to live
datasets and paginates the matches in registry order.
"""

from __future__ import annotations

import re
from typing import Iterable

from core.errors import CairnValidationError
from core.types import Dataset, DatasetFilter


def filter_datasets(
    datasets: Iterable[Dataset],
    dataset_filter: DatasetFilter,
) -> list[Dataset]:
    """Filter and paginate datasets.

    Args:
        datasets: Datasets in registry order.
        dataset_filter: Filter and pagination constraints.

    Returns:
        Matching datasets for the requested page.

    Raises:
        CairnValidationError: If the name pattern or pagination is invalid.
    """
    name_pattern = _compile_name_pattern(dataset_filter.name_pattern)
    if dataset_filter.offset < 0 or (dataset_filter.limit is not None and dataset_filter.limit < 0):
        raise CairnValidationError(
            "Dataset filter offset and limit must be non-negative integers."
        )
    wanted_tags = set(dataset_filter.tags)
    filtered: list[Dataset] = []
    for dataset in datasets:
        metadata = dataset.metadata
        if dataset_filter.encrypted is not None and dataset.encrypted != dataset_filter.encrypted:
            continue
        if name_pattern is not None and not name_pattern.search(dataset.name):
            continue
        if wanted_tags and wanted_tags.isdisjoint(metadata.keywords):
            continue
        if dataset_filter.author and metadata.author != dataset_filter.author:
            continue
        if dataset_filter.category and metadata.category != dataset_filter.category:
            continue
        if dataset_filter.created_after is not None:
            if dataset.created_at < dataset_filter.created_after:
                continue
        if dataset_filter.created_before is not None:
            if dataset.created_at > dataset_filter.created_before:
                continue
        if dataset_filter.min_files is not None and len(dataset.files) < dataset_filter.min_files:
            continue
        if dataset_filter.max_files is not None and len(dataset.files) > dataset_filter.max_files:
            continue
        filtered.append(dataset)
    end = dataset_filter.offset + dataset_filter.limit if dataset_filter.limit else None
    return filtered[dataset_filter.offset : end]


def _compile_name_pattern(pattern: str | None) -> re.Pattern[str] | None:
    """Compile a case-insensitive name pattern.

    Args:
        pattern: Regular expression source, or None.

    Returns:
        Compiled pattern, or None when no pattern was given.

    Raises:
        CairnValidationError: If the pattern is not a valid regular expression.
    """
    if not pattern:
        return None
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as error:
        raise CairnValidationError(
            f"Invalid dataset name pattern '{pattern}': {error}. "
            "Provide a valid regular expression."
        ) from error
