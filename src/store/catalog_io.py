"""Catalog persistence helpers.

This module isolates JSON catalog IO for the dataset registry and
version histories. The in-memory registry stays the source of truth;
the catalog is rewritten after each committed mutation.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from core.constants import CATALOG_FORMAT_VERSION
from core.errors import CairnStoreError
from core.types import Dataset, DatasetVersion
from store.record_payload import (
    dataset_from_payload,
    dataset_to_payload,
    version_from_payload,
    version_to_payload,
)


@dataclass(frozen=True)
class CatalogContents:
    """Datasets in registry order plus their version histories."""

    datasets: tuple[Dataset, ...] = ()
    histories: dict[str, tuple[DatasetVersion, ...]] = field(default_factory=dict)


def write_catalog(
    catalog_path: Path,
    datasets: Iterable[Dataset],
    histories: dict[str, tuple[DatasetVersion, ...]],
) -> None:
    """Write the registry and histories to a catalog file.

    Args:
        catalog_path: Catalog JSON path.
        datasets: Live datasets in registry order.
        histories: Version histories keyed by dataset id.

    Raises:
        CairnStoreError: If the catalog cannot be written.
    """
    payload = {
        "format_version": CATALOG_FORMAT_VERSION,
        "datasets": [
            {
                "dataset": dataset_to_payload(dataset),
                "versions": [
                    version_to_payload(record) for record in histories.get(dataset.id, ())
                ],
            }
            for dataset in datasets
        ],
    }
    try:
        serialized = json.dumps(payload, indent=2) + "\n"
    except (TypeError, ValueError) as error:
        raise CairnStoreError(
            f"Failed to serialize dataset catalog {catalog_path}: {error}. "
            "Use JSON-compatible metadata values."
        ) from error
    temp_path = catalog_path.with_name(f".{catalog_path.name}.tmp")
    try:
        catalog_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text(serialized, encoding="utf-8")
        os.replace(temp_path, catalog_path)
    except OSError as error:
        raise CairnStoreError(f"Failed to write dataset catalog {catalog_path}: {error}.") from error


def read_catalog(catalog_path: Path) -> CatalogContents:
    """Read a catalog file, returning empty contents when it does not exist.

    Args:
        catalog_path: Catalog JSON path.

    Returns:
        Parsed datasets and histories.

    Raises:
        CairnStoreError: If the catalog is unreadable or malformed.
    """
    if not catalog_path.exists():
        return CatalogContents()
    payload = _read_catalog_file(catalog_path)
    entries = payload.get("datasets")
    if not isinstance(entries, list):
        raise CairnStoreError(
            f"Invalid dataset catalog at {catalog_path}: expected a datasets list."
        )
    datasets: list[Dataset] = []
    histories: dict[str, tuple[DatasetVersion, ...]] = {}
    for entry in entries:
        try:
            dataset = dataset_from_payload(entry["dataset"])
            versions = tuple(version_from_payload(item) for item in entry.get("versions", []))
        except (KeyError, TypeError, ValueError) as error:
            raise CairnStoreError(
                f"Invalid dataset entry in catalog {catalog_path}: {error}. "
                "Restore the catalog from a backup or delete it to start empty."
            ) from error
        datasets.append(dataset)
        histories[dataset.id] = versions
    return CatalogContents(datasets=tuple(datasets), histories=histories)


def _read_catalog_file(catalog_path: Path) -> dict[str, Any]:
    """Read and validate the top-level catalog payload.

    Args:
        catalog_path: Catalog JSON path.

    Returns:
        Parsed catalog object.

    Raises:
        CairnStoreError: If the catalog is invalid.
    """
    try:
        payload = json.loads(catalog_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise CairnStoreError(
            f"Failed to parse dataset catalog at {catalog_path}: {error.msg}. "
            "Restore the catalog from a backup or delete it to start empty."
        ) from error
    except OSError as error:
        raise CairnStoreError(f"Failed to read dataset catalog {catalog_path}: {error}.") from error
    if not isinstance(payload, dict):
        raise CairnStoreError(
            f"Failed to parse dataset catalog at {catalog_path}: "
            "expected JSON object at top level."
        )
    if payload.get("format_version") != CATALOG_FORMAT_VERSION:
        raise CairnStoreError(
            f"Unsupported dataset catalog format at {catalog_path}: "
            f"expected version {CATALOG_FORMAT_VERSION}, got {payload.get('format_version')}."
        )
    return payload
