"""Integration test for the end-to-end dataset lifecycle."""

from __future__ import annotations

import asyncio

import pytest

from cairn import CairnClient, CairnConfig, CreateOptions, DatasetConfig, DatasetUpdate
from core.errors import CairnConflictError
from tests.fakes import write_files


def test_create_update_rollback_lifecycle(tmp_path) -> None:
    """Dataset should move through create, update, diff, rollback, and conflict."""
    client = CairnClient(CairnConfig(data_root=tmp_path / "data"))
    original = write_files(tmp_path / "original", 3, prefix="original")
    extra = write_files(tmp_path / "extra", 2, prefix="extra")
    service = client.datasets

    async def _scenario():
        created = await service.create_dataset(DatasetConfig(name="T"), original)
        assert created.version == "1.0.0"
        assert len(created.files) == 3

        added = await service.update_dataset(created.id, DatasetUpdate(add_files=tuple(extra)))
        assert added.version == "1.1.0"
        assert len(added.files) == 5

        removed = await service.update_dataset(
            created.id, DatasetUpdate(remove_files=(created.files[0].cid,))
        )
        assert removed.version == "2.0.0"
        assert len(removed.files) == 4

        diff = await service.compare_versions(created.id, "1.0.0", "2.0.0")
        assert len(diff.files_added) == 2
        assert len(diff.files_removed) == 1

        restored = await service.rollback_to_version(created.id, "1.0.0")
        assert restored.version == "3.0.0"
        assert {upload.cid for upload in restored.files} == {
            upload.cid for upload in created.files
        }
        at_rollback = await service.get_dataset(created.id, version="3.0.0")
        assert {upload.cid for upload in at_rollback.files} == {
            upload.cid for upload in created.files
        }

        with pytest.raises(CairnConflictError):
            await service.create_dataset(DatasetConfig(name="T"), original)
        return await service.list_datasets()

    datasets = asyncio.run(_scenario())

    assert [dataset.name for dataset in datasets] == ["T"]
    versions = [
        record.version for record in asyncio.run(service.list_versions(datasets[0].id))
    ]
    assert versions == ["3.0.0", "2.0.0", "1.1.0", "1.0.0"]


def test_large_batch_is_uploaded_in_chunks(tmp_path) -> None:
    """Batches above the threshold should complete with cumulative progress."""
    config = CairnConfig(data_root=tmp_path / "data", chunk_size=4, large_batch_threshold=10)
    client = CairnClient(config, persist=False)
    files = write_files(tmp_path / "bulk", 10)
    percentages: list[float] = []

    dataset = asyncio.run(
        client.datasets.create_dataset(
            DatasetConfig(name="bulk"),
            files,
            CreateOptions(on_progress=lambda progress: percentages.append(progress.percentage)),
        )
    )

    assert len(dataset.files) == 10
    assert len(percentages) == 10
    assert percentages[-1] == 100.0
    assert percentages == sorted(percentages)
