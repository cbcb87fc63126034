"""Unit tests for dataset orchestration."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from core.errors import (
    CairnConcurrencyError,
    CairnConflictError,
    CairnNotFoundError,
    CairnUploadError,
    CairnValidationError,
)
from core.events import CreateCompletedEvent, CreateFailedEvent, CreateStartedEvent, ProgressEvent
from core.types import (
    BatchRunOptions,
    CreateOptions,
    DatasetConfig,
    DatasetFilter,
    DatasetMetadata,
    DatasetUpdate,
    DatasetProgress,
    VersionChanges,
)
from store.dataset_service import edit_keywords, merge_metadata, summarize_update
from tests.fakes import FakeUploadPrimitive, build_service

_FILES = ("a.txt", "b.txt", "c.txt")


def test_create_dataset_registers_initial_version(tmp_path) -> None:
    """Creation should register the dataset at 1.0.0 with a system version."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        return dataset, await service.list_versions(dataset.id)

    dataset, versions = asyncio.run(_scenario())

    assert dataset.version == "1.0.0"
    assert [upload.original_path for upload in dataset.files] == list(_FILES)
    assert [record.version for record in versions] == ["1.0.0"]
    assert versions[0].created_by == "system"
    assert versions[0].change_description == "Initial dataset creation with 3 files"


def test_create_dataset_skips_failed_files_by_default(tmp_path) -> None:
    """Partial failures should leave failed files out of the dataset."""
    service, _ = build_service(tmp_path, FakeUploadPrimitive(failing_paths=("b.txt",)))

    dataset = asyncio.run(service.create_dataset(DatasetConfig(name="demo"), _FILES))

    assert [upload.original_path for upload in dataset.files] == ["a.txt", "c.txt"]


def test_create_dataset_strict_mode_registers_nothing(tmp_path) -> None:
    """Strict mode should reject the dataset when any file fails."""
    service, _ = build_service(tmp_path, FakeUploadPrimitive(failing_paths=("b.txt",)))
    failures: list[CreateFailedEvent] = []
    service.events.subscribe(CreateFailedEvent, failures.append)

    async def _scenario():
        with pytest.raises(CairnUploadError, match="1 of 3"):
            await service.create_dataset(
                DatasetConfig(name="demo"), _FILES, CreateOptions(continue_on_error=False)
            )
        return await service.list_datasets()

    assert asyncio.run(_scenario()) == []
    assert [event.name for event in failures] == ["demo"]


def test_create_dataset_rejects_duplicate_name(tmp_path) -> None:
    """A second live dataset with the same name should conflict."""
    service, primitive = build_service(tmp_path)

    async def _scenario():
        await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        with pytest.raises(CairnConflictError):
            await service.create_dataset(DatasetConfig(name="demo"), ("d.txt",))
        return await service.list_datasets()

    datasets = asyncio.run(_scenario())

    assert [dataset.name for dataset in datasets] == ["demo"]
    assert "d.txt" not in primitive.calls


def test_concurrent_creates_with_same_name_admit_one(tmp_path) -> None:
    """Name uniqueness should hold while uploads are in flight."""
    service, _ = build_service(tmp_path, FakeUploadPrimitive(delay_seconds=0.01))

    async def _scenario():
        return await asyncio.gather(
            service.create_dataset(DatasetConfig(name="demo"), ("a.txt",)),
            service.create_dataset(DatasetConfig(name="demo"), ("b.txt",)),
            return_exceptions=True,
        )

    outcomes = asyncio.run(_scenario())

    assert sum(isinstance(outcome, CairnConflictError) for outcome in outcomes) == 1
    assert service.get_all_stats().total_datasets == 1


@pytest.mark.parametrize(
    ("config", "files"),
    [
        (DatasetConfig(name=""), ("a.txt",)),
        (DatasetConfig(name="   "), ("a.txt",)),
        (DatasetConfig(name="x" * 256), ("a.txt",)),
        (DatasetConfig(name="demo"), ()),
        (DatasetConfig(name="demo"), tuple(f"f{index}" for index in range(10_001))),
    ],
)
def test_create_dataset_validates_inputs(tmp_path, config, files) -> None:
    """Invalid names and file lists should be rejected before uploading."""
    service, primitive = build_service(tmp_path)

    with pytest.raises(CairnValidationError):
        asyncio.run(service.create_dataset(config, files))

    assert primitive.calls == []


def test_create_dataset_publishes_lifecycle_and_progress_events(tmp_path) -> None:
    """Creation should publish start, per-file progress, and completion events."""
    service, _ = build_service(tmp_path)
    received: list[object] = []
    for event_type in (CreateStartedEvent, ProgressEvent, CreateCompletedEvent):
        service.events.subscribe(event_type, received.append)

    asyncio.run(service.create_dataset(DatasetConfig(name="demo"), _FILES))

    kinds = [type(event).__name__ for event in received]
    assert kinds[0] == "CreateStartedEvent"
    assert kinds.count("ProgressEvent") == 3
    assert kinds[-1] == "CreateCompletedEvent"
    assert received[-1].batch_result.successful == 3
    assert {event.progress.operation for event in received if isinstance(event, ProgressEvent)} == {
        "create"
    }


def test_create_dataset_merges_config_tags_into_keywords(tmp_path) -> None:
    """Config tags should become dataset keywords without duplicates."""
    service, _ = build_service(tmp_path)
    config = DatasetConfig(
        name="demo",
        tags=("text", "en"),
        metadata=DatasetMetadata(keywords=["text", "corpus"]),
    )

    dataset = asyncio.run(service.create_dataset(config, _FILES))

    assert dataset.metadata.keywords == ["text", "corpus", "en"]
    assert all(upload.tags == ("text", "en") for upload in dataset.files)


def test_update_dataset_adding_files_bumps_minor(tmp_path) -> None:
    """Adding files through an update should bump minor."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        updated = await service.update_dataset(
            dataset.id, DatasetUpdate(add_files=("d.txt", "e.txt"))
        )
        return updated, await service.get_version(dataset.id, "1.1.0")

    updated, record = asyncio.run(_scenario())

    assert updated.version == "1.1.0"
    assert len(updated.files) == 5
    assert record.created_by == "user"
    assert record.change_description == "Added 2 files"


def test_update_dataset_removal_bumps_major(tmp_path) -> None:
    """Removing files through an update should bump major."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        return await service.update_dataset(
            dataset.id,
            DatasetUpdate(add_files=("d.txt",), remove_files=(dataset.files[0].cid,)),
        )

    updated = asyncio.run(_scenario())

    assert updated.version == "2.0.0"
    assert [upload.original_path for upload in updated.files] == ["b.txt", "c.txt", "d.txt"]


def test_update_dataset_metadata_and_tags_bump_patch(tmp_path) -> None:
    """Metadata and tag edits should bump patch and merge fields."""
    service, _ = build_service(tmp_path)
    config = DatasetConfig(
        name="demo",
        metadata=DatasetMetadata(author="ada", keywords=["text", "old"], custom={"rows": 1}),
    )

    async def _scenario():
        dataset = await service.create_dataset(config, _FILES)
        return await service.update_dataset(
            dataset.id,
            DatasetUpdate(
                metadata=DatasetMetadata(license="MIT", custom={"cols": 2}),
                add_tags=("new", "text"),
                remove_tags=("old",),
            ),
        )

    updated = asyncio.run(_scenario())

    assert updated.version == "1.0.1"
    assert updated.metadata.author == "ada"
    assert updated.metadata.license == "MIT"
    assert updated.metadata.custom == {"rows": 1, "cols": 2}
    assert updated.metadata.keywords == ["text", "new"]


def test_update_dataset_rejects_stale_revision(tmp_path) -> None:
    """A stale expected revision should raise and leave the dataset unchanged."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await service.update_dataset(
            dataset.id, DatasetUpdate(description="first"), expected_revision=dataset.revision
        )
        with pytest.raises(CairnConcurrencyError):
            await service.update_dataset(
                dataset.id, DatasetUpdate(description="second"), expected_revision=dataset.revision
            )
        return await service.get_dataset(dataset.id)

    current = asyncio.run(_scenario())

    assert current.description == "first"
    assert current.revision == 1
    assert current.version == "1.0.1"


def test_concurrent_updates_to_one_dataset_are_serialized(tmp_path) -> None:
    """Overlapping updates should both land with distinct versions."""
    service, _ = build_service(tmp_path, FakeUploadPrimitive(delay_seconds=0.01))

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await asyncio.gather(
            service.update_dataset(dataset.id, DatasetUpdate(add_files=("d.txt",))),
            service.update_dataset(dataset.id, DatasetUpdate(add_files=("e.txt",))),
        )
        return await service.get_dataset(dataset.id), await service.list_versions(dataset.id)

    dataset, versions = asyncio.run(_scenario())

    assert len(dataset.files) == 5
    assert [record.version for record in versions] == ["1.2.0", "1.1.0", "1.0.0"]
    assert dataset.revision == 2


def test_add_files_drops_duplicate_content(tmp_path) -> None:
    """Files whose cid is already live should not be added twice."""
    primitive = FakeUploadPrimitive(contents={"a.txt": b"same", "copy.txt": b"same"})
    service, _ = build_service(tmp_path, primitive)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        result = await service.add_files(dataset.id, ("copy.txt", "d.txt"))
        return result, await service.get_dataset(dataset.id)

    result, dataset = asyncio.run(_scenario())

    assert result.successful == 2
    assert len(dataset.files) == 4
    assert dataset.version == "1.1.0"


def test_add_files_without_version_keeps_version(tmp_path) -> None:
    """Skipping version creation should still commit the files."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await service.add_files(dataset.id, ("d.txt",), create_version=False)
        return await service.get_dataset(dataset.id), await service.list_versions(dataset.id)

    dataset, versions = asyncio.run(_scenario())

    assert dataset.version == "1.0.0"
    assert dataset.revision == 1
    assert len(dataset.files) == 4
    assert len(versions) == 1


def test_remove_files_ignores_unknown_cids(tmp_path) -> None:
    """Unknown cids should be ignored while known ones are removed."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        return await service.remove_files(dataset.id, (dataset.files[1].cid, "bunknown"))

    dataset = asyncio.run(_scenario())

    assert [upload.original_path for upload in dataset.files] == ["a.txt", "c.txt"]
    assert dataset.version == "2.0.0"


def test_get_dataset_returns_independent_copy(tmp_path) -> None:
    """Mutating a returned dataset should not change the registry."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        dataset.files.clear()
        dataset.metadata.keywords.append("leak")
        return await service.get_dataset(dataset.id)

    dataset = asyncio.run(_scenario())

    assert len(dataset.files) == 3
    assert dataset.metadata.keywords == []


def test_get_dataset_at_version_uses_snapshot(tmp_path) -> None:
    """Requesting a version should reconstruct files from its snapshot."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await service.add_files(dataset.id, ("d.txt",))
        return await service.get_dataset(dataset.id, version="1.0.0")

    dataset = asyncio.run(_scenario())

    assert dataset.version == "1.0.0"
    assert len(dataset.files) == 3


def test_operations_on_unknown_dataset_raise_not_found(tmp_path) -> None:
    """Reads and mutations of a missing dataset should raise not found."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        with pytest.raises(CairnNotFoundError):
            await service.get_dataset("bmissing")
        with pytest.raises(CairnNotFoundError):
            await service.update_dataset("bmissing", DatasetUpdate(description="x"))
        with pytest.raises(CairnNotFoundError):
            await service.list_versions("bmissing")
        with pytest.raises(CairnNotFoundError):
            await service.get_dataset_stats("bmissing")

    asyncio.run(_scenario())


def test_rollback_restores_files_with_new_version(tmp_path) -> None:
    """Rollback should restore content and record a forward version."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await service.add_files(dataset.id, ("d.txt",))
        return await service.rollback_to_version(dataset.id, "1.0.0")

    restored = asyncio.run(_scenario())

    assert [upload.original_path for upload in restored.files] == list(_FILES)
    assert restored.version == "2.0.0"
    assert restored.revision == 2


def test_create_version_records_caller_changes(tmp_path) -> None:
    """Explicit version creation should bump and update the dataset version."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        record = await service.create_version(
            dataset.id, VersionChanges(metadata_changed=True, summary="Relabel"), "ada"
        )
        return record, await service.get_dataset(dataset.id)

    record, dataset = asyncio.run(_scenario())

    assert record.version == "1.0.1"
    assert record.created_by == "ada"
    assert dataset.version == "1.0.1"


def test_delete_dataset_purges_history(tmp_path) -> None:
    """Deletion should remove the dataset and its versions exactly once."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        first = await service.delete_dataset(dataset.id)
        second = await service.delete_dataset(dataset.id)
        recreated = await service.create_dataset(DatasetConfig(name="demo"), ("z.txt",))
        return first, second, recreated

    first, second, recreated = asyncio.run(_scenario())

    assert (first, second) == (True, False)
    assert recreated.version == "1.0.0"
    assert service.get_all_stats().total_versions == 1


def test_list_datasets_applies_filter(tmp_path) -> None:
    """Listing should filter live datasets in creation order."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        await service.create_dataset(DatasetConfig(name="text-a", tags=("text",)), ("a",))
        await service.create_dataset(DatasetConfig(name="image-b", encrypt=True), ("b",))
        await service.create_dataset(DatasetConfig(name="text-c", tags=("text",)), ("c",))
        return await service.list_datasets(DatasetFilter(tags=("text",), limit=5))

    datasets = asyncio.run(_scenario())

    assert [dataset.name for dataset in datasets] == ["text-a", "text-c"]


def test_stats_and_clear(tmp_path) -> None:
    """Stats should reflect live datasets until the service is cleared."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await service.add_files(dataset.id, ("d.txt",))
        return await service.get_dataset_stats(dataset.id)

    stats = asyncio.run(_scenario())
    all_stats = service.get_all_stats()
    service.clear()

    assert stats.file_count == 4
    assert stats.version_count == 2
    assert (all_stats.total_datasets, all_stats.total_versions) == (1, 2)
    assert service.get_all_stats().total_datasets == 0


def test_catalog_persists_across_service_instances(tmp_path) -> None:
    """A catalog-backed service should reload datasets and histories."""
    catalog_path = tmp_path / "catalog.json"
    service, _ = build_service(tmp_path, catalog_path=catalog_path)

    async def _populate():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await service.add_files(dataset.id, ("d.txt",))
        return dataset.id

    dataset_id = asyncio.run(_populate())
    reloaded, _ = build_service(tmp_path, catalog_path=catalog_path)

    async def _read():
        return await reloaded.get_dataset(dataset_id), await reloaded.list_versions(dataset_id)

    dataset, versions = asyncio.run(_read())

    assert dataset.version == "1.1.0"
    assert len(dataset.files) == 4
    assert [record.version for record in versions] == ["1.1.0", "1.0.0"]


def test_merge_metadata_keeps_unset_fields() -> None:
    """Only fields set on the patch should override current values."""
    current = DatasetMetadata(author="ada", keywords=["a"], custom={"x": 1})

    merged = merge_metadata(current, DatasetMetadata(category="nlp", custom={"y": 2}))

    assert merged == DatasetMetadata(
        author="ada", category="nlp", keywords=["a"], custom={"x": 1, "y": 2}
    )
    assert current.custom == {"x": 1}


def test_edit_keywords_keeps_first_insertion_order() -> None:
    """Keyword edits should behave like an ordered set."""
    assert edit_keywords(["a", "b"], ("c", "a"), ("b",)) == ["a", "c"]


def test_summarize_update_lists_changes() -> None:
    """Update summaries should list each applied change or say none."""
    assert summarize_update(2, 1, True, False) == "Added 2 files, Removed 1 files, Updated metadata"
    assert summarize_update(0, 0, False, False) == "No changes"


def test_update_with_unstorable_metadata_leaves_dataset_unchanged(tmp_path) -> None:
    """Values the catalog cannot store should be rejected before any version is recorded."""
    catalog_path = tmp_path / "catalog.json"
    service, _ = build_service(tmp_path, catalog_path=catalog_path)
    update = DatasetUpdate(
        metadata=DatasetMetadata(custom={"when": datetime.now(timezone.utc)})
    )

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        with pytest.raises(CairnValidationError, match="cannot be stored"):
            await service.update_dataset(dataset.id, update)
        return await service.get_dataset(dataset.id), await service.list_versions(dataset.id)

    dataset, versions = asyncio.run(_scenario())
    reloaded, _ = build_service(tmp_path, catalog_path=catalog_path)

    assert (dataset.version, dataset.revision) == ("1.0.0", 0)
    assert dataset.metadata.custom == {}
    assert [record.version for record in versions] == ["1.0.0"]
    assert reloaded.get_all_stats().total_versions == 1


def test_create_with_unstorable_metadata_registers_nothing(tmp_path) -> None:
    """Creation with unstorable metadata should fail without registering the dataset."""
    service, _ = build_service(tmp_path)
    config = DatasetConfig(
        name="demo", metadata=DatasetMetadata(custom={"when": datetime.now(timezone.utc)})
    )

    with pytest.raises(CairnValidationError):
        asyncio.run(service.create_dataset(config, _FILES))

    assert service.get_all_stats().total_datasets == 0
    assert service.get_all_stats().total_versions == 0


def test_update_progress_is_labelled_update_with_explicit_run_options(tmp_path) -> None:
    """Caller run options should not override the update operation label."""
    service, _ = build_service(tmp_path)
    updates: list[DatasetProgress] = []

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await service.update_dataset(
            dataset.id,
            DatasetUpdate(add_files=("d.txt", "e.txt")),
            run_options=BatchRunOptions(concurrency=1, on_progress=updates.append),
        )

    asyncio.run(_scenario())

    assert len(updates) == 2
    assert {update.operation for update in updates} == {"update"}


def test_get_dataset_at_rollback_version_returns_restored_content(tmp_path) -> None:
    """The version recorded by a rollback should snapshot the restored state."""
    service, _ = build_service(tmp_path)

    async def _scenario():
        dataset = await service.create_dataset(DatasetConfig(name="demo"), _FILES)
        await service.add_files(dataset.id, ("d.txt",))
        await service.rollback_to_version(dataset.id, "1.0.0")
        return await service.get_dataset(dataset.id, version="2.0.0")

    at_rollback = asyncio.run(_scenario())

    assert at_rollback.version == "2.0.0"
    assert [upload.original_path for upload in at_rollback.files] == list(_FILES)
