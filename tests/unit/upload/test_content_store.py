"""Unit tests for the local content store."""

from __future__ import annotations

import asyncio

import pytest

from core.config import CairnConfig
from core.content_id import build_content_id
from core.errors import CairnStoreError
from core.types import UploadOptions
from upload.content_store import LocalContentStore


def _store(tmp_path) -> LocalContentStore:
    return LocalContentStore(CairnConfig(data_root=tmp_path / "data"))


def test_upload_stores_object_under_its_cid(tmp_path) -> None:
    """Uploaded bytes should be addressable by their content id."""
    source = tmp_path / "sample.txt"
    source.write_bytes(b"sample bytes")
    store = _store(tmp_path)

    result = asyncio.run(store.upload(str(source), UploadOptions(tags=("raw",))))

    assert result.cid == build_content_id(b"sample bytes")
    assert result.size == len(b"sample bytes")
    assert result.tags == ("raw",)
    assert store.has_object(result.cid)
    assert (tmp_path / "data" / "objects" / result.cid).read_bytes() == b"sample bytes"


def test_upload_deduplicates_identical_content(tmp_path) -> None:
    """Two files with identical bytes should share one stored object."""
    first = tmp_path / "first.txt"
    second = tmp_path / "second.txt"
    first.write_text("same", encoding="utf-8")
    second.write_text("same", encoding="utf-8")
    store = _store(tmp_path)

    results = asyncio.run(
        _upload_all(store, [str(first), str(second)])
    )

    assert results[0].cid == results[1].cid
    assert len(list((tmp_path / "data" / "objects").iterdir())) == 1


def test_upload_raises_for_missing_file(tmp_path) -> None:
    """A missing source file should raise a store error."""
    store = _store(tmp_path)

    with pytest.raises(CairnStoreError, match="File not found"):
        asyncio.run(store.upload(str(tmp_path / "missing.txt"), UploadOptions()))


def test_fetch_copies_object_to_output(tmp_path) -> None:
    """Fetching a cid should reproduce the original bytes."""
    source = tmp_path / "sample.txt"
    source.write_bytes(b"payload")
    store = _store(tmp_path)
    result = asyncio.run(store.upload(str(source), UploadOptions()))

    output = asyncio.run(store.fetch(result.cid, str(tmp_path / "out" / "copy.txt")))

    assert output.read_bytes() == b"payload"


def test_fetch_raises_for_unknown_cid(tmp_path) -> None:
    """Fetching an unstored cid should raise a store error."""
    store = _store(tmp_path)

    with pytest.raises(CairnStoreError):
        asyncio.run(store.fetch(build_content_id(b"nothing"), str(tmp_path / "out.txt")))


async def _upload_all(store: LocalContentStore, paths: list[str]):
    return [await store.upload(path, UploadOptions()) for path in paths]
