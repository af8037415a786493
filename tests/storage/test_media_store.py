from pathlib import Path

import pytest

from personal_metrics.storage.media import LocalMediaStore, UploadError


@pytest.mark.asyncio
async def test_upload_writes_under_bucket_and_lists_keys(tmp_path: Path) -> None:
    store = LocalMediaStore(tmp_path, "images")

    assert await store.list_keys() == []

    stored = await store.upload("books/vol-1-thumbnail.jpg", b"jpeg-bytes", "image/jpeg")
    await store.upload("discogs/1_thumb.jpeg", b"thumb")

    assert stored.size_bytes == len(b"jpeg-bytes")
    assert (tmp_path / "images" / "books" / "vol-1-thumbnail.jpg").read_bytes() == b"jpeg-bytes"
    assert await store.list_keys() == ["books/vol-1-thumbnail.jpg", "discogs/1_thumb.jpeg"]


@pytest.mark.asyncio
async def test_upload_replaces_existing_objects(tmp_path: Path) -> None:
    store = LocalMediaStore(tmp_path, "images")
    await store.upload("books/a.jpg", b"old")
    await store.upload("books/a.jpg", b"new")

    assert (tmp_path / "images" / "books" / "a.jpg").read_bytes() == b"new"
    assert await store.list_keys() == ["books/a.jpg"]


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["../escape.jpg", "books/../../escape.jpg", ""])
async def test_upload_rejects_keys_outside_the_bucket(tmp_path: Path, key: str) -> None:
    store = LocalMediaStore(tmp_path, "images")

    with pytest.raises(UploadError):
        await store.upload(key, b"data")
    assert not (tmp_path / "escape.jpg").exists()
