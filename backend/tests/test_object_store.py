"""LocalObjectStore tests."""

import uuid

import pytest

from docuvid.errors import StorageError
from docuvid.services.object_store import LocalObjectStore, image_key, video_key


def test_object_keys():
    project_id = uuid.UUID("00000000-0000-0000-0000-000000000001")
    assert image_key(project_id, 3) == f"{project_id}/images/scene_03.png"
    assert video_key(project_id, 12) == f"{project_id}/video/scene_12.mp4"


@pytest.mark.asyncio
async def test_upload_returns_file_uri_and_fetches_back(tmp_path):
    store = LocalObjectStore(base_dir=tmp_path)

    url = await store.upload("p1/images/scene_01.png", b"png", "image/png")

    assert url.startswith("file://")
    assert (tmp_path / "p1" / "images" / "scene_01.png").read_bytes() == b"png"
    assert await store.fetch(url) == b"png"


@pytest.mark.asyncio
async def test_upload_overwrites(tmp_path):
    store = LocalObjectStore(base_dir=tmp_path)
    await store.upload("p1/video/scene_01.mp4", b"old", "video/mp4")
    url = await store.upload("p1/video/scene_01.mp4", b"new", "video/mp4")
    assert await store.fetch(url) == b"new"


@pytest.mark.asyncio
async def test_public_base_url_maps_back_to_disk(tmp_path):
    store = LocalObjectStore(base_dir=tmp_path, public_base_url="http://localhost:8000/objects/")

    url = await store.upload("p1/images/scene_02.png", b"png", "image/png")

    assert url == "http://localhost:8000/objects/p1/images/scene_02.png"
    assert await store.fetch(url) == b"png"


@pytest.mark.asyncio
async def test_path_traversal_is_rejected(tmp_path):
    store = LocalObjectStore(base_dir=tmp_path / "objects")
    with pytest.raises(StorageError):
        await store.upload("../escape.png", b"png", "image/png")


@pytest.mark.asyncio
async def test_missing_object_is_storage_error(tmp_path):
    store = LocalObjectStore(base_dir=tmp_path)
    with pytest.raises(StorageError):
        await store.fetch((tmp_path / "missing.png").as_uri())


@pytest.mark.asyncio
async def test_owns_only_urls_inside_the_store(tmp_path):
    store = LocalObjectStore(base_dir=tmp_path / "objects", public_base_url="https://media.example.com")
    url = await store.upload("p1/images/scene_01.png", b"png", "image/png")

    assert store.owns(url)
    assert store.owns("https://media.example.com/p1/video/scene_02.mp4")
    assert not store.owns("https://media.example.com/../../etc/passwd")
    assert not store.owns((tmp_path / "elsewhere.mp4").as_uri())
    assert not store.owns("/etc/hostname")
    assert not store.owns("https://other.example.com/p1/video/scene_02.mp4")
