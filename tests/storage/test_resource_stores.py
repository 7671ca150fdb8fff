# tests/storage/test_resource_stores.py
"""
Tests for the local resource stores (memory and file backends).
"""

import pytest
import pytest_asyncio

from sessionmesh.exceptions import ConfigError
from sessionmesh.storage.base_resource import is_valid_resource_id
from sessionmesh.storage.file_resource import FileResourceStore
from sessionmesh.storage.memory_resource import MemoryResourceStore


@pytest_asyncio.fixture(params=["memory", "file"])
async def store(request, tmp_path):
    if request.param == "memory":
        instance = MemoryResourceStore()
        await instance.initialize({})
    else:
        instance = FileResourceStore()
        await instance.initialize({"path": str(tmp_path / "resources")})
    yield instance
    await instance.close()


@pytest.mark.asyncio
async def test_put_assigns_id_and_get_returns_content(store):
    stored = await store.put(b'{"a": 1}', "application/json")

    assert is_valid_resource_id(stored.resource_id)
    fetched = await store.get(stored.resource_id)
    assert fetched.content == b'{"a": 1}'
    assert fetched.content_type == "application/json"
    assert fetched.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_explicit_id(store):
    await store.put(b"payload", "text/plain", resource_id="my-id")
    assert await store.exists("my-id")
    assert (await store.get("my-id")).content_type == "text/plain"


@pytest.mark.asyncio
async def test_unknown_id_is_none(store):
    assert await store.get("missing") is None
    assert not await store.exists("missing")


@pytest.mark.asyncio
async def test_delete(store):
    stored = await store.put(b"x")
    assert await store.delete(stored.resource_id) is True
    assert await store.get(stored.resource_id) is None
    assert await store.delete(stored.resource_id) is False


@pytest.mark.asyncio
async def test_list_ids(store):
    a = await store.put(b"a")
    b = await store.put(b"b")
    assert sorted(await store.list_ids()) == sorted([a.resource_id, b.resource_id])


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_id", ["../etc/passwd", "a/b", ".hidden"])
async def test_invalid_explicit_id_rejected(store, bad_id):
    with pytest.raises(ValueError):
        await store.put(b"x", resource_id=bad_id)


@pytest.mark.asyncio
async def test_file_store_persists_across_instances(tmp_path):
    path = str(tmp_path / "resources")
    first = FileResourceStore()
    await first.initialize({"path": path})
    stored = await first.put(b"\x00binary\xff", "application/octet-stream")

    second = FileResourceStore()
    await second.initialize({"path": path})
    fetched = await second.get(stored.resource_id)

    assert fetched.content == b"\x00binary\xff"
    assert fetched.content_type == "application/octet-stream"


@pytest.mark.asyncio
async def test_file_store_requires_path():
    with pytest.raises(ConfigError):
        await FileResourceStore().initialize({})


@pytest.mark.asyncio
async def test_file_store_traversal_lookup_is_none(tmp_path):
    store = FileResourceStore()
    await store.initialize({"path": str(tmp_path / "resources")})
    (tmp_path / "secret.meta.json").write_text('{"content_type": "text/plain"}')
    (tmp_path / "secret.bin").write_bytes(b"secret")

    assert await store.get("../secret") is None
