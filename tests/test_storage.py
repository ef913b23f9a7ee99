"""Tests for the blob store backends and factory."""

from __future__ import annotations

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from charizhard.config import ConfigError, Settings
from charizhard.storage import (
    BlobStoreError,
    MemoryBlobStore,
    ObjectNotFound,
    S3BlobStore,
    get_store,
)


def _client_error(code: str, op: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


class _Body:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self.closed = False

    def iter_chunks(self, chunk_size):
        for i in range(0, len(self._data), chunk_size):
            yield self._data[i:i + chunk_size]

    def close(self):
        self.closed = True


# ──────────────────────────────────────────────────────────────────
# Memory backend
# ──────────────────────────────────────────────────────────────────

class TestMemoryBlobStore:
    @pytest.mark.asyncio
    async def test_list_empty_bucket(self):
        assert await MemoryBlobStore().list("bin") == []

    @pytest.mark.asyncio
    async def test_list_is_key_ordered(self):
        store = MemoryBlobStore()
        store.seed("bin", {"b": b"2", "a": b"1", "c": b"3"})
        assert await store.list("bin") == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_put_then_get(self):
        store = MemoryBlobStore(chunk_size=3)
        await store.put("bin", "fw", io.BytesIO(b"\x00\x01firmware"), 10)
        assert await store.get("bin", "fw") == b"\x00\x01firmware"

    @pytest.mark.asyncio
    async def test_open_streams_in_chunks(self):
        store = MemoryBlobStore(chunk_size=3)
        store.seed("bin", {"fw": b"abcdefg"})
        blob = await store.open("bin", "fw")
        assert blob.size == 7
        assert [c async for c in blob.chunks] == [b"abc", b"def", b"g"]

    @pytest.mark.asyncio
    async def test_put_overwrites(self):
        store = MemoryBlobStore()
        await store.put("bin", "fw", io.BytesIO(b"old"), 3)
        await store.put("bin", "fw", io.BytesIO(b"new!"), 4)
        assert await store.get("bin", "fw") == b"new!"

    @pytest.mark.asyncio
    async def test_open_missing(self):
        with pytest.raises(ObjectNotFound):
            await MemoryBlobStore().open("bin", "nope")

    @pytest.mark.asyncio
    async def test_delete_twice(self):
        store = MemoryBlobStore()
        store.seed("bin", {"fw": b"x"})
        await store.delete("bin", "fw")
        with pytest.raises(ObjectNotFound):
            await store.delete("bin", "fw")

    def test_not_found_is_store_error(self):
        assert issubclass(ObjectNotFound, BlobStoreError)


# ──────────────────────────────────────────────────────────────────
# S3 backend (boto3 client mocked)
# ──────────────────────────────────────────────────────────────────

@pytest.fixture()
def s3_client():
    return MagicMock()


@pytest.fixture()
def s3(s3_client):
    return S3BlobStore(client=s3_client, chunk_size=2)


class TestS3BlobStore:
    def test_endpoint_url(self):
        assert S3BlobStore(client=MagicMock()).endpoint_url == "http://localhost:9000"
        assert S3BlobStore("minio:9000", secure=True, client=MagicMock()).endpoint_url == "https://minio:9000"
        assert S3BlobStore("http://x:1", client=MagicMock()).endpoint_url == "http://x:1"

    @pytest.mark.asyncio
    async def test_list_walks_pages(self, s3, s3_client):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "charizhard.V1.0.bin"}, {"Key": "charizhard.V1.1.bin"}]},
            {"Contents": [{"Key": "charizhard.V1.2.bin"}]},
            {},
        ]
        s3_client.get_paginator.return_value = paginator
        keys = await s3.list("bin")
        assert keys == ["charizhard.V1.0.bin", "charizhard.V1.1.bin", "charizhard.V1.2.bin"]
        paginator.paginate.assert_called_once_with(Bucket="bin")

    @pytest.mark.asyncio
    async def test_list_error(self, s3, s3_client):
        s3_client.get_paginator.return_value.paginate.side_effect = _client_error("NoSuchBucket", "ListObjectsV2")
        with pytest.raises(BlobStoreError, match="Error listing bucket"):
            await s3.list("bin")

    @pytest.mark.asyncio
    async def test_list_connection_error(self, s3, s3_client):
        s3_client.get_paginator.return_value.paginate.side_effect = EndpointConnectionError(
            endpoint_url="http://localhost:9000"
        )
        with pytest.raises(BlobStoreError):
            await s3.list("bin")

    @pytest.mark.asyncio
    async def test_open_streams_body(self, s3, s3_client):
        body = _Body(b"hello")
        s3_client.get_object.return_value = {"Body": body, "ContentLength": 5}
        blob = await s3.open("bin", "fw")
        assert blob.size == 5
        assert await blob.read() == b"hello"
        assert body.closed
        s3_client.get_object.assert_called_once_with(Bucket="bin", Key="fw")

    @pytest.mark.asyncio
    async def test_open_missing(self, s3, s3_client):
        s3_client.get_object.side_effect = _client_error("NoSuchKey")
        with pytest.raises(ObjectNotFound):
            await s3.open("bin", "fw")

    @pytest.mark.asyncio
    async def test_open_other_error(self, s3, s3_client):
        s3_client.get_object.side_effect = _client_error("AccessDenied")
        with pytest.raises(BlobStoreError) as info:
            await s3.open("bin", "fw")
        assert not isinstance(info.value, ObjectNotFound)

    @pytest.mark.asyncio
    async def test_put(self, s3, s3_client):
        data = io.BytesIO(b"abc")
        await s3.put("bin", "fw", data, 3)
        s3_client.put_object.assert_called_once_with(
            Bucket="bin",
            Key="fw",
            Body=data,
            ContentLength=3,
            ContentType="application/octet-stream",
        )

    @pytest.mark.asyncio
    async def test_put_error(self, s3, s3_client):
        s3_client.put_object.side_effect = _client_error("InternalError", "PutObject")
        with pytest.raises(BlobStoreError, match="Error writing"):
            await s3.put("bin", "fw", io.BytesIO(b""), 0)

    @pytest.mark.asyncio
    async def test_delete_existing(self, s3, s3_client):
        await s3.delete("bin", "fw")
        s3_client.head_object.assert_called_once_with(Bucket="bin", Key="fw")
        s3_client.delete_object.assert_called_once_with(Bucket="bin", Key="fw")

    @pytest.mark.asyncio
    async def test_delete_missing_is_reported(self, s3, s3_client):
        s3_client.head_object.side_effect = _client_error("404", "HeadObject")
        with pytest.raises(ObjectNotFound):
            await s3.delete("bin", "fw")
        s3_client.delete_object.assert_not_called()


# ──────────────────────────────────────────────────────────────────
# Factory
# ──────────────────────────────────────────────────────────────────

class TestGetStore:
    def test_memory_backend(self):
        assert isinstance(get_store(Settings(store_backend="memory")), MemoryBlobStore)

    def test_s3_requires_credentials(self):
        with pytest.raises(ConfigError, match="MINIO_ACCESS_KEY"):
            get_store(Settings(store_backend="s3"))

    def test_s3_backend(self):
        settings = Settings(
            store_backend="s3",
            store_endpoint="minio:9000",
            store_access_key="minio",
            store_secret_key="minio123",
        )
        store = get_store(settings)
        assert isinstance(store, S3BlobStore)
        assert store.endpoint_url == "http://minio:9000"
