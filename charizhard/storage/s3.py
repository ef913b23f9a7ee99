"""MinIO / S3 blob store backed by boto3.

boto3 is synchronous, so every call runs in a worker thread.  The boto3
client itself is thread-safe and is shared by all requests.  Automatic
retries are disabled and connect/read timeouts bound each store call.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, BinaryIO

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .base import Blob, BlobStore, BlobStoreError, ObjectNotFound

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}


def _is_not_found(exc: ClientError) -> bool:
    return str(exc.response.get("Error", {}).get("Code", "")) in _NOT_FOUND_CODES


def _endpoint_url(endpoint: str, secure: bool) -> str:
    if "://" in endpoint:
        return endpoint
    return f"{'https' if secure else 'http'}://{endpoint}"


class S3BlobStore(BlobStore):
    """Blob store talking to a MinIO (or any S3-compatible) server."""

    def __init__(
        self,
        endpoint: str = "localhost:9000",
        access_key: str | None = None,
        secret_key: str | None = None,
        secure: bool = False,
        timeout: int = 10,
        client: Any = None,
        chunk_size: int = _CHUNK_SIZE,
    ) -> None:
        self.endpoint_url = _endpoint_url(endpoint, secure)
        self._chunk_size = chunk_size
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=self.endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name="us-east-1",
                config=BotoConfig(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"total_max_attempts": 1},
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                ),
            )
        self._client = client

    # ------------------------------------------------------------------ #
    # BlobStore API
    # ------------------------------------------------------------------ #

    async def list(self, bucket: str) -> list[str]:
        try:
            return await asyncio.to_thread(self._list_keys, bucket)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"Error listing bucket {bucket!r}: {exc}") from exc

    async def open(self, bucket: str, key: str) -> Blob:
        try:
            resp = await asyncio.to_thread(self._client.get_object, Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                raise ObjectNotFound(bucket, key) from exc
            raise BlobStoreError(f"Error reading {bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise BlobStoreError(f"Error reading {bucket}/{key}: {exc}") from exc
        return Blob(key=key, size=resp.get("ContentLength"), chunks=self._iter_body(resp["Body"], bucket, key))

    async def put(self, bucket: str, key: str, data: BinaryIO, length: int) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=bucket,
                Key=key,
                Body=data,
                ContentLength=length,
                ContentType="application/octet-stream",
            )
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"Error writing {bucket}/{key}: {exc}") from exc

    async def delete(self, bucket: str, key: str) -> None:
        # S3 deletes are silently idempotent; check existence so a missing
        # object is reported instead.
        try:
            await asyncio.to_thread(self._client.head_object, Bucket=bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                raise ObjectNotFound(bucket, key) from exc
            raise BlobStoreError(f"Error deleting {bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise BlobStoreError(f"Error deleting {bucket}/{key}: {exc}") from exc
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise BlobStoreError(f"Error deleting {bucket}/{key}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _list_keys(self, bucket: str) -> list[str]:
        keys: list[str] = []
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return keys

    async def _iter_body(self, body: Any, bucket: str, key: str) -> AsyncIterator[bytes]:
        chunks = body.iter_chunks(self._chunk_size)
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(next, chunks, None)
                except (ClientError, BotoCoreError) as exc:
                    raise BlobStoreError(f"Error streaming {bucket}/{key}: {exc}") from exc
                if chunk is None:
                    break
                yield chunk
        finally:
            body.close()
