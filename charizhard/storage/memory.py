"""In-process blob store, for local development and tests."""

from __future__ import annotations

import logging
import threading
from typing import AsyncIterator, BinaryIO

from .base import Blob, BlobStore, ObjectNotFound

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class MemoryBlobStore(BlobStore):
    """Keeps every bucket as a dict of key -> bytes.

    Listings are returned in key order, like S3 ``ListObjectsV2``.
    """

    def __init__(self, chunk_size: int = _CHUNK_SIZE) -> None:
        self._buckets: dict[str, dict[str, bytes]] = {}
        self._lock = threading.Lock()
        self._chunk_size = chunk_size

    def seed(self, bucket: str, objects: dict[str, bytes]) -> None:
        """Bulk-load *objects* into *bucket* (creating it if needed)."""
        with self._lock:
            self._buckets.setdefault(bucket, {}).update(objects)

    async def list(self, bucket: str) -> list[str]:
        with self._lock:
            return sorted(self._buckets.get(bucket, {}))

    async def open(self, bucket: str, key: str) -> Blob:
        with self._lock:
            data = self._buckets.get(bucket, {}).get(key)
        if data is None:
            raise ObjectNotFound(bucket, key)
        return Blob(key=key, size=len(data), chunks=self._iter(data))

    async def _iter(self, data: bytes) -> AsyncIterator[bytes]:
        for offset in range(0, len(data), self._chunk_size):
            yield data[offset:offset + self._chunk_size]

    async def put(self, bucket: str, key: str, data: BinaryIO, length: int) -> None:
        payload = data.read(length)
        with self._lock:
            self._buckets.setdefault(bucket, {})[key] = payload
        logger.debug("memory store: wrote %s/%s (%d bytes)", bucket, key, len(payload))

    async def delete(self, bucket: str, key: str) -> None:
        with self._lock:
            objects = self._buckets.get(bucket, {})
            if key not in objects:
                raise ObjectNotFound(bucket, key)
            del objects[key]
