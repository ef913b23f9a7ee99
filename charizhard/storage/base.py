"""Abstract blob store interface for Charizhard OTA.

A blob store is a flat key/value byte store addressed by bucket + object name
(MinIO/S3 in production).  Implementations must be safe to share between
concurrent requests.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import AsyncIterator, BinaryIO


class BlobStoreError(Exception):
    """Any failure talking to the blob store (listing, read, write, delete)."""


class ObjectNotFound(BlobStoreError):
    """The requested object does not exist in the bucket."""

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"Object {key!r} not found in bucket {bucket!r}")
        self.bucket = bucket
        self.key = key


@dataclass
class Blob:
    """An opened object: metadata plus a one-shot async byte stream."""

    key: str
    size: int | None
    chunks: AsyncIterator[bytes]

    async def read(self) -> bytes:
        """Drain :attr:`chunks` into a single ``bytes`` value."""
        parts = [chunk async for chunk in self.chunks]
        return b"".join(parts)


class BlobStore(abc.ABC):
    """Abstract interface for any bucket/object backend."""

    @abc.abstractmethod
    async def list(self, bucket: str) -> list[str]:
        """Return every object key in *bucket*, in the backend's listing order."""
        raise NotImplementedError

    @abc.abstractmethod
    async def open(self, bucket: str, key: str) -> Blob:
        """Open *key* for streaming.

        Raises :class:`ObjectNotFound` before any byte is produced when the
        object is absent.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def put(self, bucket: str, key: str, data: BinaryIO, length: int) -> None:
        """Write *length* bytes from *data* to *key*, replacing any existing object."""
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, bucket: str, key: str) -> None:
        """Remove *key*.  Raises :class:`ObjectNotFound` if it does not exist."""
        raise NotImplementedError

    async def get(self, bucket: str, key: str) -> bytes:
        """Read a whole object into memory (small objects only)."""
        blob = await self.open(bucket, key)
        return await blob.read()
