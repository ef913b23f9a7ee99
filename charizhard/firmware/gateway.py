"""Firmware gateway: store operations behind the firmware endpoints.

Every operation works on a single bucket (``CHARIZHARD_FIRMWARE_BUCKET``).
Nothing is cached: each call lists or reads the store afresh, and nothing is
retried.  Uploads overwrite silently (last writer wins) and deletes of an
absent object fail.
"""

from __future__ import annotations

import enum
import logging
import tempfile
from dataclasses import dataclass
from typing import AsyncIterable, BinaryIO

from charizhard.firmware.versions import LEXICOGRAPHIC, resolve_latest, resolve_latest_object
from charizhard.storage import Blob, BlobStore, BlobStoreError

logger = logging.getLogger(__name__)

# Uploads larger than this spill from memory to a temporary file.
_SPOOL_MEMORY_BYTES = 1024 * 1024


class FirmwareError(Exception):
    """Base error for firmware gateway operations."""


class NoFirmware(FirmwareError):
    """The bucket holds no object matching the firmware naming pattern."""


class FirmwareTooLarge(FirmwareError):
    """An upload exceeded the configured size limit."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Firmware exceeds the {limit} byte upload limit")
        self.limit = limit


class ManifestStatus(enum.Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class Manifest:
    status: ManifestStatus
    version: str = ""
    error: str = ""

    def as_dict(self) -> dict[str, str]:
        return {"version": self.version, "error": self.error}


def download_headers(name: str) -> dict[str, str]:
    """Headers for a firmware download response."""
    return {
        "Content-Type": "application/octet-stream",
        "Content-Disposition": f'attachment; filename="{name}"',
    }


async def spool_body(chunks: AsyncIterable[bytes], limit: int) -> tuple[BinaryIO, int]:
    """Buffer an upload stream into a spooled temp file, at most *limit* bytes.

    Returns the file rewound to the start and the number of bytes written.
    Raises :class:`FirmwareTooLarge` as soon as the limit is crossed.
    """
    spool = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MEMORY_BYTES)
    size = 0
    try:
        async for chunk in chunks:
            size += len(chunk)
            if size > limit:
                raise FirmwareTooLarge(limit)
            spool.write(chunk)
    except BaseException:
        spool.close()
        raise
    spool.seek(0)
    return spool, size


class FirmwareGateway:
    """Maps firmware requests onto a :class:`BlobStore` bucket."""

    def __init__(self, store: BlobStore, bucket: str = "bin", order: str = LEXICOGRAPHIC) -> None:
        self.store = store
        self.bucket = bucket
        self.order = order

    async def manifest(self) -> Manifest:
        """Report the latest available version.

        Store failures are folded into an ``ERROR`` manifest rather than raised.
        """
        try:
            keys = await self.store.list(self.bucket)
        except BlobStoreError as exc:
            logger.error("Manifest: listing %s failed: %s", self.bucket, exc)
            return Manifest(ManifestStatus.ERROR, error=f"Error querying bucket {exc}")

        latest = resolve_latest(keys, self.order)
        if latest is None:
            return Manifest(ManifestStatus.NOT_FOUND, error="No firmware files found")
        return Manifest(ManifestStatus.FOUND, version=latest, error="Found")

    async def open_latest(self) -> Blob:
        """Open the latest firmware image.

        Raises :class:`NoFirmware` when nothing matches, or
        :class:`~charizhard.storage.BlobStoreError` on store failure.
        """
        keys = await self.store.list(self.bucket)
        key = resolve_latest_object(keys, self.order)
        if key is None:
            raise NoFirmware("No firmware files found.")
        logger.debug("Latest firmware in %s is %s", self.bucket, key)
        return await self.store.open(self.bucket, key)

    async def open_firmware(self, name: str) -> Blob:
        """Open any object in the firmware bucket by name (not pattern-checked)."""
        return await self.store.open(self.bucket, name)

    async def upload(self, name: str, data: BinaryIO, length: int) -> None:
        await self.store.put(self.bucket, name, data, length)
        logger.info("Uploaded firmware %s (%d bytes)", name, length)

    async def delete(self, name: str) -> None:
        await self.store.delete(self.bucket, name)
        logger.info("Deleted firmware %s", name)
