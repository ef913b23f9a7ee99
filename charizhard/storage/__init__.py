"""Blob store factory for Charizhard OTA.

Usage::

    from charizhard.storage import get_store
    store = get_store(settings)          # backend from CHARIZHARD_STORE
"""

from __future__ import annotations

import logging

from charizhard.config import ConfigError, Settings

from .base import Blob, BlobStore, BlobStoreError, ObjectNotFound
from .memory import MemoryBlobStore
from .s3 import S3BlobStore

__all__ = [
    "Blob",
    "BlobStore",
    "BlobStoreError",
    "MemoryBlobStore",
    "ObjectNotFound",
    "S3BlobStore",
    "get_store",
]

logger = logging.getLogger(__name__)


def get_store(settings: Settings) -> BlobStore:
    """Return the configured blob store.

    The S3 backend refuses to start without an access/secret key pair.
    """
    if settings.store_backend == "memory":
        logger.warning("Using in-memory blob store; objects will not survive a restart")
        return MemoryBlobStore()

    if not settings.store_access_key or not settings.store_secret_key:
        raise ConfigError("MINIO_ACCESS_KEY and MINIO_SECRET_KEY must be set")

    logger.info("Connecting to blob store at %s", settings.store_endpoint)
    return S3BlobStore(
        endpoint=settings.store_endpoint,
        access_key=settings.store_access_key,
        secret_key=settings.store_secret_key,
        secure=settings.store_secure,
        timeout=settings.store_timeout,
    )
