"""pytest configuration for Charizhard OTA tests."""

from __future__ import annotations

import time

import jwt
import pytest

from charizhard.auth import TokenValidator
from charizhard.config import Settings
from charizhard.storage import BlobStoreError, MemoryBlobStore

JWT_SECRET = "charizhard-test-secret-0123456789abcdef"
ISSUER = "http://keycloak.test/realms/charizhard-ota"


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


def make_token(
    roles=("admin",),
    audience="account",
    issuer=ISSUER,
    expires_in=300,
    secret=JWT_SECRET,
    client_roles=None,
) -> str:
    """Mint a Keycloak-shaped HS256 access token."""
    now = int(time.time())
    payload = {
        "sub": "user-1",
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        "realm_access": {"roles": list(roles)},
    }
    if client_roles:
        payload["resource_access"] = {"charizhard": {"roles": list(client_roles)}}
    return jwt.encode(payload, secret, algorithm="HS256")


class BrokenStore(MemoryBlobStore):
    """A store whose every call fails."""

    async def list(self, bucket):
        raise BlobStoreError("connection refused")

    async def open(self, bucket, key):
        raise BlobStoreError("connection refused")

    async def put(self, bucket, key, data, length):
        raise BlobStoreError("connection refused")

    async def delete(self, bucket, key):
        raise BlobStoreError("connection refused")


@pytest.fixture()
def store():
    return MemoryBlobStore(chunk_size=4)


@pytest.fixture()
def settings():
    return Settings(store_backend="memory", keycloak_url="http://keycloak.test")


@pytest.fixture()
def validator():
    return TokenValidator(issuer=ISSUER, key=JWT_SECRET, algorithms=["HS256"])
