"""WireGuard client configuration registry.

Client configurations live in a single JSON object stored in the config
bucket, keyed by client identifier::

    {
      "dev1": {
        "endpoint": "1.1.1.1:51820",
        "public_key": "...",
        "private_key": "...",
        "alloweds_ips": "10.0.0.0/24"
      }
    }

The registry reads the **first** object listed in the bucket; other objects
are ignored (with a warning) unless strict mode rejects them.  Nothing is
cached; every lookup re-reads the blob.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from charizhard.storage import BlobStore

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Base error for client config lookups."""


class EmptyBucket(RegistryError):
    """The config bucket holds no object at all."""


class AmbiguousConfig(RegistryError):
    """Strict mode: the config bucket holds more than one object."""


class MalformedJson(RegistryError):
    """The config blob is not a JSON object of client records."""

    def __init__(self, key: str, cause: ValidationError) -> None:
        super().__init__(f"Config blob {key!r} is malformed: {cause}")
        self.key = key
        self.cause = cause


class ClientNotFound(RegistryError):
    """No record for the requested client identifier."""

    def __init__(self, client_id: str) -> None:
        super().__init__(f"Client {client_id!r} not found")
        self.client_id = client_id


class ClientRecord(BaseModel):
    """A device's WireGuard connection parameters."""

    model_config = ConfigDict(frozen=True)

    endpoint: str
    public_key: str
    private_key: str
    # Stored blobs spell this "alloweds_ips".
    allowed_ips: str = Field(validation_alias=AliasChoices("allowed_ips", "alloweds_ips"))


_CLIENT_MAP = TypeAdapter(dict[str, ClientRecord])


def parse_client_map(blob: bytes | str, key: str = "<blob>") -> dict[str, ClientRecord]:
    """Parse a config blob into ``{client_id: ClientRecord}``."""
    try:
        return _CLIENT_MAP.validate_json(blob)
    except ValidationError as exc:
        raise MalformedJson(key, exc) from exc


def encode_client_record(record: ClientRecord) -> str:
    """Form-encode *record* as ``endpoint=..&public_key=..&private_key=..&allowed_ips=..``."""
    return urlencode([
        ("endpoint", record.endpoint),
        ("public_key", record.public_key),
        ("private_key", record.private_key),
        ("allowed_ips", record.allowed_ips),
    ])


class ClientConfigRegistry:
    """Point lookups of :class:`ClientRecord` by client identifier."""

    def __init__(self, store: BlobStore, bucket: str = "config-wg", strict: bool = False) -> None:
        self.store = store
        self.bucket = bucket
        self.strict = strict

    async def lookup(self, client_id: str) -> ClientRecord:
        """Return the record for *client_id*.

        Raises :class:`EmptyBucket`, :class:`AmbiguousConfig`,
        :class:`MalformedJson`, :class:`ClientNotFound`, or
        :class:`~charizhard.storage.BlobStoreError`.
        """
        keys = await self.store.list(self.bucket)
        if not keys:
            raise EmptyBucket(f"No Files Found in Bucket {self.bucket!r}")
        if len(keys) > 1:
            if self.strict:
                raise AmbiguousConfig(
                    f"Bucket {self.bucket!r} holds {len(keys)} objects, expected exactly one"
                )
            logger.warning(
                "Config bucket %s holds %d objects; reading only %s",
                self.bucket, len(keys), keys[0],
            )

        blob = await self.store.get(self.bucket, keys[0])
        clients = parse_client_map(blob, keys[0])
        record = clients.get(client_id)
        if record is None:
            raise ClientNotFound(client_id)
        return record
