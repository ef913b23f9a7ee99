"""Firmware distribution: version resolution and the store gateway."""

from .gateway import (
    FirmwareError,
    FirmwareGateway,
    FirmwareTooLarge,
    Manifest,
    ManifestStatus,
    NoFirmware,
    download_headers,
    spool_body,
)
from .versions import extract_version, firmware_key, resolve_latest, resolve_latest_object

__all__ = [
    "FirmwareError",
    "FirmwareGateway",
    "FirmwareTooLarge",
    "Manifest",
    "ManifestStatus",
    "NoFirmware",
    "download_headers",
    "extract_version",
    "firmware_key",
    "resolve_latest",
    "resolve_latest_object",
    "spool_body",
]
