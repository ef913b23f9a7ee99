"""HTTP routers for Charizhard OTA.

Each factory takes its collaborators explicitly, so the plaintext and TLS
applications get their own router instances over a shared store.

  GET    /                  banner                       (public)
  GET    /manifest          latest version as JSON       (public)
  GET    /latest            latest firmware image        (public)
  GET    /firmware/{name}   named firmware image         (public)
  POST   /firmware/{name}   upload firmware              (protected)
  DELETE /firmware/{name}   delete firmware              (protected)
  GET    /configwg          WireGuard client config      (mTLS, optionally public)
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.requests import ClientDisconnect

from charizhard.auth import AccessClaims, AccessTier
from charizhard.firmware import (
    FirmwareGateway,
    FirmwareTooLarge,
    ManifestStatus,
    NoFirmware,
    download_headers,
    spool_body,
)
from charizhard.storage import Blob, BlobStoreError, ObjectNotFound
from charizhard.wireguard import (
    AmbiguousConfig,
    ClientConfigRegistry,
    ClientNotFound,
    EmptyBucket,
    MalformedJson,
    encode_client_record,
)

logger = logging.getLogger(__name__)

BANNER = "Welcome to Charizhard OTA ! Check /latest to get latest firmware"
CLIENT_ID_HEADER = "id_client_x"
FORM_MEDIA_TYPE = "application/x-www-form-urlencoded"


def _stream(blob: Blob) -> StreamingResponse:
    headers = download_headers(blob.key)
    if blob.size is not None:
        headers["Content-Length"] = str(blob.size)
    return StreamingResponse(blob.chunks, headers=headers, media_type="application/octet-stream")


# ── Public tier ───────────────────────────────────────────────────

def public_router(gateway: FirmwareGateway) -> APIRouter:
    router = APIRouter(tags=[AccessTier.PUBLIC.value])

    @router.get("/", response_class=PlainTextResponse)
    async def root():
        return BANNER

    @router.get("/manifest")
    async def manifest():
        result = await gateway.manifest()
        if result.status is ManifestStatus.NOT_FOUND:
            return Response(status_code=204)
        if result.status is ManifestStatus.ERROR:
            return JSONResponse(result.as_dict(), status_code=500)
        return JSONResponse(result.as_dict())

    @router.get("/latest")
    async def latest_firmware():
        try:
            blob = await gateway.open_latest()
        except NoFirmware as exc:
            logger.info("Latest firmware requested but bucket %s is empty", gateway.bucket)
            return PlainTextResponse(str(exc), status_code=404)
        except ObjectNotFound as exc:
            # Deleted between listing and read.
            logger.info("%s", exc)
            return PlainTextResponse(str(exc), status_code=404)
        except BlobStoreError as exc:
            logger.error("Latest firmware lookup failed: %s", exc)
            return PlainTextResponse(f"Error querying bucket: {exc}", status_code=500)
        return _stream(blob)

    @router.get("/firmware/{name}")
    async def specific_firmware(name: str):
        try:
            blob = await gateway.open_firmware(name)
        except ObjectNotFound as exc:
            logger.info("%s", exc)
            return PlainTextResponse(str(exc), status_code=404)
        except BlobStoreError as exc:
            logger.error("Firmware %s download failed: %s", name, exc)
            return PlainTextResponse(f"Failed to read object content: {exc}", status_code=500)
        return _stream(blob)

    return router


# ── Protected tier ────────────────────────────────────────────────

def protected_router(
    gateway: FirmwareGateway,
    guard: Callable[..., Awaitable[AccessClaims]],
    max_upload_bytes: int,
) -> APIRouter:
    """Firmware mutation; *guard* is built by :func:`charizhard.auth.require_access`."""
    router = APIRouter(tags=[AccessTier.PROTECTED.value])

    @router.post("/firmware/{name}", response_class=PlainTextResponse)
    async def post_firmware(name: str, request: Request, claims: AccessClaims = Depends(guard)):
        try:
            data, length = await spool_body(request.stream(), max_upload_bytes)
        except FirmwareTooLarge as exc:
            logger.warning("Upload of %s by %s rejected: %s", name, claims.subject, exc)
            return PlainTextResponse(str(exc), status_code=413)
        except ClientDisconnect:
            logger.info("Client disconnected during upload of %s; nothing written", name)
            return PlainTextResponse("Upload aborted", status_code=400)

        try:
            await gateway.upload(name, data, length)
        except BlobStoreError as exc:
            logger.error("Upload error for %s: %s", name, exc)
            return PlainTextResponse(f"Error uploading firmware {exc}", status_code=500)
        finally:
            data.close()
        logger.info("Firmware %s uploaded by %s", name, claims.subject)
        return "Firmware successfully uploaded !"

    @router.delete("/firmware/{name}", response_class=PlainTextResponse)
    async def delete_firmware(name: str, claims: AccessClaims = Depends(guard)):
        try:
            await gateway.delete(name)
        except BlobStoreError as exc:
            logger.error("Delete error for %s: %s", name, exc)
            return PlainTextResponse(f"Error deleting firmware {exc}", status_code=500)
        logger.info("Firmware %s deleted by %s", name, claims.subject)
        return "Firmware successfully deleted !"

    return router


# ── Config issuance (mTLS tier) ───────────────────────────────────

def config_router(registry: ClientConfigRegistry, tier: AccessTier = AccessTier.MUTUAL_TLS) -> APIRouter:
    router = APIRouter(tags=[tier.value])

    @router.get("/configwg")
    async def config_wg(request: Request):
        client_id = request.headers.get(CLIENT_ID_HEADER)
        if not client_id:
            logger.warning("Config request without %s header", CLIENT_ID_HEADER)
            return PlainTextResponse("Bad header", status_code=400)

        try:
            record = await registry.lookup(client_id)
        except ClientNotFound as exc:
            logger.info("%s", exc)
            return PlainTextResponse(str(exc), status_code=404)
        except (EmptyBucket, AmbiguousConfig) as exc:
            logger.error("Client config unavailable: %s", exc)
            return PlainTextResponse(str(exc), status_code=503)
        except MalformedJson as exc:
            logger.error("%s", exc)
            return PlainTextResponse("Client configuration is malformed", status_code=500)
        except BlobStoreError as exc:
            logger.error("Client config lookup failed: %s", exc)
            return PlainTextResponse(f"Error querying bucket {exc}", status_code=500)

        return Response(encode_client_record(record), media_type=FORM_MEDIA_TYPE)

    return router
