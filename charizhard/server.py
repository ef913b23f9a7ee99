"""Charizhard OTA: firmware and WireGuard config server.

Runs two listeners in one process, sharing a single blob store handle:

  HTTP  (CHARIZHARD_HTTP_PORT, default 8082)  : public + token-protected routes
  HTTPS (CHARIZHARD_HTTPS_PORT, default 8083) : /configwg behind mutual TLS

Start with::

    python -m charizhard
    # or
    charizhard-ota
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import sys

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from charizhard import __version__
from charizhard.auth import AccessPolicy, AccessTier, TokenValidator, require_access
from charizhard.config import ConfigError, Settings
from charizhard.firmware import FirmwareGateway
from charizhard.routes import config_router, protected_router, public_router
from charizhard.storage import BlobStore, get_store
from charizhard.wireguard import ClientConfigRegistry

logger = logging.getLogger(__name__)


async def not_found(request: Request, exc: Exception) -> PlainTextResponse:
    return PlainTextResponse("Not Found", status_code=404)


def _registry(settings: Settings, store: BlobStore) -> ClientConfigRegistry:
    return ClientConfigRegistry(store, bucket=settings.config_bucket, strict=settings.config_strict)


# ──────────────────────────────────────────────────────────────────
# Applications
# ──────────────────────────────────────────────────────────────────

def create_http_app(settings: Settings, store: BlobStore, validator: TokenValidator) -> FastAPI:
    """Plaintext application: public and protected tiers."""
    app = FastAPI(title="Charizhard OTA", version=__version__)
    gateway = FirmwareGateway(store, bucket=settings.firmware_bucket, order=settings.version_order)
    guard = require_access(
        validator,
        AccessPolicy(required_role=settings.required_role, required_audience=settings.required_audience),
    )

    app.include_router(public_router(gateway))
    app.include_router(protected_router(gateway, guard, settings.max_firmware_bytes))
    if settings.public_configwg:
        logger.warning("/configwg is exposed on the plaintext listener")
        app.include_router(config_router(_registry(settings, store), tier=AccessTier.PUBLIC))
    app.add_exception_handler(404, not_found)
    return app


def create_tls_app(settings: Settings, store: BlobStore) -> FastAPI:
    """TLS application: the config issuance endpoint only."""
    app = FastAPI(title="Charizhard OTA (mTLS)", version=__version__)
    app.include_router(config_router(_registry(settings, store)))
    app.add_exception_handler(404, not_found)
    return app


# ──────────────────────────────────────────────────────────────────
# Listeners
# ──────────────────────────────────────────────────────────────────

def build_servers(settings: Settings, store: BlobStore, validator: TokenValidator) -> list[uvicorn.Server]:
    """Create both uvicorn servers and load their configs.

    Loading builds the TLS context, so an unreadable certificate or key fails
    here, before anything binds.
    """
    http_config = uvicorn.Config(
        create_http_app(settings, store, validator),
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
    )
    tls_config = uvicorn.Config(
        create_tls_app(settings, store),
        host=settings.https_host,
        port=settings.https_port,
        log_level=settings.log_level.lower(),
        ssl_certfile=settings.tls_cert,
        ssl_keyfile=settings.tls_key,
        ssl_ca_certs=settings.tls_ca if settings.mtls else None,
        ssl_cert_reqs=ssl.CERT_REQUIRED if settings.mtls else ssl.CERT_NONE,
    )
    http_config.load()
    tls_config.load()
    return [uvicorn.Server(http_config), uvicorn.Server(tls_config)]


async def serve(servers: list[uvicorn.Server]) -> None:
    """Run *servers* concurrently; when one stops, stop the others."""
    tasks = [asyncio.create_task(server.serve()) for server in servers]
    done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    for server in servers:
        server.should_exit = True
    if pending:
        await asyncio.gather(*pending)
    for task in done:
        task.result()


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main() -> None:
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(2)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        store = get_store(settings)
    except ConfigError as exc:
        logger.critical("Blob store: %s", exc)
        sys.exit(2)

    try:
        servers = build_servers(settings, store, TokenValidator.from_settings(settings))
    except (OSError, ssl.SSLError) as exc:
        logger.critical("Cannot load TLS certificate/key: %s", exc)
        sys.exit(2)

    logger.info("HTTP listening on %s:%d", settings.http_host, settings.http_port)
    logger.info(
        "HTTPS listening on %s:%d (client certificates %s)",
        settings.https_host, settings.https_port, "required" if settings.mtls else "not required",
    )
    asyncio.run(serve(servers))


if __name__ == "__main__":
    main()
