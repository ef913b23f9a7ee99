"""Charizhard OTA: firmware distribution and WireGuard config issuance.

Quickstart::

    from charizhard.config import Settings
    from charizhard.storage import get_store
    from charizhard.firmware import FirmwareGateway

    settings = Settings.from_env()
    gateway = FirmwareGateway(get_store(settings), bucket=settings.firmware_bucket)
    manifest = await gateway.manifest()
"""

__version__ = "1.0.0"
