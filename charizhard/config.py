"""Runtime configuration for Charizhard OTA.

Everything is read from the environment once at startup::

    from charizhard.config import Settings
    settings = Settings.from_env()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

VERSION_ORDERS = ("lexicographic", "numeric")
STORE_BACKENDS = ("s3", "memory")
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


class ConfigError(Exception):
    """Raised when the environment holds an unusable configuration."""


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _choice(env: Mapping[str, str], name: str, default: str, choices: tuple[str, ...]) -> str:
    value = env.get(name, default).strip().lower()
    if value not in choices:
        raise ConfigError(f"{name} must be one of {list(choices)}, got {value!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Charizhard OTA settings, see :meth:`from_env` for the variable names."""

    # Storage
    store_backend: str = "s3"
    store_endpoint: str = "localhost:9000"
    store_access_key: str | None = None
    store_secret_key: str | None = None
    store_secure: bool = False
    store_timeout: int = 10
    firmware_bucket: str = "bin"
    config_bucket: str = "config-wg"
    config_strict: bool = False

    # Firmware
    version_order: str = "lexicographic"
    max_firmware_bytes: int = 32 * 1024 * 1024

    # Identity provider
    keycloak_url: str = "http://localhost:8080"
    keycloak_realm: str = "charizhard-ota"
    required_role: str = "admin"
    required_audience: str = "account"

    # Listeners
    http_host: str = "127.0.0.1"
    http_port: int = 8082
    https_host: str = "127.0.0.1"
    https_port: int = 8083
    tls_cert: str = "temp_certif/server.crt"
    tls_key: str = "temp_certif/server.key"
    tls_ca: str = "temp_certif/ca.crt"
    mtls: bool = True
    public_configwg: bool = False

    log_level: str = "INFO"

    @property
    def issuer(self) -> str:
        return f"{self.keycloak_url.rstrip('/')}/realms/{self.keycloak_realm}"

    @property
    def jwks_url(self) -> str:
        return f"{self.issuer}/protocol/openid-connect/certs"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Build settings from *env* (default: ``os.environ``)."""
        if env is None:
            env = os.environ
        max_bytes = _int(env, "CHARIZHARD_MAX_FIRMWARE_BYTES", cls.max_firmware_bytes)
        if max_bytes <= 0:
            raise ConfigError("CHARIZHARD_MAX_FIRMWARE_BYTES must be positive")
        timeout = _int(env, "CHARIZHARD_STORE_TIMEOUT", cls.store_timeout)
        if timeout <= 0:
            raise ConfigError("CHARIZHARD_STORE_TIMEOUT must be positive")
        return cls(
            store_backend=_choice(env, "CHARIZHARD_STORE", cls.store_backend, STORE_BACKENDS),
            store_endpoint=env.get("MINIO_ENDPOINT", cls.store_endpoint),
            store_access_key=env.get("MINIO_ACCESS_KEY") or None,
            store_secret_key=env.get("MINIO_SECRET_KEY") or None,
            store_secure=_flag(env, "MINIO_SECURE", cls.store_secure),
            store_timeout=timeout,
            firmware_bucket=env.get("CHARIZHARD_FIRMWARE_BUCKET", cls.firmware_bucket),
            config_bucket=env.get("CHARIZHARD_CONFIG_BUCKET", cls.config_bucket),
            config_strict=_flag(env, "CHARIZHARD_CONFIG_STRICT", cls.config_strict),
            version_order=_choice(env, "CHARIZHARD_VERSION_ORDER", cls.version_order, VERSION_ORDERS),
            max_firmware_bytes=max_bytes,
            keycloak_url=env.get("KEYCLOAK_URL", cls.keycloak_url),
            keycloak_realm=env.get("KEYCLOAK_REALM", cls.keycloak_realm),
            required_role=env.get("CHARIZHARD_REQUIRED_ROLE", cls.required_role),
            required_audience=env.get("CHARIZHARD_REQUIRED_AUDIENCE", cls.required_audience),
            http_host=env.get("CHARIZHARD_HTTP_HOST", cls.http_host),
            http_port=_int(env, "CHARIZHARD_HTTP_PORT", cls.http_port),
            https_host=env.get("CHARIZHARD_HTTPS_HOST", cls.https_host),
            https_port=_int(env, "CHARIZHARD_HTTPS_PORT", cls.https_port),
            tls_cert=env.get("CHARIZHARD_TLS_CERT", cls.tls_cert),
            tls_key=env.get("CHARIZHARD_TLS_KEY", cls.tls_key),
            tls_ca=env.get("CHARIZHARD_TLS_CA", cls.tls_ca),
            mtls=_flag(env, "CHARIZHARD_MTLS", cls.mtls),
            public_configwg=_flag(env, "CHARIZHARD_PUBLIC_CONFIGWG", cls.public_configwg),
            log_level=_choice(env, "CHARIZHARD_LOG_LEVEL", cls.log_level, LOG_LEVELS).upper(),
        )
