"""Access control for Charizhard OTA.

Routes belong to one of three static tiers:

* ``PUBLIC``     : no identity required.
* ``PROTECTED``  : Keycloak bearer token with the required audience and role.
* ``MUTUAL_TLS`` : served only by the TLS listener, which demands a client
  certificate during the handshake; no token check on top.

Protected requests go ``token extracted -> validated (401 otherwise) ->
claims checked (403 otherwise) -> handler``.  The handler receives the
validated :class:`AccessClaims` as an ordinary dependency value.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from charizhard.config import Settings

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)
_CHALLENGE = {"WWW-Authenticate": "Bearer"}


class AccessTier(enum.Enum):
    PUBLIC = "public"
    PROTECTED = "protected"
    MUTUAL_TLS = "mtls"


class InvalidToken(Exception):
    """The bearer token could not be validated."""


class IdentityProviderUnavailable(Exception):
    """The signing keys could not be fetched from the identity provider."""


def _roles(access: Any) -> list[str]:
    """Role names from a Keycloak ``{"roles": [...]}`` claim; anything else has none."""
    if not isinstance(access, Mapping):
        return []
    roles = access.get("roles")
    if not isinstance(roles, list):
        return []
    return [role for role in roles if isinstance(role, str)]


@dataclass(frozen=True)
class AccessClaims:
    """The parts of a validated token that authorization looks at."""

    subject: str
    audiences: frozenset[str]
    roles: frozenset[str]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> AccessClaims:
        aud = payload.get("aud")
        if isinstance(aud, str):
            aud = [aud]
        elif not isinstance(aud, list):
            aud = []
        audiences = frozenset(a for a in aud if isinstance(a, str))

        roles: set[str] = set(_roles(payload.get("realm_access")))
        resource_access = payload.get("resource_access")
        if isinstance(resource_access, Mapping):
            for client in resource_access.values():
                roles.update(_roles(client))

        return cls(
            subject=str(payload.get("sub", "")),
            audiences=audiences,
            roles=frozenset(roles),
        )


@dataclass(frozen=True)
class AccessPolicy:
    """Required audience and role for the protected tier (case-sensitive)."""

    required_role: str = "admin"
    required_audience: str = "account"

    def denial(self, claims: AccessClaims) -> str | None:
        """Return why *claims* are insufficient, or *None* when they pass."""
        if self.required_audience not in claims.audiences:
            return f"Missing audience: {self.required_audience}"
        if self.required_role not in claims.roles:
            return f"Missing role: {self.required_role}"
        return None


class TokenValidator:
    """Validates Keycloak access tokens.

    Signing keys come from the realm's JWKS endpoint, or from a static *key*
    (PEM public key or shared secret) when one is given.  Audience is not
    checked here; that is an authorization decision made by
    :class:`AccessPolicy`.
    """

    def __init__(
        self,
        issuer: str,
        jwks_url: str | None = None,
        key: Any = None,
        algorithms: Sequence[str] = ("RS256",),
        leeway: int = 0,
    ) -> None:
        if key is None and jwks_url is None:
            raise ValueError("TokenValidator needs either jwks_url or key")
        self.issuer = issuer
        self.algorithms = list(algorithms)
        self.leeway = leeway
        self._key = key
        self._jwks = jwt.PyJWKClient(jwks_url) if key is None else None

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenValidator:
        return cls(issuer=settings.issuer, jwks_url=settings.jwks_url)

    async def validate(self, token: str) -> AccessClaims:
        """Return the claims of *token*.

        Raises :class:`InvalidToken` or :class:`IdentityProviderUnavailable`.
        """
        key = await self._signing_key(token)
        try:
            payload = jwt.decode(
                token,
                key=key,
                algorithms=self.algorithms,
                issuer=self.issuer,
                leeway=self.leeway,
                options={"verify_aud": False, "require": ["exp", "iss"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidToken("Token expired") from None
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(f"Invalid token: {exc}") from exc
        return AccessClaims.from_payload(payload)

    async def _signing_key(self, token: str) -> Any:
        if self._jwks is None:
            return self._key
        try:
            signing_key = await asyncio.to_thread(self._jwks.get_signing_key_from_jwt, token)
        except jwt.PyJWKClientConnectionError as exc:
            raise IdentityProviderUnavailable(str(exc)) from exc
        except (jwt.PyJWKClientError, jwt.DecodeError) as exc:
            raise InvalidToken(f"Invalid token: {exc}") from exc
        return signing_key.key


def require_access(
    validator: TokenValidator,
    policy: AccessPolicy,
) -> Callable[..., Awaitable[AccessClaims]]:
    """Build a FastAPI dependency guarding the protected tier.

    The request is stopped before the handler runs unless a valid token with
    the required audience and role is presented.
    """

    async def dependency(
        creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    ) -> AccessClaims:
        if creds is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers=_CHALLENGE,
            )
        try:
            claims = await validator.validate(creds.credentials)
        except InvalidToken as exc:
            logger.warning("Rejected token: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(exc),
                headers=_CHALLENGE,
            ) from None
        except IdentityProviderUnavailable as exc:
            logger.error("Identity provider unavailable: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Identity provider unavailable",
            ) from None

        reason = policy.denial(claims)
        if reason is not None:
            logger.warning("Forbidden for subject %s: %s", claims.subject, reason)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=reason)
        return claims

    return dependency
