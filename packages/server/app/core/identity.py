"""
Identity provider (Auth0) access token verification.

Tokens must be RS256, signed by a key from the provider's JWKS, and carry the
configured issuer and audience. The key set is cached by ``kid`` for as long as
it stays valid; an unknown ``kid`` triggers a refetch, at most
``jwks_requests_per_minute`` times per minute.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx
import jwt
import structlog

from app.core.config import Settings
from app.core.errors import InvalidToken, TokenExpired

log = structlog.get_logger()

IDENTITY_ALGORITHM = "RS256"


@dataclass(frozen=True)
class IdentityClaims:
    """Decoded provider token claims."""

    subject: str
    issuer: str
    audience: list[str]
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None
    authorized_party: Optional[str] = None
    scope: Optional[str] = None
    email: Optional[str] = None
    email_verified: Optional[bool] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    organization_id: Optional[str] = None
    role: Optional[str] = None
    raw_claims: dict[str, Any] = field(default_factory=dict)


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> IdentityClaims: ...


class JWKSCache:
    """Signing keys by ``kid`` with a rate-limited refresh."""

    def __init__(
        self,
        jwks_url: str,
        *,
        requests_per_minute: int = 5,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.jwks_url = jwks_url
        self.requests_per_minute = requests_per_minute
        self._timeout = timeout
        self._transport = transport
        self._keys: dict[str, jwt.PyJWK] = {}
        self._fetches: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _fetch_allowed(self) -> bool:
        now = time.monotonic()
        while self._fetches and now - self._fetches[0] >= 60:
            self._fetches.popleft()
        return len(self._fetches) < self.requests_per_minute

    async def _fetch(self) -> None:
        self._fetches.append(time.monotonic())
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self.jwks_url)
                response.raise_for_status()
                data = response.json()
            jwk_set = jwt.PyJWKSet.from_dict(data)
        except (httpx.HTTPError, ValueError, jwt.PyJWTError) as exc:
            log.error("jwks.fetch_failed", jwks_url=self.jwks_url, error=str(exc))
            raise InvalidToken("Unable to retrieve signing keys")

        self._keys = {key.key_id: key for key in jwk_set.keys if key.key_id}
        log.info("jwks.refreshed", jwks_url=self.jwks_url, keys=len(self._keys))

    async def get_signing_key(self, kid: str) -> jwt.PyJWK:
        key = self._keys.get(kid)
        if key is not None:
            return key

        async with self._lock:
            key = self._keys.get(kid)
            if key is None and self._fetch_allowed():
                await self._fetch()
                key = self._keys.get(kid)

        if key is None:
            log.warning("jwks.unknown_kid", kid=kid)
            raise InvalidToken("Unable to find a signing key that matches the token")
        return key


class IdentityTokenVerifier:
    """Verifies bearer tokens issued by the identity provider."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self.issuer = settings.auth0_issuer
        self.audience = settings.auth0_audience
        self.claims_namespace = settings.auth0_claims_namespace
        self.keys = JWKSCache(
            settings.jwks_url,
            requests_per_minute=settings.jwks_requests_per_minute,
            timeout=settings.jwks_timeout_seconds,
            transport=transport,
        )

    async def verify(self, token: str) -> IdentityClaims:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError:
            raise InvalidToken("Malformed token")

        if header.get("alg") != IDENTITY_ALGORITHM:
            raise InvalidToken("Unsupported token algorithm")
        kid = header.get("kid")
        if not kid:
            raise InvalidToken("Token header missing 'kid'")

        signing_key = await self.keys.get_signing_key(kid)

        try:
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=[IDENTITY_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"require": ["sub", "exp", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired()
        except jwt.PyJWTError as exc:
            log.warning("identity_token.rejected", reason=type(exc).__name__)
            raise InvalidToken()

        return self._to_claims(claims)

    def _to_claims(self, claims: dict[str, Any]) -> IdentityClaims:
        audience = claims.get("aud")
        if isinstance(audience, str):
            audience = [audience]
        return IdentityClaims(
            subject=claims["sub"],
            issuer=claims["iss"],
            audience=list(audience or []),
            issued_at=claims.get("iat"),
            expires_at=claims.get("exp"),
            authorized_party=claims.get("azp"),
            scope=claims.get("scope"),
            email=claims.get("email"),
            email_verified=claims.get("email_verified"),
            name=claims.get("name"),
            picture=claims.get("picture"),
            organization_id=claims.get(f"{self.claims_namespace}organizationId"),
            role=claims.get(f"{self.claims_namespace}role"),
            raw_claims=claims,
        )
