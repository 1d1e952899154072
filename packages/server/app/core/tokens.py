"""
Session tokens: internally signed JWTs carrying subject, email, organization and role.

Session tokens are HMAC-signed (HS256) with the service secret and stamped with the
service issuer. Provider tokens are RS256 and verified elsewhere; neither side
accepts the other's algorithm.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog

from app.core.config import Settings
from app.core.errors import InvalidToken, TokenExpired

log = structlog.get_logger()

SESSION_ALGORITHM = "HS256"
DEFAULT_EXPIRES_IN_SECONDS = 3600

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([hm])\s*$")
_UNIT_SECONDS = {"h": 3600, "m": 60}


def parse_expires_in(value: Optional[str]) -> int:
    """Convert ``"24h"`` / ``"30m"`` into seconds; anything else is one hour."""
    if not value:
        return DEFAULT_EXPIRES_IN_SECONDS
    match = _DURATION_RE.match(value)
    if not match:
        return DEFAULT_EXPIRES_IN_SECONDS
    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]


@dataclass(frozen=True)
class SessionClaims:
    subject: str
    email: Optional[str] = None
    organization_id: Optional[str] = None
    role: Optional[str] = None


class SessionTokenIssuer:
    """Issues and verifies session tokens."""

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret
        self._issuer = settings.session_token_issuer
        self.expires_in = parse_expires_in(settings.jwt_expires_in)

    def issue(self, claims: SessionClaims, *, expires_delta: timedelta | None = None) -> str:
        if not claims.subject:
            raise ValueError("Session tokens require a subject")
        now = datetime.now(timezone.utc)
        payload = {
            "sub": claims.subject,
            "email": claims.email,
            "organizationId": claims.organization_id,
            "role": claims.role,
            "iss": self._issuer,
            "iat": now,
            "exp": now + (expires_delta or timedelta(seconds=self.expires_in)),
        }
        return jwt.encode(payload, self._secret, algorithm=SESSION_ALGORITHM)

    def verify(self, token: str) -> SessionClaims:
        """Decode and verify a session token. Raises InvalidToken / TokenExpired."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[SESSION_ALGORITHM],
                issuer=self._issuer,
                options={"require": ["sub", "exp", "iat", "iss"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpired("Session token has expired")
        except jwt.PyJWTError as exc:
            log.debug("session_token.rejected", reason=type(exc).__name__)
            raise InvalidToken("Invalid session token")

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidToken("Invalid session token")

        return SessionClaims(
            subject=subject,
            email=payload.get("email"),
            organization_id=payload.get("organizationId"),
            role=payload.get("role"),
        )
