"""
Authentication and authorization for the gateway.

Each route declares a RoutePolicy. For every request, in order:

1. public routes pass without looking at the token;
2. otherwise a valid bearer token is required (provider RS256 token, provisioned
   into a local user, or a session HS256 token issued by this service);
3. the organization context is resolved, preferring the organization named by
   the token, and is mandatory unless the policy allows its absence;
4. if the policy names roles, the resolved role must be one of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import (
    AuthenticationRequired,
    Conflict,
    Forbidden,
    GatewayError,
    InvalidToken,
    OrganizationRequired,
)
from app.core.identity import IdentityClaims, IdentityTokenVerifier, TokenVerifier
from app.core.tokens import SESSION_ALGORITHM, SessionTokenIssuer
from app.models.user import User
from app.services import users as user_service
from app.services.organizations import resolve_context

log = structlog.get_logger()

bearer_header = APIKeyHeader(name="Authorization", auto_error=False)


@dataclass(frozen=True)
class RoutePolicy:
    public: bool = False
    allow_without_organization: bool = False
    required_roles: frozenset[str] = frozenset()


PUBLIC = RoutePolicy(public=True)
AUTHENTICATED = RoutePolicy()
AUTHENTICATED_WITHOUT_ORGANIZATION = RoutePolicy(allow_without_organization=True)


def roles(*names: str) -> RoutePolicy:
    return RoutePolicy(required_roles=frozenset(names))


@dataclass
class UserContext:
    """The authenticated caller plus the organization context of this request."""

    id: str
    auth0_user_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    organization_id: Optional[str] = None
    role: Optional[str] = None
    is_active: bool = True


def extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class Authenticator:
    """Turns a bearer token into a local user and the token's organization hint."""

    def __init__(self, identity_verifier: TokenVerifier, session_tokens: SessionTokenIssuer):
        self.identity_verifier = identity_verifier
        self.session_tokens = session_tokens

    async def authenticate(
        self, token: str, session: AsyncSession
    ) -> tuple[User, Optional[str]]:
        try:
            algorithm = jwt.get_unverified_header(token).get("alg")
        except jwt.PyJWTError:
            raise InvalidToken("Malformed token")

        if algorithm == SESSION_ALGORITHM:
            claims = self.session_tokens.verify(token)
            user = await user_service.find_by_subject(claims.subject, session)
            hint = claims.organization_id
        else:
            identity = await self.identity_verifier.verify(token)
            if not identity.email:
                raise InvalidToken("Invalid token payload")
            user = await self._provision(identity, session)
            hint = identity.organization_id

        if user is None:
            raise AuthenticationRequired("User not found")
        if not user.is_active:
            raise AuthenticationRequired("User account is inactive")
        return user, hint

    async def _provision(self, claims: IdentityClaims, session: AsyncSession) -> User:
        try:
            return await user_service.resolve_or_create(claims, session)
        except Conflict:
            # A concurrent request created the user first; treat as an update.
            existing = await user_service.find_by_subject(claims.subject, session)
            if existing is None:
                raise
            return await user_service.update_from_identity(existing.id, claims, session)


async def authorize(
    policy: RoutePolicy,
    authorization: Optional[str],
    authenticator: Authenticator,
    session: AsyncSession,
) -> Optional[UserContext]:
    """Evaluate ``policy`` for one request. Returns None for public routes."""
    if policy.public:
        return None

    token = extract_bearer(authorization)
    if not token:
        raise AuthenticationRequired()

    try:
        user, organization_hint = await authenticator.authenticate(token, session)
    except GatewayError as exc:
        log.info("auth.authentication_failed", reason=exc.code, detail=exc.message)
        raise AuthenticationRequired() from exc

    context = await resolve_context(user.id, session, organization_hint)
    if context is None and not policy.allow_without_organization:
        log.info("auth.organization_required", user_id=str(user.id), hint=organization_hint)
        raise OrganizationRequired()

    user_context = UserContext(
        id=str(user.id),
        auth0_user_id=user.auth0_user_id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        organization_id=context.organization_id if context else None,
        role=context.role if context else None,
        is_active=user.is_active,
    )

    if policy.required_roles and user_context.role not in policy.required_roles:
        raise Forbidden(policy.required_roles, user_context.role)

    return user_context


# ---------------------------------------------------------------------------
# FastAPI wiring
# ---------------------------------------------------------------------------

@lru_cache
def get_identity_verifier() -> IdentityTokenVerifier:
    """Process-wide verifier so the key set cache is shared across requests."""
    return IdentityTokenVerifier(get_settings())


@lru_cache
def get_session_tokens() -> SessionTokenIssuer:
    return SessionTokenIssuer(get_settings())


def get_authenticator(
    identity_verifier: TokenVerifier = Depends(get_identity_verifier),
    session_tokens: SessionTokenIssuer = Depends(get_session_tokens),
) -> Authenticator:
    return Authenticator(identity_verifier, session_tokens)


def require_policy(policy: RoutePolicy):
    """
    Factory for a dependency enforcing ``policy``.

    Usage:
        @router.get("/users")
        async def list_users(user: UserContext = Depends(require_policy(roles("owner", "admin")))):
            ...
    """

    async def policy_checker(
        request: Request,
        authorization: Optional[str] = Depends(bearer_header),
        authenticator: Authenticator = Depends(get_authenticator),
        session: AsyncSession = Depends(get_session),
    ) -> Optional[UserContext]:
        user = await authorize(policy, authorization, authenticator, session)
        request.state.user = user
        return user

    policy_checker.policy = policy
    return policy_checker


def require_roles(*names: str):
    return require_policy(roles(*names))
