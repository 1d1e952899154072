"""
Shared fixtures: in-memory SQLite database, a fake identity provider key set
and a fully wired application with its dependencies pointed at both.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from jwt.algorithms import RSAAlgorithm
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.auth import get_identity_verifier, get_session_tokens
from app.core.config import Settings, get_settings
from app.core.database import get_session, init_db
from app.core.identity import IdentityTokenVerifier
from app.core.tokens import SessionTokenIssuer
from app.main import create_app
from app.models.organization import Organization
from app.models.organization_user import OrganizationUser
from app.models.user import User

AUTH0_DOMAIN = "reservaplus-test.us.auth0.com"
AUDIENCE = "https://api.reservaplus.test"
SIGNING_KID = "test-key-1"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        app_url="https://api.reservaplus.test",
        frontend_url="https://app.reservaplus.test",
        auth0_domain=AUTH0_DOMAIN,
        auth0_audience=AUDIENCE,
        auth0_client_id="client-abc123",
        jwt_secret="test-secret-for-session-tokens-0123456789abcdef",
        jwt_expires_in="24h",
        log_format="text",
    )


# ---------------------------------------------------------------------------
# Fake identity provider
# ---------------------------------------------------------------------------

def generate_rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_jwk(private_key: rsa.RSAPrivateKey, kid: str) -> dict[str, Any]:
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return jwk


class FakeJWKS:
    """Serves a JWKS document over httpx.MockTransport and counts fetches."""

    def __init__(self) -> None:
        self.keys: dict[str, rsa.RSAPrivateKey] = {}
        self.calls = 0
        self.status_code = 200

    def add_key(self, kid: str, private_key: rsa.RSAPrivateKey | None = None) -> rsa.RSAPrivateKey:
        self.keys[kid] = private_key or generate_rsa_key()
        return self.keys[kid]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "unavailable"})
        return httpx.Response(
            200, json={"keys": [public_jwk(key, kid) for kid, key in self.keys.items()]}
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    return generate_rsa_key()


@pytest.fixture
def jwks(signing_key) -> FakeJWKS:
    fake = FakeJWKS()
    fake.add_key(SIGNING_KID, signing_key)
    return fake


@pytest.fixture
def identity_verifier(settings, jwks) -> IdentityTokenVerifier:
    return IdentityTokenVerifier(settings, transport=jwks.transport)


@pytest.fixture
def session_tokens(settings) -> SessionTokenIssuer:
    return SessionTokenIssuer(settings)


def mint_identity_token(
    private_key: rsa.RSAPrivateKey,
    *,
    kid: Optional[str] = SIGNING_KID,
    subject: str = "auth0|user-1",
    email: Optional[str] = "ana@example.com",
    name: Optional[str] = "Ana Maria Rojas",
    picture: Optional[str] = "https://cdn.example.com/ana.png",
    organization_id: Optional[str] = None,
    issuer: str = f"https://{AUTH0_DOMAIN}/",
    audience: str = AUDIENCE,
    expires_in: timedelta = timedelta(hours=1),
    algorithm: str = "RS256",
    **extra: Any,
) -> str:
    """Sign a provider-style access token. Claims passed as None are omitted."""
    now = datetime.now(timezone.utc)
    claims = {
        "sub": subject,
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        "email": email,
        "name": name,
        "picture": picture,
        "https://reservaplus.com/organizationId": organization_id,
        **extra,
    }
    claims = {key: value for key, value in claims.items() if value is not None}
    headers = {"kid": kid} if kid else None
    return jwt.encode(claims, private_key, algorithm=algorithm, headers=headers)


@pytest.fixture
def provider_token(signing_key):
    """Factory for provider tokens signed with the published key."""

    def _mint(**kwargs: Any) -> str:
        return mint_identity_token(signing_key, **kwargs)

    return _mint


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


class Factory:
    """Seeds rows in their own committed transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _save(self, row):
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
        return row

    async def user(self, **kwargs: Any) -> User:
        suffix = uuid.uuid4().hex[:8]
        kwargs.setdefault("auth0_user_id", f"auth0|{suffix}")
        kwargs.setdefault("email", f"user-{suffix}@example.com")
        return await self._save(User(**kwargs))

    async def organization(self, **kwargs: Any) -> Organization:
        suffix = uuid.uuid4().hex[:8]
        kwargs.setdefault("name", f"Clinic {suffix}")
        kwargs.setdefault("slug", f"clinic-{suffix}")
        kwargs.setdefault("industry_type", "clinic")
        kwargs.setdefault("email", f"contact-{suffix}@example.com")
        return await self._save(Organization(**kwargs))

    async def membership(
        self, user: User, organization: Organization, role: str = "staff", **kwargs: Any
    ) -> OrganizationUser:
        return await self._save(
            OrganizationUser(user_id=user.id, organization_id=organization.id, role=role, **kwargs)
        )


@pytest.fixture
def factory(session_factory) -> Factory:
    return Factory(session_factory)


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

@pytest.fixture
def app(settings, session_factory, identity_verifier, session_tokens):
    application = create_app()

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_session] = override_session
    application.dependency_overrides[get_settings] = lambda: settings
    application.dependency_overrides[get_identity_verifier] = lambda: identity_verifier
    application.dependency_overrides[get_session_tokens] = lambda: session_tokens
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def member_token(factory: Factory, provider_token, role: str = "owner", **org_kwargs: Any):
    """A provider token for a user that already belongs to one organization."""
    suffix = uuid.uuid4().hex[:8]
    subject = f"auth0|{suffix}"
    email = f"{suffix}@example.com"
    user = await factory.user(auth0_user_id=subject, email=email)
    org = await factory.organization(**org_kwargs)
    await factory.membership(user, org, role=role)
    return provider_token(subject=subject, email=email), user, org
