"""
Authentication endpoints.

GET  /api/auth/login                — Identity provider login URL (public)
POST /api/auth/callback             — Provider callback (public, placeholder)
GET  /api/auth/profile              — Profile of the caller
GET  /api/auth/me                   — Alias of /profile
POST /api/auth/switch-organization  — Session token for another organization
POST /api/auth/refresh              — Renew a session token (public)
POST /api/auth/logout               — Stateless logout
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    AUTHENTICATED,
    AUTHENTICATED_WITHOUT_ORGANIZATION,
    PUBLIC,
    UserContext,
    get_session_tokens,
    require_policy,
)
from app.core.config import Settings, get_settings
from app.core.database import get_session
from app.core.responses import success
from app.core.tokens import SessionTokenIssuer
from app.services.auth import AuthService
from reservaplus_shared.schemas.auth import (
    CallbackRequest,
    LoginUrlResponse,
    RefreshTokenRequest,
    SwitchOrganizationRequest,
    TokenResponse,
    UserProfile,
)
from reservaplus_shared.schemas.common import APIResponse

router = APIRouter()


def get_auth_service(
    settings: Settings = Depends(get_settings),
    session_tokens: SessionTokenIssuer = Depends(get_session_tokens),
) -> AuthService:
    return AuthService(settings, session_tokens)


@router.get("/login", response_model=APIResponse[LoginUrlResponse])
async def login_url(
    request: Request,
    return_to: Optional[str] = Query(default=None, alias="returnTo"),
    _: None = Depends(require_policy(PUBLIC)),
    service: AuthService = Depends(get_auth_service),
):
    """Return the identity provider URL the frontend should redirect to."""
    return success(request, service.get_login_url(return_to))


@router.post("/callback", response_model=APIResponse[None])
async def callback(
    request: Request,
    body: CallbackRequest,
    _: None = Depends(require_policy(PUBLIC)),
    service: AuthService = Depends(get_auth_service),
):
    """Provider callback. The authorization code is not exchanged yet."""
    return success(request, message=service.handle_callback(body.code, body.state))


@router.get("/profile", response_model=APIResponse[UserProfile])
async def profile(
    request: Request,
    user: UserContext = Depends(require_policy(AUTHENTICATED_WITHOUT_ORGANIZATION)),
    session: AsyncSession = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
):
    """Full profile of the authenticated user, including all organizations."""
    return success(request, await service.get_profile(user, session))


@router.get("/me", response_model=APIResponse[UserProfile])
async def me(
    request: Request,
    user: UserContext = Depends(require_policy(AUTHENTICATED_WITHOUT_ORGANIZATION)),
    session: AsyncSession = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
):
    return success(request, await service.get_profile(user, session))


@router.post("/switch-organization", response_model=APIResponse[TokenResponse])
async def switch_organization(
    request: Request,
    body: SwitchOrganizationRequest,
    user: UserContext = Depends(require_policy(AUTHENTICATED)),
    session: AsyncSession = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
):
    """Issue a session token scoped to ``organizationId``."""
    result = await service.switch_organization(user, body.organization_id, session)
    return success(request, result, message="Organization switched successfully")


@router.post("/refresh", response_model=APIResponse[TokenResponse])
async def refresh(
    request: Request,
    body: RefreshTokenRequest,
    _: None = Depends(require_policy(PUBLIC)),
    session: AsyncSession = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
):
    return success(request, await service.refresh_token(body.refresh_token, session))


@router.post("/logout", response_model=APIResponse[None])
async def logout(
    request: Request,
    user: UserContext = Depends(require_policy(AUTHENTICATED)),
    service: AuthService = Depends(get_auth_service),
):
    return success(request, message=service.logout())
