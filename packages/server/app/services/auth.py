"""
Auth orchestration: login URL, profile, organization switching, refresh, logout.
"""

from __future__ import annotations

import uuid
from typing import Optional
from urllib.parse import quote, urlencode

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import UserContext
from app.core.config import Settings
from app.core.errors import InvalidToken, Unauthorized
from app.core.tokens import SessionClaims, SessionTokenIssuer
from app.services import users as user_service
from app.services.organizations import (
    OrganizationContext,
    list_user_organizations,
    resolve_context,
)
from reservaplus_shared.schemas.auth import (
    LoginUrlResponse,
    OrganizationSummary,
    TokenResponse,
    UserProfile,
)

log = structlog.get_logger()

LOGIN_SCOPE = "openid profile email"


def _summary(context: OrganizationContext) -> OrganizationSummary:
    return OrganizationSummary(
        id=context.organization_id,
        name=context.name,
        slug=context.slug,
        industry_type=context.industry_type,
        role=context.role,
        is_active=context.is_active,
    )


class AuthService:
    def __init__(self, settings: Settings, session_tokens: SessionTokenIssuer):
        self.settings = settings
        self.session_tokens = session_tokens

    def get_login_url(self, return_to: Optional[str] = None) -> LoginUrlResponse:
        """Build the provider authorization URL. ``return_to`` travels untouched as ``state``."""
        params = {
            "response_type": "code",
            "client_id": self.settings.auth0_client_id,
            "redirect_uri": self.settings.callback_url,
            "scope": LOGIN_SCOPE,
            "audience": self.settings.auth0_audience,
        }
        if return_to:
            params["state"] = return_to
        query = urlencode(params, quote_via=quote)
        return LoginUrlResponse(login_url=f"{self.settings.authorize_url}?{query}")

    def handle_callback(self, code: str, state: Optional[str] = None) -> str:
        """
        Placeholder. In production this exchanges the authorization code for
        tokens at the provider's /oauth/token endpoint.
        """
        log.info("auth.callback_received", has_state=state is not None)
        return "Auth0 callback endpoint - to be implemented"

    async def get_profile(self, user_context: UserContext, session: AsyncSession) -> UserProfile:
        user = await user_service.get_user(uuid.UUID(user_context.id), session)
        organizations = [_summary(ctx) for ctx in await list_user_organizations(user.id, session)]
        current = next(
            (org for org in organizations if org.id == user_context.organization_id), None
        )
        return UserProfile(
            id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user_service.full_name(user.first_name, user.last_name),
            avatar_url=user.avatar_url,
            role=user_context.role,
            organization=current,
            organizations=organizations,
            last_login_at=user.last_login_at,
        )

    async def switch_organization(
        self,
        user_context: UserContext,
        organization_id: uuid.UUID | str,
        session: AsyncSession,
    ) -> TokenResponse:
        """Issue a session token scoped to another organization the caller belongs to."""
        context = await resolve_context(uuid.UUID(user_context.id), session, organization_id)
        if context is None:
            raise Unauthorized("User does not belong to this organization")

        token = self.session_tokens.issue(
            SessionClaims(
                subject=user_context.auth0_user_id,
                email=user_context.email,
                organization_id=context.organization_id,
                role=context.role,
            )
        )
        log.info(
            "auth.organization_switched",
            user_id=user_context.id,
            org_id=context.organization_id,
            role=context.role,
        )
        return TokenResponse(access_token=token, expires_in=self.session_tokens.expires_in)

    async def refresh_token(self, token: str, session: AsyncSession) -> TokenResponse:
        """Renew a session token. Organization and role are carried over, not re-resolved."""
        try:
            claims = self.session_tokens.verify(token)
        except InvalidToken:
            raise Unauthorized("Invalid refresh token")

        user = await user_service.find_by_subject(claims.subject, session)
        if not user or not user.is_active:
            log.info("auth.refresh_rejected", subject=claims.subject)
            raise Unauthorized("Invalid refresh token")

        new_token = self.session_tokens.issue(claims)
        return TokenResponse(access_token=new_token, expires_in=self.session_tokens.expires_in)

    def logout(self) -> str:
        # Stateless bearer tokens: nothing to revoke server-side.
        return "Logged out successfully"
