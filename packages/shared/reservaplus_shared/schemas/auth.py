"""Authentication schemas: login URL, callback, organization switch, refresh, profile."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import UUID4, Field

from .common import CamelModel


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class CallbackRequest(CamelModel):
    code: str
    state: Optional[str] = None


class SwitchOrganizationRequest(CamelModel):
    organization_id: UUID4


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class LoginUrlResponse(CamelModel):
    login_url: str


class TokenResponse(CamelModel):
    """Freshly issued session token and its lifetime in seconds."""
    access_token: str
    expires_in: int


class OrganizationSummary(CamelModel):
    """A membership as seen from the user's side. Name, slug and industry may be blank."""
    id: str
    name: str = ""
    slug: str = ""
    industry_type: str = ""
    role: str
    is_active: bool


class UserProfile(CamelModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: str
    avatar_url: Optional[str] = None
    role: Optional[str] = None
    organization: Optional[OrganizationSummary] = None
    organizations: List[OrganizationSummary]
    last_login_at: Optional[datetime] = None
