"""User management schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from .common import CamelModel


class UserUpdateRequest(CamelModel):
    """Partial update. ``is_active`` is ignored when users update themselves."""
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None


class UserResponse(CamelModel):
    id: str
    email: str
    full_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime


class OrganizationContextResponse(CamelModel):
    organization_id: str
    role: str
    is_active: bool
