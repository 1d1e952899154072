"""
User management endpoints (scoped to the caller's current organization).

GET  /api/users                         — List organization members
GET  /api/users/me                      — Caller's user record
PUT  /api/users/me                      — Update own profile
GET  /api/users/{userId}                — Get a member
PUT  /api/users/{userId}                — Update a member
GET  /api/users/{userId}/organizations  — A user's memberships
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AUTHENTICATED, UserContext, require_policy, require_roles
from app.core.database import get_session
from app.core.errors import NotFound
from app.core.responses import paginated, success
from app.services import users as user_service
from app.services.organizations import belongs_to_organization, list_user_organizations
from reservaplus_shared.schemas.common import APIResponse, PaginatedResponse, Role
from reservaplus_shared.schemas.users import (
    OrganizationContextResponse,
    UserResponse,
    UserUpdateRequest,
)

router = APIRouter()

MANAGERS = (Role.OWNER.value, Role.ADMIN.value, Role.MANAGER.value)
ADMINS = (Role.OWNER.value, Role.ADMIN.value)


async def _member_or_404(user_id: uuid.UUID, caller: UserContext, session: AsyncSession) -> None:
    if not await belongs_to_organization(user_id, caller.organization_id, session):
        raise NotFound("User not found in this organization")


@router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    caller: UserContext = Depends(require_roles(*MANAGERS)),
    session: AsyncSession = Depends(get_session),
):
    """Paginated members of the caller's current organization."""
    users, total = await user_service.list_org_users(
        uuid.UUID(caller.organization_id), session, page=page, limit=limit
    )
    items = [user_service.to_user_response(user) for user in users]
    return paginated(request, items, page=page, limit=limit, total=total)


@router.get("/me", response_model=APIResponse[UserResponse])
async def get_me(
    request: Request,
    caller: UserContext = Depends(require_policy(AUTHENTICATED)),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.get_user(uuid.UUID(caller.id), session)
    return success(request, user_service.to_user_response(user))


@router.put("/me", response_model=APIResponse[UserResponse])
async def update_me(
    request: Request,
    body: UserUpdateRequest,
    caller: UserContext = Depends(require_policy(AUTHENTICATED)),
    session: AsyncSession = Depends(get_session),
):
    """Update own profile. The active flag cannot be changed this way."""
    user = await user_service.update_user(uuid.UUID(caller.id), body, session)
    return success(request, user_service.to_user_response(user), message="Profile updated")


@router.get("/{userId}", response_model=APIResponse[UserResponse])
async def get_user(
    request: Request,
    userId: uuid.UUID,
    caller: UserContext = Depends(require_roles(*MANAGERS)),
    session: AsyncSession = Depends(get_session),
):
    await _member_or_404(userId, caller, session)
    user = await user_service.get_user(userId, session)
    return success(request, user_service.to_user_response(user))


@router.put("/{userId}", response_model=APIResponse[UserResponse])
async def update_user(
    request: Request,
    userId: uuid.UUID,
    body: UserUpdateRequest,
    caller: UserContext = Depends(require_roles(*ADMINS)),
    session: AsyncSession = Depends(get_session),
):
    """Update a member of the caller's organization, including the active flag."""
    await _member_or_404(userId, caller, session)
    user = await user_service.update_user(userId, body, session, allow_status_change=True)
    return success(request, user_service.to_user_response(user), message="User updated")


@router.get("/{userId}/organizations", response_model=APIResponse[list[OrganizationContextResponse]])
async def get_user_organizations(
    request: Request,
    userId: uuid.UUID,
    caller: UserContext = Depends(require_roles(*ADMINS)),
    session: AsyncSession = Depends(get_session),
):
    contexts = await list_user_organizations(userId, session)
    return success(
        request,
        [
            OrganizationContextResponse(
                organization_id=ctx.organization_id, role=ctx.role, is_active=ctx.is_active
            )
            for ctx in contexts
        ],
    )
