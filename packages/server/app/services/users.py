"""
User directory and just-in-time provisioning from identity provider claims.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Conflict, NotFound
from app.core.identity import IdentityClaims
from app.models.base import utcnow
from app.models.organization_user import OrganizationUser
from app.models.user import User
from reservaplus_shared.schemas.users import UserResponse, UserUpdateRequest

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------

def extract_first_name(full_name: Optional[str]) -> Optional[str]:
    if not full_name:
        return None
    return full_name.split(" ")[0]


def extract_last_name(full_name: Optional[str]) -> Optional[str]:
    if not full_name:
        return None
    parts = full_name.split(" ")
    return " ".join(parts[1:]) if len(parts) > 1 else None


def full_name(first_name: Optional[str], last_name: Optional[str]) -> str:
    if first_name and last_name:
        return f"{first_name} {last_name}"
    return first_name or last_name or "User"


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=str(user.id),
        email=user.email,
        full_name=full_name(user.first_name, user.last_name),
        first_name=user.first_name,
        last_name=user.last_name,
        avatar_url=user.avatar_url,
        is_active=user.is_active,
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def find_by_subject(subject: str, session: AsyncSession) -> Optional[User]:
    """Find a user by identity provider subject id."""
    result = await session.execute(
        select(User).where(User.auth0_user_id == subject, User.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def find_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(
        select(User).where(User.email == email, User.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def get_user(user_id: uuid.UUID, session: AsyncSession) -> User:
    """Get a user by internal id; raises NotFound."""
    result = await session.execute(
        select(User).where(User.id == user_id, User.deleted_at.is_(None))
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user


# ---------------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------------

async def create_from_identity(claims: IdentityClaims, session: AsyncSession) -> User:
    """Create a local user from verified provider claims. Raises Conflict if it already exists."""
    if await find_by_subject(claims.subject, session):
        raise Conflict("User already exists")

    user = User(
        auth0_user_id=claims.subject,
        email=claims.email or "",
        first_name=extract_first_name(claims.name),
        last_name=extract_last_name(claims.name),
        avatar_url=claims.picture,
        last_login_at=utcnow(),
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        # Lost the insert race (or the email belongs to another subject).
        await session.rollback()
        log.warning("user.provision_conflict", subject=claims.subject)
        raise Conflict("User already exists")

    log.info("user.provisioned", user_id=str(user.id), subject=claims.subject)
    return user


async def update_from_identity(
    user_id: uuid.UUID, claims: IdentityClaims, session: AsyncSession
) -> User:
    """Sync profile fields from the latest claims and stamp the login time."""
    user = await get_user(user_id, session)

    user.email = claims.email or user.email
    user.first_name = extract_first_name(claims.name) or user.first_name
    user.last_name = extract_last_name(claims.name) or user.last_name
    user.avatar_url = claims.picture or user.avatar_url
    user.last_login_at = utcnow()

    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        # The new email already belongs to another user.
        await session.rollback()
        log.warning("user.sync_conflict", user_id=str(user_id), subject=claims.subject)
        raise Conflict("Email already in use by another user")
    return user


async def resolve_or_create(claims: IdentityClaims, session: AsyncSession) -> User:
    """Return the local user for ``claims.subject``, creating it on first login."""
    user = await find_by_subject(claims.subject, session)
    if user is None:
        return await create_from_identity(claims, session)
    return await update_from_identity(user.id, claims, session)


# ---------------------------------------------------------------------------
# Management
# ---------------------------------------------------------------------------

async def update_user(
    user_id: uuid.UUID,
    req: UserUpdateRequest,
    session: AsyncSession,
    *,
    allow_status_change: bool = False,
) -> User:
    """Apply a partial profile update. ``is_active`` only changes on the admin path."""
    user = await get_user(user_id, session)

    changes = req.model_dump(exclude_unset=True)
    if not allow_status_change:
        changes.pop("is_active", None)
    if changes.get("is_active", False) is None:
        changes.pop("is_active")
    for key, value in changes.items():
        setattr(user, key, value)

    session.add(user)
    await session.flush()
    log.info("user.updated", user_id=str(user_id), fields=sorted(changes))
    return user


async def list_org_users(
    organization_id: uuid.UUID,
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[User], int]:
    """Active members of an organization, newest users first, with the total count."""
    conditions = (
        OrganizationUser.organization_id == organization_id,
        OrganizationUser.is_active.is_(True),
        User.deleted_at.is_(None),
    )
    total = await session.scalar(
        select(func.count())
        .select_from(User)
        .join(OrganizationUser, OrganizationUser.user_id == User.id)
        .where(*conditions)
    )
    result = await session.execute(
        select(User)
        .join(OrganizationUser, OrganizationUser.user_id == User.id)
        .where(*conditions)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total or 0)
