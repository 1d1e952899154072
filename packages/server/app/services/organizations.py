"""
Organization context: which organization and role apply to a user's request.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFound
from app.models.organization import Organization
from app.models.organization_user import OrganizationUser
from app.services.users import find_by_email
from reservaplus_shared.schemas.common import IndustryType, Role

log = structlog.get_logger()


@dataclass(frozen=True)
class OrganizationContext:
    organization_id: str
    role: str
    is_active: bool
    name: str = ""
    slug: str = ""
    industry_type: str = ""


def _as_uuid(value: uuid.UUID | str) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


async def resolve_context(
    user_id: uuid.UUID,
    session: AsyncSession,
    preferred_organization_id: uuid.UUID | str | None = None,
) -> Optional[OrganizationContext]:
    """
    Pick the active membership that applies to this user.

    With a preferred organization the result is that organization's membership or
    None, never another organization. Without one, the most recently joined
    membership wins.
    """
    query = (
        select(OrganizationUser, Organization)
        .join(Organization, Organization.id == OrganizationUser.organization_id)
        .where(
            OrganizationUser.user_id == user_id,
            OrganizationUser.is_active.is_(True),
            Organization.deleted_at.is_(None),
        )
    )
    if preferred_organization_id:
        org_id = _as_uuid(preferred_organization_id)
        if org_id is None:
            return None
        query = query.where(OrganizationUser.organization_id == org_id)

    query = query.order_by(OrganizationUser.joined_at.desc(), OrganizationUser.created_at.desc())
    result = await session.execute(query.limit(1))
    row = result.first()
    if not row:
        return None

    membership, org = row
    return OrganizationContext(
        organization_id=str(membership.organization_id),
        role=membership.role,
        is_active=membership.is_active,
        name=org.name,
        slug=org.slug,
        industry_type=org.industry_type,
    )


async def list_user_organizations(
    user_id: uuid.UUID, session: AsyncSession
) -> list[OrganizationContext]:
    """All active memberships of a user, most recently joined first."""
    result = await session.execute(
        select(OrganizationUser, Organization)
        .outerjoin(Organization, Organization.id == OrganizationUser.organization_id)
        .where(
            OrganizationUser.user_id == user_id,
            OrganizationUser.is_active.is_(True),
            Organization.deleted_at.is_(None),
        )
        .order_by(OrganizationUser.joined_at.desc(), OrganizationUser.created_at.desc())
    )
    return [
        OrganizationContext(
            organization_id=str(membership.organization_id),
            role=membership.role,
            is_active=membership.is_active,
            name=org.name if org else "",
            slug=org.slug if org else "",
            industry_type=org.industry_type if org else "",
        )
        for membership, org in result.all()
    ]


async def belongs_to_organization(
    user_id: uuid.UUID, organization_id: uuid.UUID | str, session: AsyncSession
) -> bool:
    return await resolve_context(user_id, session, organization_id) is not None


async def grant_membership(
    email: str,
    org_slug: str,
    session: AsyncSession,
    *,
    org_name: Optional[str] = None,
    industry_type: IndustryType = IndustryType.CLINIC,
    role: Role = Role.OWNER,
) -> OrganizationUser:
    """Ensure ``org_slug`` exists and that the user with ``email`` holds ``role`` in it."""
    user = await find_by_email(email, session)
    if not user:
        raise NotFound(f"No user with email {email}; log in once to provision it")

    result = await session.execute(select(Organization).where(Organization.slug == org_slug))
    org = result.scalar_one_or_none()
    if not org:
        org = Organization(
            name=org_name or org_slug,
            slug=org_slug,
            industry_type=industry_type.value,
            email=email,
        )
        session.add(org)
        await session.flush()
        log.info("org.created", org_id=str(org.id), slug=org_slug)

    result = await session.execute(
        select(OrganizationUser).where(
            OrganizationUser.organization_id == org.id,
            OrganizationUser.user_id == user.id,
        )
    )
    membership = result.scalar_one_or_none()
    if membership:
        membership.role = role.value
        membership.is_active = True
    else:
        membership = OrganizationUser(
            organization_id=org.id,
            user_id=user.id,
            role=role.value,
        )
    session.add(membership)
    await session.flush()

    log.info(
        "membership.granted",
        user_id=str(user.id),
        org_id=str(org.id),
        role=role.value,
    )
    return membership
