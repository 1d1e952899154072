"""Organization membership (join table carrying the per-organization role)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, utcnow


class OrganizationUser(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organization_users"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "user_id", name="uq_organization_users_org_user"),
    )

    organization_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    user_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
        )
    )
    role: str = Field(nullable=False, max_length=50)  # owner | admin | manager | staff | professional | receptionist
    is_active: bool = Field(default=True, nullable=False)
    invited_by: Optional[uuid.UUID] = None
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
