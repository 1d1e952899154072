"""Organization model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import SoftDeleteMixin, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, SoftDeleteMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, max_length=255)
    slug: str = Field(unique=True, nullable=False, index=True, max_length=100)
    auth0_organization_id: Optional[str] = None
    industry_type: str = Field(nullable=False, max_length=50)  # salon | clinic | fitness | spa | consulting
    email: str = Field(nullable=False, max_length=255)
    phone: Optional[str] = None
    address: Optional[str] = None
    timezone: str = Field(default="America/Santiago", nullable=False)
    subscription_status: str = Field(default="trial", nullable=False)
