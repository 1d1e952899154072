# Table models, imported here so SQLModel.metadata is populated.
from .base import SoftDeleteMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .organization_user import OrganizationUser  # noqa: F401
