from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for wire models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Role(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    PROFESSIONAL = "professional"
    RECEPTIONIST = "receptionist"


class IndustryType(str, Enum):
    SALON = "salon"
    CLINIC = "clinic"
    FITNESS = "fitness"
    SPA = "spa"
    CONSULTING = "consulting"


class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELED = "canceled"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = -(-total // limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class APIResponse(CamelModel, Generic[T]):
    """Uniform success envelope."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)
    request_id: str


class PaginatedResponse(APIResponse[list[T]], Generic[T]):
    pagination: Pagination


class ErrorDetail(CamelModel):
    code: str
    message: str


class ErrorResponse(CamelModel):
    success: bool = False
    error: ErrorDetail
    timestamp: str = Field(default_factory=utc_timestamp)
