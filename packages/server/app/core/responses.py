"""Success envelope helpers."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Request

from app.core.middleware import new_request_id
from reservaplus_shared.schemas.common import APIResponse, Pagination, PaginatedResponse


def request_id_of(request: Request) -> str:
    return getattr(request.state, "request_id", None) or new_request_id()


def success(request: Request, data: Any = None, message: Optional[str] = None) -> APIResponse:
    return APIResponse(data=data, message=message, request_id=request_id_of(request))


def paginated(
    request: Request, items: list[Any], *, page: int, limit: int, total: int
) -> PaginatedResponse:
    return PaginatedResponse(
        data=items,
        pagination=Pagination.build(page, limit, total),
        request_id=request_id_of(request),
    )
