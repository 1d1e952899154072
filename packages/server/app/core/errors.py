"""
Error taxonomy and the FastAPI handlers that render it.

Every failure leaves the service as the error envelope
``{"success": false, "error": {"code", "message"}, "timestamp"}``.
"""

from __future__ import annotations

from typing import Iterable, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse

from reservaplus_shared.schemas.common import ErrorDetail, ErrorResponse

log = structlog.get_logger()


class GatewayError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidToken(GatewayError):
    status_code = 401
    code = "INVALID_TOKEN"
    default_message = "Invalid token"


class TokenExpired(InvalidToken):
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class AuthenticationRequired(GatewayError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"
    default_message = "Authentication required"


class OrganizationRequired(GatewayError):
    status_code = 403
    code = "ORGANIZATION_REQUIRED"
    default_message = "Organization context required"


class Forbidden(GatewayError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Insufficient permissions"

    def __init__(
        self,
        required_roles: Iterable[str] = (),
        actual_role: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.required_roles = sorted(required_roles)
        self.actual_role = actual_role
        super().__init__(message)


class Unauthorized(GatewayError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized"


class NotFound(GatewayError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class Conflict(GatewayError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource already exists"


_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
}


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message))
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True),
        headers=headers,
    )


async def _gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    if isinstance(exc, Forbidden):
        log.warning(
            "auth.forbidden",
            required_roles=exc.required_roles,
            actual_role=exc.actual_role,
        )
    return error_response(exc.status_code, exc.code, exc.message)


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    return error_response(exc.status_code, code, str(exc.detail))


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return error_response(422, "VALIDATION_ERROR", message)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unhandled_error", error_type=type(exc).__name__)
    return error_response(500, GatewayError.code, GatewayError.default_message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatewayError, _gateway_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
