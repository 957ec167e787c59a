"""Translate engine failures into the JSON error envelope."""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from identity.schemas.errors import ErrorBody, ErrorResponse
from identity.services.errors import (
    ConflictError,
    DeviceMismatchError,
    ForbiddenError,
    IdentityError,
    InvalidRefreshTokenError,
    InvalidTokenError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Request-ID"

# Most specific first.
_STATUS_BY_KIND: tuple[tuple[type[IdentityError], int], ...] = (
    (DeviceMismatchError, status.HTTP_423_LOCKED),
    (InvalidRefreshTokenError, status.HTTP_401_UNAUTHORIZED),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (RateLimitedError, status.HTTP_429_TOO_MANY_REQUESTS),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTokenError, status.HTTP_400_BAD_REQUEST),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
)


def status_for(exc: IdentityError) -> int:
    for kind, status_code in _STATUS_BY_KIND:
        if isinstance(exc, kind):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def _trace_id(request: Request) -> str:
    return request.headers.get(TRACE_HEADER) or uuid.uuid4().hex


def _envelope(code: str, message: str, details: dict, trace_id: str) -> dict:
    body = ErrorResponse(error=ErrorBody(code=code, message=message, details=details, trace_id=trace_id))
    return body.model_dump(mode="json")


async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    status_code = status_for(exc)
    trace_id = _trace_id(request)
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after_seconds)
    if isinstance(exc, UnauthorizedError):
        headers["WWW-Authenticate"] = "Bearer"

    logger.info(
        "Request failed with %s",
        exc.code,
        extra={"status_code": status_code, "path": request.url.path, "trace_id": trace_id},
    )
    return JSONResponse(
        status_code=status_code,
        content=_envelope(exc.code, exc.message, exc.details, trace_id),
        headers=headers or None,
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            ValidationError.code,
            ValidationError.default_message,
            {"errors": errors},
            _trace_id(request),
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IdentityError, identity_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)


__all__ = ["register_exception_handlers", "status_for"]
