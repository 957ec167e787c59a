"""Authentication dependencies for API routes."""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from identity.api.dependencies.services import get_signer
from identity.core.security import AccessTokenSigner
from identity.services.audit import RequestContext
from identity.services.errors import UnauthorizedError

REFRESH_COOKIE_NAME = "refreshToken"
REFRESH_TOKEN_HEADER = "X-Refresh-Token"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def require_user_id(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    signer: Annotated[AccessTokenSigner, Depends(get_signer)],
) -> uuid.UUID:
    """Validate a bearer token and return the subject's user id."""

    if not token:
        raise UnauthorizedError()
    payload = signer.verify(token)
    if payload is None:
        raise UnauthorizedError("Could not validate credentials.")

    subject = payload.get("sub")
    if subject is None:
        raise UnauthorizedError("Could not validate credentials.")
    try:
        return uuid.UUID(str(subject))
    except ValueError as exc:
        raise UnauthorizedError("Could not validate credentials.") from exc


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        trace_id=request.headers.get("x-request-id"),
    )


def get_authenticated_context(
    context: Annotated[RequestContext, Depends(get_request_context)],
    user_id: Annotated[uuid.UUID, Depends(require_user_id)],
) -> RequestContext:
    return replace(context, actor_id=user_id)


def presented_refresh_token(request: Request, body_token: str | None = None) -> str | None:
    """Refresh token from the request body, else the header, else the cookie."""

    return body_token or request.headers.get(REFRESH_TOKEN_HEADER) or request.cookies.get(REFRESH_COOKIE_NAME)


__all__ = [
    "REFRESH_COOKIE_NAME",
    "get_authenticated_context",
    "get_request_context",
    "oauth2_scheme",
    "presented_refresh_token",
    "require_user_id",
]
