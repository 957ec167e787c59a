"""Authentication API routes."""

import uuid
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status

from identity.api.dependencies import (
    get_auth_service,
    get_authenticated_context,
    get_request_context,
    presented_refresh_token,
    require_user_id,
)
from identity.api.dependencies.auth import REFRESH_COOKIE_NAME
from identity.api.rate_limit import ATTEMPTS_PER_IP, limiter
from identity.core.security import normalize_to_utc
from identity.schemas.auth import (
    AuthTokens,
    CurrentUserResponse,
    EmailChangeConfirmRequest,
    EmailChangeConfirmResponse,
    EmailChangeRequest,
    EmailChangeRequestResponse,
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    PasswordChangeRequest,
    RefreshRequest,
    SessionListResponse,
)
from identity.services.audit import AuditedAuthService, RequestContext

router = APIRouter(tags=["auth"])

AuthServiceDep = Annotated[AuditedAuthService, Depends(get_auth_service)]
ContextDep = Annotated[RequestContext, Depends(get_request_context)]
AuthenticatedContextDep = Annotated[RequestContext, Depends(get_authenticated_context)]


def _set_refresh_cookie(request: Request, response: Response, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=token,
        expires=normalize_to_utc(expires_at),
        httponly=True,
        secure=request.url.scheme == "https",
        samesite="lax",
        path="/api/v1/auth",
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(key=REFRESH_COOKIE_NAME, path="/api/v1/auth")


@router.post("/login", response_model=LoginResponse)
@limiter.limit(ATTEMPTS_PER_IP)
def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    service: AuthServiceDep,
    context: ContextDep,
) -> LoginResponse:
    """Authenticate by email or national id and open a session for the device."""

    result = service.login(context, payload)
    _set_refresh_cookie(request, response, result.tokens.refresh_token, result.tokens.refresh_token_expires_at)
    return result


@router.post("/refresh", response_model=AuthTokens)
def refresh(
    request: Request,
    response: Response,
    service: AuthServiceDep,
    context: ContextDep,
    payload: Annotated[Optional[RefreshRequest], Body()] = None,
) -> AuthTokens:
    """Rotate the refresh token taken from the body or the ``refreshToken`` cookie."""

    payload = payload or RefreshRequest()
    token = presented_refresh_token(request, payload.refresh_token)
    result = service.refresh(context, token, payload.device_id)
    _set_refresh_cookie(request, response, result.refresh_token, result.refresh_token_expires_at)
    return result


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    service: AuthServiceDep,
    context: ContextDep,
    payload: Annotated[Optional[LogoutRequest], Body()] = None,
) -> Response:
    token = presented_refresh_token(request, payload.refresh_token if payload else None)
    service.logout(context, token)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_refresh_cookie(response)
    return response


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
def logout_all(
    service: AuthServiceDep,
    context: AuthenticatedContextDep,
    user_id: Annotated[uuid.UUID, Depends(require_user_id)],
) -> Response:
    service.logout_all(context, user_id)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_refresh_cookie(response)
    return response


@router.get("/me", response_model=CurrentUserResponse)
def me(
    service: AuthServiceDep,
    context: AuthenticatedContextDep,
    user_id: Annotated[uuid.UUID, Depends(require_user_id)],
) -> CurrentUserResponse:
    return service.get_current_user(context, user_id)


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    request: Request,
    service: AuthServiceDep,
    context: AuthenticatedContextDep,
    user_id: Annotated[uuid.UUID, Depends(require_user_id)],
) -> SessionListResponse:
    """List the caller's sessions, flagging the one holding the presented refresh token."""

    return service.get_sessions(context, user_id, presented_refresh_token(request))


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_session(
    session_id: uuid.UUID,
    service: AuthServiceDep,
    context: AuthenticatedContextDep,
    user_id: Annotated[uuid.UUID, Depends(require_user_id)],
) -> Response:
    service.revoke_session(context, user_id, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/password/change", status_code=status.HTTP_204_NO_CONTENT)
def change_password(
    payload: PasswordChangeRequest,
    service: AuthServiceDep,
    context: AuthenticatedContextDep,
    user_id: Annotated[uuid.UUID, Depends(require_user_id)],
) -> Response:
    service.change_password(context, user_id, payload)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/email/change", response_model=EmailChangeRequestResponse, status_code=status.HTTP_202_ACCEPTED)
def request_email_change(
    payload: EmailChangeRequest,
    service: AuthServiceDep,
    context: AuthenticatedContextDep,
    user_id: Annotated[uuid.UUID, Depends(require_user_id)],
) -> EmailChangeRequestResponse:
    return service.request_email_change(context, user_id, payload.new_email)


@router.post("/email/confirm", response_model=EmailChangeConfirmResponse)
def confirm_email_change(
    payload: EmailChangeConfirmRequest,
    service: AuthServiceDep,
    context: ContextDep,
) -> EmailChangeConfirmResponse:
    return service.confirm_email_change(context, payload.token)


__all__ = ["router"]
