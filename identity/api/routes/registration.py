"""Registration and account recovery API routes."""

import uuid
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status

from identity.api.dependencies import (
    get_authenticated_context,
    get_registration_service,
    get_request_context,
    require_user_id,
)
from identity.api.rate_limit import ATTEMPTS_PER_IP, limiter
from identity.schemas.registration import (
    EmailAvailabilityResponse,
    LimitsResponse,
    PasswordPolicyResponse,
    PasswordResetConfirmRequest,
    PasswordResetRequest,
    PasswordResetRequestResponse,
    PasswordResetResponse,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    RegistrationRequest,
    RegistrationResponse,
    RegistrationStatusResponse,
    ResendActivationRequest,
    ResendActivationResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from identity.services.audit import AuditedRegistrationService, RequestContext
from identity.services.registration import ProfileUpdate

router = APIRouter(tags=["registration"])

RegistrationServiceDep = Annotated[AuditedRegistrationService, Depends(get_registration_service)]
ContextDep = Annotated[RequestContext, Depends(get_request_context)]


@router.get("/email-availability", response_model=EmailAvailabilityResponse)
def check_email_availability(
    email: Annotated[str, Query()],
    service: RegistrationServiceDep,
    context: ContextDep,
) -> EmailAvailabilityResponse:
    return service.check_email_availability(context, email)


@router.post("/start", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(ATTEMPTS_PER_IP)
def start_registration(
    request: Request,
    payload: RegistrationRequest,
    service: RegistrationServiceDep,
    context: ContextDep,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
) -> RegistrationResponse:
    """Create a pending account and email the activation link.

    Retrying with the same ``Idempotency-Key`` returns the original response.
    """

    return service.start_registration(context, payload, idempotency_key)


@router.post("/resend-email", response_model=ResendActivationResponse)
def resend_activation_email(
    payload: ResendActivationRequest,
    service: RegistrationServiceDep,
    context: ContextDep,
) -> ResendActivationResponse:
    return service.resend_activation_email(context, payload.national_id, payload.email)


@router.post("/verify-email", response_model=VerifyEmailResponse)
def verify_email(
    payload: VerifyEmailRequest,
    service: RegistrationServiceDep,
    context: ContextDep,
) -> VerifyEmailResponse:
    return service.verify_email(context, payload.token, payload.device)


@router.patch("/profile", response_model=ProfileUpdateResponse)
def complete_profile(
    payload: ProfileUpdateRequest,
    service: RegistrationServiceDep,
    context: Annotated[RequestContext, Depends(get_authenticated_context)],
    user_id: Annotated[uuid.UUID, Depends(require_user_id)],
) -> ProfileUpdateResponse:
    """Apply only the profile fields present in the body; ``null`` clears a field."""

    return service.complete_profile(context, user_id, ProfileUpdate.from_request(payload))


@router.get("/password-policy", response_model=PasswordPolicyResponse)
def get_password_policy(service: RegistrationServiceDep, context: ContextDep) -> PasswordPolicyResponse:
    return service.get_password_policy(context)


@router.get("/limits", response_model=LimitsResponse)
def get_limits(service: RegistrationServiceDep, context: ContextDep) -> LimitsResponse:
    return service.get_limits(context)


@router.post("/password/forgot", response_model=PasswordResetRequestResponse, status_code=status.HTTP_202_ACCEPTED)
def request_password_reset(
    payload: PasswordResetRequest,
    service: RegistrationServiceDep,
    context: ContextDep,
) -> PasswordResetRequestResponse:
    return service.request_password_reset(context, payload.email)


@router.post("/password/reset", response_model=PasswordResetResponse)
def reset_password(
    payload: PasswordResetConfirmRequest,
    service: RegistrationServiceDep,
    context: ContextDep,
) -> PasswordResetResponse:
    return service.reset_password(context, payload.token, payload.new_password)


@router.get("/status", response_model=RegistrationStatusResponse)
def get_registration_status(
    email: Annotated[str, Query()],
    service: RegistrationServiceDep,
    context: ContextDep,
) -> RegistrationStatusResponse:
    return service.get_registration_status(context, email)


__all__ = ["router"]
