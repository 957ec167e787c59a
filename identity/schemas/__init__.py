"""Application schema exports."""

from .auth import (
    AuthMetadata,
    AuthTokens,
    AvatarRead,
    CurrentUserRead,
    CurrentUserResponse,
    DeviceInfo,
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
    SessionRead,
)
from .errors import ErrorBody, ErrorResponse
from .registration import (
    EmailAvailabilityResponse,
    EmailVerificationInfo,
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
    SessionPair,
    VerificationStatus,
    VerifyEmailRequest,
    VerifyEmailResponse,
)

__all__ = [
    "AuthMetadata",
    "AuthTokens",
    "AvatarRead",
    "CurrentUserRead",
    "CurrentUserResponse",
    "DeviceInfo",
    "EmailAvailabilityResponse",
    "EmailChangeConfirmRequest",
    "EmailChangeConfirmResponse",
    "EmailChangeRequest",
    "EmailChangeRequestResponse",
    "EmailVerificationInfo",
    "ErrorBody",
    "ErrorResponse",
    "LimitsResponse",
    "LoginRequest",
    "LoginResponse",
    "LogoutRequest",
    "PasswordChangeRequest",
    "PasswordPolicyResponse",
    "PasswordResetConfirmRequest",
    "PasswordResetRequest",
    "PasswordResetRequestResponse",
    "PasswordResetResponse",
    "ProfileUpdateRequest",
    "ProfileUpdateResponse",
    "RefreshRequest",
    "RegistrationRequest",
    "RegistrationResponse",
    "RegistrationStatusResponse",
    "ResendActivationRequest",
    "ResendActivationResponse",
    "SessionListResponse",
    "SessionPair",
    "SessionRead",
    "VerificationStatus",
    "VerifyEmailRequest",
    "VerifyEmailResponse",
]
