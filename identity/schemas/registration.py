"""Pydantic schemas for the onboarding workflow."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from identity.schemas.auth import DeviceInfo


class EmailAvailabilityResponse(BaseModel):
    email: str
    available: bool

    model_config = ConfigDict(frozen=True)


class RegistrationRequest(BaseModel):
    """Incoming payload for starting a registration."""

    national_id: str
    email: str
    password: str
    display_name: str
    locale: Optional[str] = None
    timezone: Optional[str] = None
    accepted_terms_version: Optional[str] = None
    accepted_privacy_version: Optional[str] = None
    marketing_opt_in: bool = False

    model_config = ConfigDict(frozen=True)


class EmailVerificationInfo(BaseModel):
    sent: bool
    method: str = "link"
    expires_at: datetime

    model_config = ConfigDict(frozen=True)


class RegistrationResponse(BaseModel):
    """Outcome of a registration; stored verbatim for idempotent replays."""

    user_id: uuid.UUID
    status: str
    email_verification: EmailVerificationInfo
    debug_verification_token: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ResendActivationRequest(BaseModel):
    national_id: str
    email: str

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class ResendActivationResponse(BaseModel):
    sent: bool
    cooldown_seconds: int
    debug_verification_token: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class VerifyEmailRequest(BaseModel):
    token: str
    device: Optional[DeviceInfo] = None

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class SessionPair(BaseModel):
    access_token: str
    refresh_token: str
    expires_at: datetime

    model_config = ConfigDict(frozen=True)


class VerifyEmailResponse(BaseModel):
    user_id: uuid.UUID
    status: str
    avatar_id: Optional[uuid.UUID] = None
    session: SessionPair

    model_config = ConfigDict(frozen=True)


class ProfileUpdateRequest(BaseModel):
    """Partial profile update.

    Only fields present in the request body are applied; an explicit
    ``null`` clears the stored value.
    """

    photo_url: Optional[str] = None
    about: Optional[str] = None
    locale: Optional[str] = None
    timezone: Optional[str] = None
    display_name: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ProfileUpdateResponse(BaseModel):
    avatar_id: Optional[uuid.UUID] = None
    updated: list[str]

    model_config = ConfigDict(frozen=True)


class PasswordPolicyResponse(BaseModel):
    min_length: int
    require_upper: bool
    require_lower: bool
    require_digit: bool
    require_symbol: bool
    forbid_breached_top_n: bool

    model_config = ConfigDict(frozen=True)


class LimitsResponse(BaseModel):
    max_attempts_per_ip_per_hour: int
    max_resends_per_day: int
    email_token_ttl_minutes: int
    resend_cooldown_seconds: int

    model_config = ConfigDict(frozen=True)


class PasswordResetRequest(BaseModel):
    email: str

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class PasswordResetRequestResponse(BaseModel):
    sent: bool
    expires_at: datetime
    debug_token: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class PasswordResetConfirmRequest(BaseModel):
    token: str
    new_password: str

    model_config = ConfigDict(frozen=True)


class PasswordResetResponse(BaseModel):
    user_id: uuid.UUID
    sessions_revoked: int

    model_config = ConfigDict(frozen=True)


class VerificationStatus(BaseModel):
    required: bool
    resend_cooldown_seconds: int

    model_config = ConfigDict(frozen=True)


class RegistrationStatusResponse(BaseModel):
    email: str
    status: str
    verification: VerificationStatus

    model_config = ConfigDict(frozen=True)


__all__ = [
    "EmailAvailabilityResponse",
    "EmailVerificationInfo",
    "LimitsResponse",
    "PasswordPolicyResponse",
    "PasswordResetConfirmRequest",
    "PasswordResetRequest",
    "PasswordResetRequestResponse",
    "PasswordResetResponse",
    "ProfileUpdateRequest",
    "ProfileUpdateResponse",
    "RegistrationRequest",
    "RegistrationResponse",
    "RegistrationStatusResponse",
    "ResendActivationRequest",
    "ResendActivationResponse",
    "SessionPair",
    "VerificationStatus",
    "VerifyEmailRequest",
    "VerifyEmailResponse",
]
