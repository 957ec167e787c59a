"""Authentication-related Pydantic schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class DeviceInfo(BaseModel):
    """Client installation a session is bound to."""

    device_id: str
    platform: str
    device_name: Optional[str] = None
    client_version: Optional[str] = None

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class AuthMetadata(BaseModel):
    """Network attributes recorded on a session."""

    ip: Optional[str] = None
    user_agent: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class LoginRequest(BaseModel):
    """Credentials for signing in; exactly one of ``email`` or ``national_id``."""

    email: Optional[str] = None
    national_id: Optional[str] = None
    password: str
    device: DeviceInfo
    remember_me: bool = False

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None
    device_id: Optional[str] = None

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class AuthTokens(BaseModel):
    """Access and refresh token pair issued for a session."""

    session_id: uuid.UUID
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_token_expires_at: datetime
    refresh_token_expires_at: datetime

    model_config = ConfigDict(frozen=True)


class LoginResponse(BaseModel):
    user_id: uuid.UUID
    status: str
    avatar_id: Optional[uuid.UUID] = None
    tokens: AuthTokens

    model_config = ConfigDict(frozen=True)


class SessionRead(BaseModel):
    """Public view of a session, flagged when it is the caller's own."""

    id: uuid.UUID
    device_id: str
    device_name: Optional[str] = None
    platform: str
    client_version: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    remember_me: bool
    created_at: datetime
    last_seen_at: Optional[datetime] = None
    refresh_token_expires_at: datetime
    current: bool = False

    model_config = ConfigDict(from_attributes=True, frozen=True)


class SessionListResponse(BaseModel):
    sessions: list[SessionRead]

    model_config = ConfigDict(frozen=True)


class CurrentUserRead(BaseModel):
    id: uuid.UUID
    email: str
    national_id: str
    status: str

    model_config = ConfigDict(frozen=True)


class AvatarRead(BaseModel):
    id: uuid.UUID

    model_config = ConfigDict(frozen=True)


class CurrentUserResponse(BaseModel):
    user: CurrentUserRead
    avatar: Optional[AvatarRead] = None

    model_config = ConfigDict(frozen=True)


class PasswordChangeRequest(BaseModel):
    """Payload required to change a password."""

    current_password: str
    new_password: str

    model_config = ConfigDict(frozen=True)


class EmailChangeRequest(BaseModel):
    new_email: str

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class EmailChangeRequestResponse(BaseModel):
    sent: bool
    expires_at: datetime
    debug_token: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class EmailChangeConfirmRequest(BaseModel):
    token: str

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class EmailChangeConfirmResponse(BaseModel):
    user_id: uuid.UUID
    email: str

    model_config = ConfigDict(frozen=True)


__all__ = [
    "AuthMetadata",
    "AuthTokens",
    "AvatarRead",
    "CurrentUserRead",
    "CurrentUserResponse",
    "DeviceInfo",
    "EmailChangeConfirmRequest",
    "EmailChangeConfirmResponse",
    "EmailChangeRequest",
    "EmailChangeRequestResponse",
    "LoginRequest",
    "LoginResponse",
    "LogoutRequest",
    "PasswordChangeRequest",
    "RefreshRequest",
    "SessionListResponse",
    "SessionRead",
]
