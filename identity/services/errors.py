"""Typed failures returned by the identity engine.

Every expected failure is an :class:`IdentityError` subclass grouped by kind;
the HTTP layer maps kinds to status codes. Anything else propagates as an
unexpected error.
"""

from __future__ import annotations

from typing import Any


class IdentityError(Exception):
    """Base class for expected, caller-visible failures."""

    code: str = "identity_error"
    default_message: str = "Identity operation failed."

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)


# Kinds


class ValidationError(IdentityError):
    code = "invalid_payload"
    default_message = "Request payload is invalid."


class ConflictError(IdentityError):
    code = "conflict"
    default_message = "Request conflicts with the current state."


class RateLimitedError(IdentityError):
    code = "rate_limited"
    default_message = "Too many requests."

    def __init__(
        self,
        retry_after_seconds: int,
        message: str | None = None,
        *,
        code: str | None = None,
    ) -> None:
        self.retry_after_seconds = max(int(retry_after_seconds), 0)
        super().__init__(
            message,
            code=code,
            details={"retry_after_seconds": self.retry_after_seconds},
        )


class NotFoundError(IdentityError):
    code = "not_found"
    default_message = "Resource not found."


class InvalidTokenError(IdentityError):
    code = "invalid_or_expired_token"
    default_message = "Token is invalid or has expired."


class UnauthorizedError(IdentityError):
    code = "unauthorized"
    default_message = "Authentication required."


class ForbiddenError(IdentityError):
    code = "forbidden"
    default_message = "Access denied."


# Validation


class WeakPasswordError(ValidationError):
    code = "weak_password"
    default_message = "Password does not meet the policy requirements."


# Conflict


class EmailAlreadyRegisteredError(ConflictError):
    code = "email_already_registered"
    default_message = "Email is already registered."


class NationalIdAlreadyRegisteredError(ConflictError):
    code = "iin_already_registered"
    default_message = "IIN is already registered."


class AlreadyVerifiedError(ConflictError):
    code = "already_verified"
    default_message = "Email already verified."


class ProfileLockedError(ConflictError):
    code = "avatar_locked"
    default_message = "Profile cannot be updated in current status."


class TokenAlreadyRotatedError(ConflictError):
    code = "token_already_rotated"
    default_message = "Refresh token has already been used."


class PasswordReuseForbiddenError(ConflictError):
    code = "password_reuse_forbidden"
    default_message = "New password must differ from the current one."


# Invalid token


class ExpiredTokenError(InvalidTokenError):
    default_message = "Token has expired."


class InvalidRefreshTokenError(InvalidTokenError):
    code = "invalid_refresh_token"
    default_message = "Refresh token is invalid."


# Unauthorized / forbidden


class InvalidCredentialsError(UnauthorizedError):
    code = "invalid_credentials"
    default_message = "Invalid login or password."


class AccountBlockedError(ForbiddenError):
    code = "account_blocked"
    default_message = "Account is blocked."


class UserNotActivatedError(ForbiddenError):
    code = "user_not_activated"
    default_message = "Account is not activated."


class DeviceMismatchError(ForbiddenError):
    code = "device_mismatch"
    default_message = "Refresh token belongs to another device."


# Not found


class SessionNotFoundError(NotFoundError):
    code = "session_not_found"
    default_message = "Session not found."


__all__ = [
    "AccountBlockedError",
    "AlreadyVerifiedError",
    "ConflictError",
    "DeviceMismatchError",
    "EmailAlreadyRegisteredError",
    "ExpiredTokenError",
    "ForbiddenError",
    "IdentityError",
    "InvalidCredentialsError",
    "InvalidRefreshTokenError",
    "InvalidTokenError",
    "NationalIdAlreadyRegisteredError",
    "NotFoundError",
    "PasswordReuseForbiddenError",
    "ProfileLockedError",
    "RateLimitedError",
    "SessionNotFoundError",
    "TokenAlreadyRotatedError",
    "UnauthorizedError",
    "UserNotActivatedError",
    "ValidationError",
    "WeakPasswordError",
]
