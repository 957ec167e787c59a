"""Service layer helpers for domain operations."""

from .errors import (
    AccountBlockedError,
    AlreadyVerifiedError,
    ConflictError,
    DeviceMismatchError,
    EmailAlreadyRegisteredError,
    ExpiredTokenError,
    ForbiddenError,
    IdentityError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidTokenError,
    NationalIdAlreadyRegisteredError,
    NotFoundError,
    PasswordReuseForbiddenError,
    ProfileLockedError,
    RateLimitedError,
    SessionNotFoundError,
    TokenAlreadyRotatedError,
    UnauthorizedError,
    UserNotActivatedError,
    ValidationError,
    WeakPasswordError,
)
from .email import EmailDeliveryError, Mailer, SmtpMailer
from .auth import AuthService
from .registration import ProfileUpdate, RegistrationService
from .audit import (
    AuditEvent,
    AuditSink,
    AuditedAuthService,
    AuditedRegistrationService,
    LoggingAuditSink,
    RequestContext,
)

__all__ = [
    "AccountBlockedError",
    "AlreadyVerifiedError",
    "AuditEvent",
    "AuditSink",
    "AuditedAuthService",
    "AuditedRegistrationService",
    "AuthService",
    "ConflictError",
    "DeviceMismatchError",
    "EmailAlreadyRegisteredError",
    "ExpiredTokenError",
    "EmailDeliveryError",
    "ForbiddenError",
    "IdentityError",
    "InvalidCredentialsError",
    "InvalidRefreshTokenError",
    "InvalidTokenError",
    "LoggingAuditSink",
    "Mailer",
    "NationalIdAlreadyRegisteredError",
    "NotFoundError",
    "PasswordReuseForbiddenError",
    "ProfileLockedError",
    "ProfileUpdate",
    "RateLimitedError",
    "RegistrationService",
    "RequestContext",
    "SessionNotFoundError",
    "SmtpMailer",
    "TokenAlreadyRotatedError",
    "UnauthorizedError",
    "UserNotActivatedError",
    "ValidationError",
    "WeakPasswordError",
]
