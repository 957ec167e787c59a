"""Audit trail for security-relevant operations.

:class:`AuditedAuthService` and :class:`AuditedRegistrationService` wrap the
orchestrators. Each audited method calls the inner service and, only when it
returns, records one :class:`AuditEvent`. The acting user and network details
come from the :class:`RequestContext` passed in by the caller.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

from identity.schemas.auth import (
    AuthMetadata,
    AuthTokens,
    CurrentUserResponse,
    DeviceInfo,
    EmailChangeConfirmResponse,
    EmailChangeRequestResponse,
    LoginRequest,
    LoginResponse,
    PasswordChangeRequest,
    SessionListResponse,
)
from identity.schemas.registration import (
    EmailAvailabilityResponse,
    LimitsResponse,
    PasswordPolicyResponse,
    PasswordResetRequestResponse,
    PasswordResetResponse,
    ProfileUpdateResponse,
    RegistrationRequest,
    RegistrationResponse,
    RegistrationStatusResponse,
    ResendActivationResponse,
    VerifyEmailResponse,
)
from identity.services.auth import AuthService
from identity.services.registration import ProfileUpdate, RegistrationService

audit_logger = logging.getLogger("identity.audit")


@dataclass(frozen=True)
class RequestContext:
    """Who is calling and from where, scoped to a single request."""

    actor_id: Optional[uuid.UUID] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    trace_id: Optional[str] = None

    @property
    def metadata(self) -> AuthMetadata:
        return AuthMetadata(ip=self.ip, user_agent=self.user_agent)


@dataclass(frozen=True)
class AuditEvent:
    action: str
    actor_id: Optional[uuid.UUID]
    ip: Optional[str]
    user_agent: Optional[str]
    subject: Optional[str] = None
    trace_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    """Writes audit events to the ``identity.audit`` logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or audit_logger

    def record(self, event: AuditEvent) -> None:
        self._logger.info(
            "audit %s",
            event.action,
            extra={
                "audit_action": event.action,
                "actor_id": str(event.actor_id) if event.actor_id else None,
                "ip": event.ip,
                "user_agent": event.user_agent,
                "subject": event.subject,
                "trace_id": event.trace_id,
                "occurred_at": event.occurred_at.isoformat(),
            },
        )


class _Auditor:
    def __init__(self, sink: AuditSink | None) -> None:
        self._sink = sink or LoggingAuditSink()

    def _record(
        self,
        context: RequestContext,
        action: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
        subject: object = None,
    ) -> None:
        self._sink.record(
            AuditEvent(
                action=action,
                actor_id=actor_id or context.actor_id,
                ip=context.ip,
                user_agent=context.user_agent,
                subject=str(subject) if subject is not None else None,
                trace_id=context.trace_id,
            )
        )


class AuditedAuthService(_Auditor):
    """:class:`AuthService` with an audit event after each successful mutation."""

    def __init__(self, inner: AuthService, sink: AuditSink | None = None) -> None:
        super().__init__(sink)
        self._inner = inner

    def login(self, context: RequestContext, request: LoginRequest) -> LoginResponse:
        result = self._inner.login(request, context.metadata)
        self._record(context, "auth.login", actor_id=result.user_id, subject=result.tokens.session_id)
        return result

    def refresh(self, context: RequestContext, refresh_token: str | None, device_id: str | None = None) -> AuthTokens:
        result = self._inner.refresh(refresh_token, device_id, context.metadata)
        self._record(context, "auth.refresh", subject=result.session_id)
        return result

    def logout(self, context: RequestContext, refresh_token: str | None) -> None:
        self._inner.logout(refresh_token)
        self._record(context, "auth.logout")

    def logout_all(self, context: RequestContext, user_id: uuid.UUID) -> int:
        removed = self._inner.logout_all(user_id)
        self._record(context, "auth.logout_all", actor_id=user_id, subject=user_id)
        return removed

    def revoke_session(self, context: RequestContext, user_id: uuid.UUID, session_id: uuid.UUID) -> None:
        self._inner.revoke_session(user_id, session_id)
        self._record(context, "auth.revoke_session", actor_id=user_id, subject=session_id)

    def change_password(self, context: RequestContext, user_id: uuid.UUID, request: PasswordChangeRequest) -> None:
        self._inner.change_password(user_id, request)
        self._record(context, "auth.change_password", actor_id=user_id, subject=user_id)

    def request_email_change(
        self, context: RequestContext, user_id: uuid.UUID, new_email: str
    ) -> EmailChangeRequestResponse:
        result = self._inner.request_email_change(user_id, new_email)
        self._record(context, "auth.request_email_change", actor_id=user_id, subject=user_id)
        return result

    def confirm_email_change(self, context: RequestContext, token: str) -> EmailChangeConfirmResponse:
        result = self._inner.confirm_email_change(token)
        self._record(context, "auth.confirm_email_change", actor_id=result.user_id, subject=result.user_id)
        return result

    # Not audited

    def get_current_user(self, context: RequestContext, user_id: uuid.UUID) -> CurrentUserResponse:
        return self._inner.get_current_user(user_id)

    def get_sessions(
        self, context: RequestContext, user_id: uuid.UUID, current_refresh_token: str | None = None
    ) -> SessionListResponse:
        return self._inner.get_sessions(user_id, current_refresh_token)


class AuditedRegistrationService(_Auditor):
    """:class:`RegistrationService` with an audit event after each successful mutation."""

    def __init__(self, inner: RegistrationService, sink: AuditSink | None = None) -> None:
        super().__init__(sink)
        self._inner = inner

    def start_registration(
        self,
        context: RequestContext,
        payload: RegistrationRequest,
        idempotency_key: str | None = None,
    ) -> RegistrationResponse:
        result = self._inner.start_registration(payload, idempotency_key)
        self._record(context, "registration.start", actor_id=result.user_id, subject=result.user_id)
        return result

    def resend_activation_email(self, context: RequestContext, national_id: str, email: str) -> ResendActivationResponse:
        result = self._inner.resend_activation_email(national_id, email)
        self._record(context, "registration.resend_activation", subject=email)
        return result

    def verify_email(
        self, context: RequestContext, token: str, device: DeviceInfo | None = None
    ) -> VerifyEmailResponse:
        result = self._inner.verify_email(token, device, context.metadata)
        self._record(context, "registration.verify_email", actor_id=result.user_id, subject=result.user_id)
        return result

    def complete_profile(
        self, context: RequestContext, user_id: uuid.UUID, update: ProfileUpdate
    ) -> ProfileUpdateResponse:
        result = self._inner.complete_profile(user_id, update)
        self._record(context, "registration.complete_profile", actor_id=user_id, subject=",".join(result.updated))
        return result

    def request_password_reset(self, context: RequestContext, email: str) -> PasswordResetRequestResponse:
        result = self._inner.request_password_reset(email)
        self._record(context, "registration.request_password_reset", subject=email)
        return result

    def reset_password(self, context: RequestContext, token: str, new_password: str) -> PasswordResetResponse:
        result = self._inner.reset_password(token, new_password)
        self._record(context, "registration.reset_password", actor_id=result.user_id, subject=result.user_id)
        return result

    # Not audited

    def check_email_availability(self, context: RequestContext, email: str) -> EmailAvailabilityResponse:
        return self._inner.check_email_availability(email)

    def get_password_policy(self, context: RequestContext) -> PasswordPolicyResponse:
        return self._inner.get_password_policy()

    def get_limits(self, context: RequestContext) -> LimitsResponse:
        return self._inner.get_limits()

    def get_registration_status(self, context: RequestContext, email: str) -> RegistrationStatusResponse:
        return self._inner.get_registration_status(email)


__all__ = [
    "AuditEvent",
    "AuditSink",
    "AuditedAuthService",
    "AuditedRegistrationService",
    "LoggingAuditSink",
    "RequestContext",
]
