"""Tests for the audit decorators around the orchestrators."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import pytest
from sqlalchemy import select

from identity.models.user_session import UserSession
from identity.services.audit import (
    AuditEvent,
    AuditedAuthService,
    AuditedRegistrationService,
    LoggingAuditSink,
    RequestContext,
)
from identity.services.errors import InvalidCredentialsError, RateLimitedError
from tests.conftest import login_request, registration_payload


@dataclass
class RecordingSink:
    events: list[AuditEvent] = field(default_factory=list)

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    @property
    def actions(self) -> list[str]:
        return [event.action for event in self.events]


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def context() -> RequestContext:
    return RequestContext(ip="10.0.0.9", user_agent="pytest", trace_id="trace-1")


def test_registration_flow_emits_one_event_per_success(registration_service, sink, context):
    audited = AuditedRegistrationService(registration_service, sink)

    started = audited.start_registration(context, registration_payload())
    with pytest.raises(RateLimitedError):
        audited.resend_activation_email(context, "123456789012", "a@x.com")
    verified = audited.verify_email(context, started.debug_verification_token)
    audited.check_email_availability(context, "a@x.com")
    audited.get_limits(context)

    assert sink.actions == ["registration.start", "registration.verify_email"]
    event = sink.events[1]
    assert event.actor_id == verified.user_id
    assert event.ip == "10.0.0.9"
    assert event.user_agent == "pytest"
    assert event.trace_id == "trace-1"


def test_verify_email_records_request_metadata_on_session(registration_service, sink, context, db_session):
    audited = AuditedRegistrationService(registration_service, sink)
    started = audited.start_registration(context, registration_payload())

    audited.verify_email(context, started.debug_verification_token)

    session = db_session.execute(select(UserSession)).scalar_one()
    assert session.ip == "10.0.0.9"
    assert session.user_agent == "pytest"


def test_failed_login_is_not_audited(auth_service, make_user, sink, context):
    make_user()
    audited = AuditedAuthService(auth_service, sink)

    with pytest.raises(InvalidCredentialsError):
        audited.login(context, login_request(password="WrongPassword1"))
    assert sink.events == []

    response = audited.login(context, login_request())
    tokens = audited.refresh(context, response.tokens.refresh_token)
    audited.get_sessions(context, response.user_id)
    audited.logout(context, tokens.refresh_token)

    assert sink.actions == ["auth.login", "auth.refresh", "auth.logout"]
    assert sink.events[0].actor_id == response.user_id
    assert sink.events[0].subject == str(response.tokens.session_id)


def test_logging_sink_writes_structured_record(caplog):
    sink = LoggingAuditSink()
    event = AuditEvent(action="auth.login", actor_id=None, ip="10.0.0.1", user_agent=None, trace_id="t")

    with caplog.at_level(logging.INFO, logger="identity.audit"):
        sink.record(event)

    record = next(record for record in caplog.records if record.name == "identity.audit")
    assert record.getMessage() == "audit auth.login"
    assert record.audit_action == "auth.login"
    assert record.ip == "10.0.0.1"
    assert record.trace_id == "t"
