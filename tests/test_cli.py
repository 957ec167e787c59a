"""Tests for the admin CLI."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta

import pytest
from typer.testing import CliRunner

from identity.cli import admin
from identity.models.user import UserStatus
from identity.models.user_token import UserTokenType
from identity.services.sessions import list_user_sessions
from identity.services.tokens import issue_token
from tests.conftest import login_request

runner = CliRunner()


@pytest.fixture()
def cli_session(db_session, monkeypatch):
    @contextmanager
    def _scope():
        yield db_session

    monkeypatch.setattr(admin, "session_scope", _scope)
    return db_session


def test_block_user_revokes_sessions(cli_session, make_user, auth_service):
    user = make_user()
    auth_service.login(login_request())

    result = runner.invoke(admin.app, ["block-user", "A@x.com"])

    assert result.exit_code == 0
    assert "blocked" in result.output
    assert user.status == UserStatus.BLOCKED
    assert list_user_sessions(cli_session, user.id) == []


def test_block_unknown_user_fails(cli_session):
    result = runner.invoke(admin.app, ["block-user", "missing@x.com"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_purge_expired_tokens(cli_session, make_user, clock):
    user = make_user()
    issue_token(cli_session, user.id, UserTokenType.ACTIVATION, timedelta(minutes=-1), clock.now())
    issue_token(cli_session, user.id, UserTokenType.PASSWORD_RESET, timedelta(hours=1), clock.now())
    cli_session.commit()

    result = runner.invoke(admin.app, ["purge-expired-tokens"])

    assert result.exit_code == 0
    assert "Removed 1 expired token(s)." in result.output
