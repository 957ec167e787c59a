from types import SimpleNamespace

import pytest
from sqlalchemy.exc import SQLAlchemyError

from identity.db import session


def test_get_db_yields_session_and_closes(monkeypatch):
    closed = False

    class DummySession:
        def close(self):
            nonlocal closed
            closed = True

    monkeypatch.setattr(session, "SessionLocal", lambda: DummySession())

    generator = session.get_db()
    produced_session = next(generator)
    assert isinstance(produced_session, DummySession)

    with pytest.raises(StopIteration):
        next(generator)

    assert closed, "Session should be closed after generator exits"


def test_verify_connection_executes_health_query(monkeypatch):
    executed = SimpleNamespace(value=False)

    class DummyConnection:
        def execute(self, statement):
            executed.value = True
            assert "SELECT 1" in str(statement)

    class DummyConnectionManager:
        def __enter__(self):
            return DummyConnection()

        def __exit__(self, *exc):
            return False

    class DummyEngine:
        def connect(self):
            return DummyConnectionManager()

    monkeypatch.setattr(session, "engine", DummyEngine())

    session.verify_connection()
    assert executed.value


def test_verify_connection_propagates_sqlalchemy_errors(monkeypatch):
    class DummyEngine:
        def connect(self):
            raise SQLAlchemyError("boom")

    monkeypatch.setattr(session, "engine", DummyEngine())
    monkeypatch.setattr(session.time, "sleep", lambda _seconds: None)

    with pytest.raises(SQLAlchemyError):
        session.verify_connection()


def test_verify_connection_retries_before_failing(monkeypatch):
    attempts = []

    class DummyEngine:
        def connect(self):
            attempts.append(1)
            raise SQLAlchemyError("not ready")

    monkeypatch.setattr(session, "engine", DummyEngine())
    monkeypatch.setattr(session.time, "sleep", lambda _seconds: None)

    with pytest.raises(SQLAlchemyError):
        session.verify_connection(max_attempts=3)

    assert len(attempts) == 3


def test_session_scope_rolls_back_and_closes_on_error(monkeypatch):
    calls = []

    class DummySession:
        def rollback(self):
            calls.append("rollback")

        def close(self):
            calls.append("close")

    monkeypatch.setattr(session, "SessionLocal", lambda: DummySession())

    with pytest.raises(RuntimeError):
        with session.session_scope():
            raise RuntimeError("boom")

    assert calls == ["rollback", "close"]
