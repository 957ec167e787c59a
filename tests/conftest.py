"""Shared pytest fixtures for identity service tests."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("EXPOSE_DEBUG_TOKENS", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import main
from identity.api.dependencies import get_clock, get_mailer
from identity.core.config import settings
from identity.core.security import BcryptPasswordHasher, JwtAccessTokenSigner
from identity.db.base import Base
from identity.db.session import get_db
from identity.models.user import User, UserStatus
from identity.schemas.auth import DeviceInfo, LoginRequest
from identity.schemas.registration import RegistrationRequest
from identity.services.auth import AuthService
from identity.services.registration import RegistrationService
from identity.services.users import assign_avatar_if_missing, create_pending_user


@compiles(UUID, "sqlite")
def compile_uuid_sqlite(_element, _compiler, **_kw) -> str:
    """Render UUID columns as TEXT for the SQLite test database."""

    return "TEXT"


TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    future=True,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    bind=test_engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)

Base.metadata.create_all(bind=test_engine)

VALID_PASSWORD = "Password1!"


class MutableClock:
    """Test clock that only moves when told to.

    Starts at the real current time so signed access tokens are not
    considered expired by the JWT library.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value


@dataclass
class SentMail:
    kind: str
    recipient: str
    link: str
    new_email: str | None = None

    @property
    def token(self) -> str:
        return self.link.split("token=", 1)[1]


@dataclass
class RecordingMailer:
    """Mailer double that keeps every message instead of sending it."""

    sent: list[SentMail] = field(default_factory=list)

    def send_activation(self, recipient: str, link: str) -> None:
        self.sent.append(SentMail("activation", recipient, link))

    def send_password_reset(self, recipient: str, link: str) -> None:
        self.sent.append(SentMail("password_reset", recipient, link))

    def send_email_change_confirmation(self, recipient: str, new_email: str, link: str) -> None:
        self.sent.append(SentMail("email_change", recipient, link, new_email))

    def last(self, kind: str) -> SentMail:
        matching = [mail for mail in self.sent if mail.kind == kind]
        assert matching, f"no {kind} mail was sent"
        return matching[-1]


class SyncASGITestClient:
    """Synchronous wrapper around httpx.AsyncClient for ASGI apps."""

    def __init__(self, app) -> None:
        transport = httpx.ASGITransport(app=app)
        self._client = httpx.AsyncClient(transport=transport, base_url="http://testserver")

    def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        return asyncio.run(self._client.request(method, url, **kwargs))

    def get(self, url: str, **kwargs) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> httpx.Response:
        return self.request("POST", url, **kwargs)

    def delete(self, url: str, **kwargs) -> httpx.Response:
        return self.request("DELETE", url, **kwargs)

    def patch(self, url: str, **kwargs) -> httpx.Response:
        return self.request("PATCH", url, **kwargs)

    @property
    def cookies(self) -> httpx.Cookies:
        return self._client.cookies

    def __enter__(self) -> "SyncASGITestClient":
        return self

    def __exit__(self, exc_type, exc, traceback) -> None:
        asyncio.run(self._client.aclose())


@pytest.fixture(autouse=True)
def verify_connection_tracker(monkeypatch: pytest.MonkeyPatch) -> Generator[dict[str, int], None, None]:
    """Track how many times the startup connection verifier is called."""

    tracker = {"calls": 0, "migrations": 0}

    def fake_verify_connection() -> None:
        tracker["calls"] += 1

    def fake_run_migrations() -> None:
        tracker["migrations"] += 1

    monkeypatch.setattr(main, "verify_connection", fake_verify_connection)
    monkeypatch.setattr(main, "run_migrations", fake_run_migrations)
    yield tracker


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    """Provide a clean database session for each test."""

    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)
    session: Session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture(scope="session")
def hasher() -> BcryptPasswordHasher:
    return BcryptPasswordHasher(rounds=4)


@pytest.fixture(scope="session")
def signer() -> JwtAccessTokenSigner:
    return JwtAccessTokenSigner(secret_key="test-secret-key", algorithm="HS256", issuer="identity-tests")


@pytest.fixture()
def registration_service(db_session, clock, hasher, signer, mailer) -> RegistrationService:
    return RegistrationService(
        db_session,
        clock=clock,
        hasher=hasher,
        signer=signer,
        mailer=mailer,
        config=settings.model_copy(update={"expose_debug_tokens": True}),
    )


@pytest.fixture()
def auth_service(db_session, clock, hasher, signer, mailer) -> AuthService:
    return AuthService(
        db_session,
        clock=clock,
        hasher=hasher,
        signer=signer,
        mailer=mailer,
        config=settings.model_copy(update={"expose_debug_tokens": True}),
    )


@pytest.fixture(autouse=True)
def override_dependencies(
    db_session: Session,
    clock: MutableClock,
    mailer: RecordingMailer,
) -> Generator[None, None, None]:
    """Point the FastAPI dependencies at the test session, clock and mailer."""

    def _get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            pass

    main.app.dependency_overrides[get_db] = _get_db
    main.app.dependency_overrides[get_clock] = lambda: clock
    main.app.dependency_overrides[get_mailer] = lambda: mailer
    yield
    main.app.dependency_overrides.clear()


@pytest.fixture()
def client() -> Generator[SyncASGITestClient, None, None]:
    """Synchronous test client backed by httpx's ASGI transport."""

    with SyncASGITestClient(main.app) as test_client:
        yield test_client


def registration_payload(**overrides) -> RegistrationRequest:
    data = {
        "national_id": "123456789012",
        "email": "a@x.com",
        "password": VALID_PASSWORD,
        "display_name": "Aigerim",
        "accepted_terms_version": "v1",
        "accepted_privacy_version": "v1",
    }
    data.update(overrides)
    return RegistrationRequest(**data)


def login_request(**overrides) -> LoginRequest:
    data = {
        "email": "a@x.com",
        "password": VALID_PASSWORD,
        "device": DeviceInfo(device_id="device-1", platform="ios"),
    }
    data.update(overrides)
    return LoginRequest(**data)


@pytest.fixture()
def active_user(registration_service: RegistrationService):
    """Register and activate the default user; returns the verification response."""

    started = registration_service.start_registration(registration_payload())
    return registration_service.verify_email(started.debug_verification_token)


@pytest.fixture()
def make_user(db_session: Session, hasher: BcryptPasswordHasher, clock: MutableClock):
    """Insert a user directly in the given status, bypassing the workflow."""

    def _make(
        email: str = "a@x.com",
        national_id: str = "123456789012",
        password: str = VALID_PASSWORD,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        user = create_pending_user(
            db_session,
            national_id=national_id,
            email=email,
            hashed_password=hasher.hash(password),
            display_name="Test User",
            accepted_terms_version="v1",
            accepted_privacy_version="v1",
            now=clock.now(),
        )
        user.status = status
        if status == UserStatus.ACTIVE:
            assign_avatar_if_missing(user)
        db_session.commit()
        return user

    return _make
