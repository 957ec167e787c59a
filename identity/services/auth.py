"""Login, refresh rotation and session management for returning users."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from identity.core.clock import Clock, SystemClock
from identity.core.config import Settings, settings
from identity.core.security import (
    AccessTokenSigner,
    BcryptPasswordHasher,
    JwtAccessTokenSigner,
    PasswordHasher,
    generate_refresh_token,
    normalize_to_utc,
)
from identity.models.user import User, UserStatus
from identity.models.user_session import UserSession
from identity.models.user_token import UserTokenType
from identity.schemas.auth import (
    AuthMetadata,
    AuthTokens,
    AvatarRead,
    CurrentUserRead,
    CurrentUserResponse,
    DeviceInfo,
    EmailChangeConfirmResponse,
    EmailChangeRequestResponse,
    LoginRequest,
    LoginResponse,
    PasswordChangeRequest,
    SessionListResponse,
    SessionRead,
)
from identity.services import sessions as session_store
from identity.services import tokens as token_issuer
from identity.services import users as user_store
from identity.services.email import Mailer, SmtpMailer, dispatch_email
from identity.services.errors import (
    AccountBlockedError,
    DeviceMismatchError,
    EmailAlreadyRegisteredError,
    ExpiredTokenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidTokenError,
    PasswordReuseForbiddenError,
    SessionNotFoundError,
    TokenAlreadyRotatedError,
    UnauthorizedError,
    UserNotActivatedError,
    ValidationError,
)
from identity.services.validation import PasswordPolicy, validate_email, validate_password, validate_platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedSession:
    """A freshly persisted session plus the plaintext tokens handed to the client."""

    session: UserSession
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime

    def as_tokens(self) -> AuthTokens:
        return AuthTokens(
            session_id=self.session.id,
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            access_token_expires_at=self.access_expires_at,
            refresh_token_expires_at=self.refresh_expires_at,
        )


def normalize_device(device: DeviceInfo) -> DeviceInfo:
    """Trim the device payload and restrict the platform to the allow-list."""

    device_id = (device.device_id or "").strip()
    if not device_id:
        raise ValidationError("device_id is required.")
    return DeviceInfo(
        device_id=device_id,
        platform=validate_platform(device.platform or ""),
        device_name=(device.device_name or "").strip() or None,
        client_version=(device.client_version or "").strip() or None,
    )


def open_session(
    db: Session,
    signer: AccessTokenSigner,
    user: User,
    device: DeviceInfo,
    metadata: AuthMetadata,
    *,
    access_ttl: timedelta,
    refresh_ttl: timedelta,
    remember_me: bool,
    now: datetime,
) -> IssuedSession:
    """Persist a new session for ``user`` and sign its first access token."""

    refresh_token = generate_refresh_token()
    access_expires_at = now + access_ttl
    refresh_expires_at = now + refresh_ttl
    session = session_store.create_session(
        db,
        user_id=user.id,
        device=device,
        refresh_token=refresh_token,
        refresh_expires_at=refresh_expires_at,
        access_expires_at=access_expires_at,
        remember_me=remember_me,
        metadata=metadata,
        now=now,
    )
    access_token = signer.issue(
        user.id,
        {"iin": user.national_id, "sid": str(session.id)},
        access_ttl,
        now=now,
    )
    return IssuedSession(
        session=session,
        access_token=access_token,
        refresh_token=refresh_token,
        access_expires_at=access_expires_at,
        refresh_expires_at=refresh_expires_at,
    )


class AuthService:
    """Authenticates users and manages their refresh-token sessions.

    Each public method is one unit of work on ``db``: it commits on success
    and rolls back before re-raising on failure.
    """

    def __init__(
        self,
        db: Session,
        *,
        clock: Clock | None = None,
        hasher: PasswordHasher | None = None,
        signer: AccessTokenSigner | None = None,
        mailer: Mailer | None = None,
        config: Settings | None = None,
        background_tasks: BackgroundTasks | None = None,
    ) -> None:
        self._db = db
        self._clock = clock or SystemClock()
        self._hasher = hasher or BcryptPasswordHasher()
        self._signer = signer or JwtAccessTokenSigner()
        self._mailer = mailer or SmtpMailer()
        self._config = config or settings
        self._background_tasks = background_tasks

    @property
    def access_ttl(self) -> timedelta:
        return timedelta(minutes=self._config.access_token_expire_minutes)

    def refresh_ttl(self, remember_me: bool) -> timedelta:
        if remember_me:
            return timedelta(days=self._config.remember_me_refresh_token_ttl_days)
        return timedelta(days=self._config.refresh_token_ttl_days)

    def _commit(self) -> None:
        try:
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

    def _require_user(self, user_id: uuid.UUID) -> User:
        user = user_store.get_user_by_id(self._db, user_id)
        if user is None:
            raise UnauthorizedError("User no longer exists.")
        return user

    def _resolve_login_user(self, request: LoginRequest) -> Optional[User]:
        email = (request.email or "").strip() or None
        national_id = (request.national_id or "").strip() or None
        if (email is None) == (national_id is None):
            raise ValidationError("Provide exactly one of email or national_id.")
        if email is not None:
            return user_store.get_user_by_email(self._db, email)
        return user_store.get_user_by_national_id(self._db, national_id)

    def login(self, request: LoginRequest, metadata: AuthMetadata | None = None) -> LoginResponse:
        metadata = metadata or AuthMetadata()
        try:
            if not request.password:
                raise ValidationError("Password is required.")
            device = normalize_device(request.device)
            user = self._resolve_login_user(request)
            if user is None:
                self._hasher.dummy_verify()
                raise InvalidCredentialsError()

            if user.status == UserStatus.BLOCKED:
                logger.info("Login refused for blocked account", extra={"user_id": str(user.id)})
                raise AccountBlockedError()
            if user.status == UserStatus.PENDING:
                raise UserNotActivatedError()
            if user.status != UserStatus.ACTIVE:
                raise InvalidCredentialsError()

            if not self._hasher.verify(request.password, user.hashed_password):
                raise InvalidCredentialsError()

            issued = open_session(
                self._db,
                self._signer,
                user,
                device,
                metadata,
                access_ttl=self.access_ttl,
                refresh_ttl=self.refresh_ttl(request.remember_me),
                remember_me=request.remember_me,
                now=self._clock.now(),
            )
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

        logger.info(
            "User logged in",
            extra={"user_id": str(user.id), "session_id": str(issued.session.id), "platform": device.platform},
        )
        return LoginResponse(
            user_id=user.id,
            status=user.status.name,
            avatar_id=user.avatar_id,
            tokens=issued.as_tokens(),
        )

    def refresh(
        self,
        refresh_token: str | None,
        device_id: str | None = None,
        metadata: AuthMetadata | None = None,
    ) -> AuthTokens:
        """Rotate the session's refresh token.

        A token superseded by exactly one rotation is reported as
        :class:`TokenAlreadyRotatedError`; anything older, unknown or expired is
        :class:`InvalidRefreshTokenError`. The session itself is left intact.
        """

        metadata = metadata or AuthMetadata()
        refresh_token = (refresh_token or "").strip()
        if not refresh_token:
            raise InvalidRefreshTokenError()
        device_id = (device_id or "").strip() or None
        now = self._clock.now()

        try:
            match = session_store.find_session_by_refresh_token(self._db, refresh_token)
            if match is None:
                raise InvalidRefreshTokenError()
            session = match.session

            if device_id is not None and session.device_id != device_id:
                logger.warning(
                    "Refresh token presented from another device",
                    extra={"session_id": str(session.id), "user_id": str(session.user_id)},
                )
                raise DeviceMismatchError()

            if not match.is_current:
                previous_expires_at = session.previous_token_expires_at
                if previous_expires_at is not None and normalize_to_utc(previous_expires_at) > now:
                    logger.warning(
                        "Superseded refresh token replayed",
                        extra={"session_id": str(session.id), "user_id": str(session.user_id)},
                    )
                    raise TokenAlreadyRotatedError()
                raise InvalidRefreshTokenError()

            if normalize_to_utc(session.refresh_token_expires_at) <= now:
                raise InvalidRefreshTokenError("Refresh token has expired.")

            user = user_store.get_user_by_id(self._db, session.user_id)
            if user is None:
                raise InvalidRefreshTokenError()
            if user.status == UserStatus.BLOCKED:
                raise AccountBlockedError()

            new_refresh_token = generate_refresh_token()
            access_expires_at = now + self.access_ttl
            refresh_expires_at = now + self.refresh_ttl(session.remember_me)
            rotated = session_store.rotate_session(
                self._db,
                session_id=session.id,
                expected_hash=match.token_hash,
                new_refresh_token=new_refresh_token,
                refresh_expires_at=refresh_expires_at,
                access_expires_at=access_expires_at,
                metadata=metadata,
                now=now,
            )
            if rotated is None:
                raise InvalidRefreshTokenError()

            access_token = self._signer.issue(
                user.id,
                {"iin": user.national_id, "sid": str(rotated.id)},
                self.access_ttl,
                now=now,
            )
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

        return AuthTokens(
            session_id=rotated.id,
            access_token=access_token,
            refresh_token=new_refresh_token,
            access_token_expires_at=access_expires_at,
            refresh_token_expires_at=refresh_expires_at,
        )

    def logout(self, refresh_token: str | None) -> None:
        refresh_token = (refresh_token or "").strip()
        if not refresh_token:
            raise InvalidRefreshTokenError()
        removed = session_store.delete_session_by_refresh_token(self._db, refresh_token)
        if not removed:
            self._db.rollback()
            raise InvalidRefreshTokenError()
        self._commit()

    def logout_all(self, user_id: uuid.UUID) -> int:
        removed = session_store.delete_user_sessions(self._db, user_id)
        self._commit()
        logger.info("All sessions revoked", extra={"user_id": str(user_id), "count": removed})
        return removed

    def get_current_user(self, user_id: uuid.UUID) -> CurrentUserResponse:
        user = self._require_user(user_id)
        avatar = AvatarRead(id=user.avatar_id) if user.avatar_id is not None else None
        return CurrentUserResponse(
            user=CurrentUserRead(
                id=user.id,
                email=user.email,
                national_id=user.national_id,
                status=user.status.value,
            ),
            avatar=avatar,
        )

    def get_sessions(self, user_id: uuid.UUID, current_refresh_token: str | None = None) -> SessionListResponse:
        current_session_id: uuid.UUID | None = None
        if current_refresh_token:
            match = session_store.find_session_by_refresh_token(self._db, current_refresh_token)
            if match is not None and match.is_current and match.session.user_id == user_id:
                current_session_id = match.session.id
                session_store.touch_session(self._db, current_session_id, self._clock.now())
                self._commit()

        items = [
            SessionRead(
                id=session.id,
                device_id=session.device_id,
                device_name=session.device_name,
                platform=session.platform,
                client_version=session.client_version,
                ip=session.ip,
                user_agent=session.user_agent,
                remember_me=session.remember_me,
                created_at=session.created_at,
                last_seen_at=session.last_seen_at,
                refresh_token_expires_at=session.refresh_token_expires_at,
                current=session.id == current_session_id,
            )
            for session in session_store.list_user_sessions(self._db, user_id)
        ]
        return SessionListResponse(sessions=items)

    def revoke_session(self, user_id: uuid.UUID, session_id: uuid.UUID) -> None:
        removed = session_store.delete_session(self._db, user_id, session_id)
        if not removed:
            self._db.rollback()
            raise SessionNotFoundError()
        self._commit()

    def change_password(self, user_id: uuid.UUID, request: PasswordChangeRequest) -> None:
        user = self._require_user(user_id)
        if not self._hasher.verify(request.current_password, user.hashed_password):
            raise InvalidCredentialsError("Current password is incorrect.")
        validate_password(request.new_password, PasswordPolicy.from_settings(self._config))
        if self._hasher.verify(request.new_password, user.hashed_password):
            raise PasswordReuseForbiddenError()

        user_store.update_password(self._db, user, self._hasher.hash(request.new_password), self._clock.now())
        self._commit()
        logger.info("Password changed", extra={"user_id": str(user.id)})

    def request_email_change(self, user_id: uuid.UUID, new_email: str) -> EmailChangeRequestResponse:
        user = self._require_user(user_id)
        normalized = validate_email(new_email)
        if user_store.email_exists(self._db, normalized):
            raise EmailAlreadyRegisteredError()

        now = self._clock.now()
        try:
            token = token_issuer.issue_token(
                self._db,
                user.id,
                UserTokenType.EMAIL_CHANGE,
                timedelta(minutes=self._config.email_change_token_ttl_minutes),
                now,
                payload=normalized,
            )
            raw_token = token.token
            expires_at = token.expires_at
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

        link = token_issuer.build_token_link(UserTokenType.EMAIL_CHANGE, raw_token, self._config.user_links_domain)
        dispatch_email(
            self._mailer.send_email_change_confirmation,
            normalized,
            normalized,
            link,
            background_tasks=self._background_tasks,
        )
        return EmailChangeRequestResponse(
            sent=True,
            expires_at=expires_at,
            debug_token=raw_token if self._config.expose_debug_tokens else None,
        )

    def confirm_email_change(self, token: str) -> EmailChangeConfirmResponse:
        now = self._clock.now()
        try:
            consumed = token_issuer.consume_token(self._db, token, UserTokenType.EMAIL_CHANGE, now)
            new_email = consumed.payload
            user = user_store.get_user_by_id(self._db, consumed.user_id)
            if user is None or not new_email:
                raise InvalidTokenError()
            existing = user_store.get_user_by_email(self._db, new_email)
            if existing is not None and existing.id != user.id:
                raise EmailAlreadyRegisteredError()
            user_store.update_email(self._db, user, new_email, now)
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise EmailAlreadyRegisteredError() from exc
        except ExpiredTokenError:
            self._db.commit()
            raise
        except Exception:
            self._db.rollback()
            raise

        logger.info("Email changed", extra={"user_id": str(user.id)})
        return EmailChangeConfirmResponse(user_id=user.id, email=user.email)


__all__ = ["AuthService", "IssuedSession", "normalize_device", "open_session"]
