"""Onboarding workflow: PENDING accounts, activation links and password resets.

A user is created PENDING together with an activation token. Consuming that
token moves the account to ACTIVE and signs the user in with a short-lived
session. Submissions may carry an idempotency key; the first response for a
key is stored alongside the user and replayed verbatim for every retry.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from identity.core.clock import Clock, SystemClock
from identity.core.config import Settings, settings
from identity.core.field_update import KEEP, FieldUpdate, Keep, field_update
from identity.core.security import (
    AccessTokenSigner,
    BcryptPasswordHasher,
    JwtAccessTokenSigner,
    PasswordHasher,
    normalize_to_utc,
)
from identity.models.registration_idempotency import RegistrationIdempotency
from identity.models.user import User, UserStatus
from identity.models.user_token import UserTokenType
from identity.schemas.auth import AuthMetadata, DeviceInfo
from identity.schemas.registration import (
    EmailAvailabilityResponse,
    EmailVerificationInfo,
    LimitsResponse,
    PasswordPolicyResponse,
    PasswordResetRequestResponse,
    PasswordResetResponse,
    ProfileUpdateRequest,
    ProfileUpdateResponse,
    RegistrationRequest,
    RegistrationResponse,
    RegistrationStatusResponse,
    ResendActivationResponse,
    SessionPair,
    VerificationStatus,
    VerifyEmailResponse,
)
from identity.services import sessions as session_store
from identity.services import tokens as token_issuer
from identity.services import users as user_store
from identity.services.auth import normalize_device, open_session
from identity.services.email import Mailer, SmtpMailer, dispatch_email
from identity.services.errors import (
    AccountBlockedError,
    AlreadyVerifiedError,
    EmailAlreadyRegisteredError,
    ExpiredTokenError,
    InvalidTokenError,
    NationalIdAlreadyRegisteredError,
    NotFoundError,
    ProfileLockedError,
    RateLimitedError,
    UnauthorizedError,
    ValidationError,
)
from identity.services.validation import (
    PasswordPolicy,
    ensure_consents,
    normalize_email,
    normalize_national_id,
    validate_email,
    validate_national_id,
    validate_password,
)

logger = logging.getLogger(__name__)

VERIFICATION_DEVICE = DeviceInfo(device_id="email-verification", platform="web")

PROFILE_FIELDS = ("photo_url", "about", "locale", "timezone", "display_name")


@dataclass(frozen=True)
class ProfileUpdate:
    """Per-field partial update for :meth:`RegistrationService.complete_profile`."""

    photo_url: FieldUpdate[Optional[str]] = KEEP
    about: FieldUpdate[Optional[str]] = KEEP
    locale: FieldUpdate[Optional[str]] = KEEP
    timezone: FieldUpdate[Optional[str]] = KEEP
    display_name: FieldUpdate[Optional[str]] = KEEP

    @classmethod
    def from_request(cls, request: ProfileUpdateRequest) -> "ProfileUpdate":
        return cls(**{name: field_update(request, name) for name in PROFILE_FIELDS})


def _seconds_until_next_utc_day(now: datetime) -> int:
    tomorrow = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(math.ceil((tomorrow - now).total_seconds()), 1)


class RegistrationService:
    """Drives a user from registration to an activated account."""

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
    def policy(self) -> PasswordPolicy:
        return PasswordPolicy.from_settings(self._config)

    def _debug_token(self, raw_token: str) -> str | None:
        return raw_token if self._config.expose_debug_tokens else None

    def _send_activation(self, user: User, raw_token: str) -> None:
        link = token_issuer.build_token_link(UserTokenType.ACTIVATION, raw_token, self._config.user_links_domain)
        dispatch_email(
            self._mailer.send_activation,
            user.email,
            link,
            background_tasks=self._background_tasks,
        )

    def _cooldown_remaining(self, user: User, now: datetime) -> int:
        if user.last_email_sent_at is None:
            return 0
        elapsed = (now - normalize_to_utc(user.last_email_sent_at)).total_seconds()
        return max(math.ceil(self._config.resend_cooldown_seconds - elapsed), 0)

    def _load_idempotent_response(self, key: str) -> Optional[RegistrationResponse]:
        record = self._db.get(RegistrationIdempotency, key)
        if record is None:
            return None
        return RegistrationResponse.model_validate_json(record.response_payload)

    # Queries

    def check_email_availability(self, email: str) -> EmailAvailabilityResponse:
        normalized = validate_email(email)
        return EmailAvailabilityResponse(
            email=normalized,
            available=not user_store.email_exists(self._db, normalized),
        )

    def get_password_policy(self) -> PasswordPolicyResponse:
        return PasswordPolicyResponse(**self.policy.as_dict())

    def get_limits(self) -> LimitsResponse:
        return LimitsResponse(
            max_attempts_per_ip_per_hour=self._config.max_attempts_per_ip_per_hour,
            max_resends_per_day=self._config.max_resends_per_day,
            email_token_ttl_minutes=self._config.email_token_ttl_minutes,
            resend_cooldown_seconds=self._config.resend_cooldown_seconds,
        )

    def get_registration_status(self, email: str) -> RegistrationStatusResponse:
        user = user_store.get_user_by_email(self._db, email)
        if user is None:
            raise NotFoundError("Registration not found.", code="registration_not_found")
        pending = user.status == UserStatus.PENDING
        return RegistrationStatusResponse(
            email=user.email,
            status=user.status.name,
            verification=VerificationStatus(
                required=pending,
                resend_cooldown_seconds=self._cooldown_remaining(user, self._clock.now()) if pending else 0,
            ),
        )

    # Commands

    def start_registration(
        self,
        payload: RegistrationRequest,
        idempotency_key: str | None = None,
    ) -> RegistrationResponse:
        """Create a PENDING user and send the activation link.

        A known ``idempotency_key`` short-circuits everything, validation
        included, and returns the stored response.
        """

        key = (idempotency_key or "").strip() or None
        if key is not None:
            stored = self._load_idempotent_response(key)
            if stored is not None:
                logger.info("Registration replayed from idempotency key")
                return stored

        email = validate_email(payload.email)
        national_id = validate_national_id(payload.national_id)
        ensure_consents(payload.accepted_terms_version, payload.accepted_privacy_version)
        display_name = (payload.display_name or "").strip()
        if not display_name:
            raise ValidationError("display_name is required.")
        validate_password(payload.password, self.policy)

        if user_store.email_exists(self._db, email):
            raise EmailAlreadyRegisteredError()
        if user_store.national_id_exists(self._db, national_id):
            raise NationalIdAlreadyRegisteredError()

        now = self._clock.now()
        validity = timedelta(minutes=self._config.email_token_ttl_minutes)
        try:
            user = user_store.create_pending_user(
                self._db,
                national_id=national_id,
                email=email,
                hashed_password=self._hasher.hash(payload.password),
                display_name=display_name,
                accepted_terms_version=payload.accepted_terms_version.strip(),
                accepted_privacy_version=payload.accepted_privacy_version.strip(),
                now=now,
                locale=payload.locale,
                timezone=payload.timezone,
                marketing_opt_in=payload.marketing_opt_in,
            )
            token = token_issuer.issue_token(self._db, user.id, UserTokenType.ACTIVATION, validity, now)
            raw_token = token.token
            response = RegistrationResponse(
                user_id=user.id,
                status=user.status.name,
                email_verification=EmailVerificationInfo(sent=True, expires_at=now + validity),
                debug_verification_token=self._debug_token(raw_token),
            )
            if key is not None:
                self._db.add(
                    RegistrationIdempotency(
                        key=key,
                        user_id=user.id,
                        response_payload=response.model_dump_json(),
                        created_at=now,
                    )
                )
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            if key is not None:
                winner = self._load_idempotent_response(key)
                if winner is not None:
                    logger.info("Concurrent registration with the same idempotency key resolved to the stored response")
                    return winner
            if user_store.email_exists(self._db, email):
                raise EmailAlreadyRegisteredError() from exc
            if user_store.national_id_exists(self._db, national_id):
                raise NationalIdAlreadyRegisteredError() from exc
            raise
        except Exception:
            self._db.rollback()
            raise

        logger.info("Registration started", extra={"user_id": str(user.id)})
        self._send_activation(user, raw_token)
        return response

    def resend_activation_email(self, national_id: str, email: str) -> ResendActivationResponse:
        """Reissue the activation link, subject to the cooldown and daily cap.

        The counters are checked and written under the user's row lock, so two
        concurrent resends cannot both pass the same cooldown window.
        """

        user = user_store.get_user_by_email(self._db, normalize_email(email))
        if (
            user is None
            or user.national_id != normalize_national_id(national_id)
            or user.status != UserStatus.PENDING
        ):
            raise NotFoundError("Pending registration not found.", code="registration_not_found")

        now = self._clock.now()
        try:
            user = user_store.lock_user(self._db, user.id)
            if user is None or user.status != UserStatus.PENDING:
                raise NotFoundError("Pending registration not found.", code="registration_not_found")

            remaining = self._cooldown_remaining(user, now)
            if remaining > 0:
                raise RateLimitedError(remaining, "Please wait before requesting another email.", code="resend_cooldown")

            reset_at = normalize_to_utc(user.resend_count_reset_at) if user.resend_count_reset_at else None
            if reset_at is not None and reset_at.date() == now.date():
                resend_count = user.resend_count
            else:
                resend_count = 0
                reset_at = now
            if resend_count >= self._config.max_resends_per_day:
                raise RateLimitedError(
                    _seconds_until_next_utc_day(now),
                    "Daily resend limit reached.",
                    code="resend_limit_reached",
                )

            token = token_issuer.issue_token(
                self._db,
                user.id,
                UserTokenType.ACTIVATION,
                timedelta(minutes=self._config.email_token_ttl_minutes),
                now,
            )
            raw_token = token.token
            user_store.record_activation_email(
                self._db,
                user,
                now=now,
                resend_count=resend_count + 1,
                reset_at=reset_at,
            )
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

        self._send_activation(user, raw_token)
        return ResendActivationResponse(
            sent=True,
            cooldown_seconds=self._config.resend_cooldown_seconds,
            debug_verification_token=self._debug_token(raw_token),
        )

    def verify_email(
        self,
        token: str,
        device: DeviceInfo | None = None,
        metadata: AuthMetadata | None = None,
    ) -> VerifyEmailResponse:
        """Activate the token's owner and open a short-lived session."""

        device = normalize_device(device) if device is not None else VERIFICATION_DEVICE
        metadata = metadata or AuthMetadata()
        now = self._clock.now()
        try:
            consumed = token_issuer.consume_token(self._db, token, UserTokenType.ACTIVATION, now)
            user = user_store.get_user_by_id(self._db, consumed.user_id)
            if user is None:
                raise InvalidTokenError()
            if user.status == UserStatus.ACTIVE:
                raise AlreadyVerifiedError()
            if user.status == UserStatus.BLOCKED:
                raise AccountBlockedError()

            user_store.activate_user(self._db, user, now)
            issued = open_session(
                self._db,
                self._signer,
                user,
                device,
                metadata,
                access_ttl=timedelta(minutes=self._config.access_token_expire_minutes),
                refresh_ttl=timedelta(minutes=self._config.verification_session_ttl_minutes),
                remember_me=False,
                now=now,
            )
            self._db.commit()
        except ExpiredTokenError:
            self._db.commit()
            raise
        except Exception:
            self._db.rollback()
            raise

        logger.info("Email verified", extra={"user_id": str(user.id)})
        return VerifyEmailResponse(
            user_id=user.id,
            status=user.status.name,
            avatar_id=user.avatar_id,
            session=SessionPair(
                access_token=issued.access_token,
                refresh_token=issued.refresh_token,
                expires_at=issued.refresh_expires_at,
            ),
        )

    def complete_profile(self, user_id: uuid.UUID, update: ProfileUpdate) -> ProfileUpdateResponse:
        user = user_store.get_user_by_id(self._db, user_id)
        if user is None:
            raise UnauthorizedError("User not found.")
        if user.status != UserStatus.ACTIVE:
            raise ProfileLockedError()

        changed: list[str] = []
        for name in PROFILE_FIELDS:
            requested = getattr(update, name)
            if isinstance(requested, Keep):
                continue
            value = requested.value
            if isinstance(value, str):
                value = value.strip()
            if name == "display_name" and not value:
                raise ValidationError("display_name cannot be empty.")
            if getattr(user, name) != value:
                setattr(user, name, value)
                changed.append(name)

        if changed:
            user_store.assign_avatar_if_missing(user)
            user.updated_at = self._clock.now()
        try:
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

        return ProfileUpdateResponse(avatar_id=user.avatar_id, updated=changed)

    def request_password_reset(self, email: str) -> PasswordResetRequestResponse:
        user = user_store.get_user_by_email(self._db, email)
        if user is None:
            raise NotFoundError("Email not found.", code="email_not_found")

        now = self._clock.now()
        validity = timedelta(minutes=self._config.password_reset_token_ttl_minutes)
        try:
            token = token_issuer.issue_token(self._db, user.id, UserTokenType.PASSWORD_RESET, validity, now)
            raw_token = token.token
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

        link = token_issuer.build_token_link(UserTokenType.PASSWORD_RESET, raw_token, self._config.user_links_domain)
        dispatch_email(
            self._mailer.send_password_reset,
            user.email,
            link,
            background_tasks=self._background_tasks,
        )
        return PasswordResetRequestResponse(
            sent=True,
            expires_at=now + validity,
            debug_token=self._debug_token(raw_token),
        )

    def reset_password(self, token: str, new_password: str) -> PasswordResetResponse:
        """Set a new password from a reset token and sign the user out everywhere."""

        validate_password(new_password, self.policy)
        now = self._clock.now()
        try:
            consumed = token_issuer.consume_token(self._db, token, UserTokenType.PASSWORD_RESET, now)
            user = user_store.get_user_by_id(self._db, consumed.user_id)
            if user is None:
                raise InvalidTokenError()
            user_store.update_password(self._db, user, self._hasher.hash(new_password), now)
            revoked = session_store.delete_user_sessions(self._db, user.id)
            self._db.commit()
        except ExpiredTokenError:
            self._db.commit()
            raise
        except Exception:
            self._db.rollback()
            raise

        logger.info("Password reset", extra={"user_id": str(user.id), "sessions_revoked": revoked})
        return PasswordResetResponse(user_id=user.id, sessions_revoked=revoked)


__all__ = ["PROFILE_FIELDS", "ProfileUpdate", "RegistrationService"]
