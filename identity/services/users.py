"""Repository helpers for interacting with user records."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from identity.models.user import User, UserStatus
from identity.models.user_session import UserSession
from identity.models.user_token import UserToken
from identity.services.validation import normalize_email, normalize_national_id

logger = logging.getLogger(__name__)


def get_user_by_id(db: Session, user_id: uuid.UUID) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Fetch a user by email address.

    Addresses are stored lower-cased; rows written before normalisation are
    still found through a case-insensitive comparison.
    """

    normalized_email = normalize_email(email)
    statement = select(User).where(User.email == normalized_email)
    user = db.execute(statement).scalar_one_or_none()
    if user is not None:
        return user
    statement = select(User).where(func.lower(User.email) == normalized_email)
    return db.execute(statement).scalars().first()


def lock_user(db: Session, user_id: uuid.UUID) -> Optional[User]:
    """Re-read a user under a row lock held until the transaction ends."""

    statement = (
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.execute(statement).scalar_one_or_none()


def get_user_by_national_id(db: Session, national_id: str) -> Optional[User]:
    statement = select(User).where(User.national_id == normalize_national_id(national_id))
    return db.execute(statement).scalar_one_or_none()


def email_exists(db: Session, email: str) -> bool:
    return get_user_by_email(db, email) is not None


def national_id_exists(db: Session, national_id: str) -> bool:
    return get_user_by_national_id(db, national_id) is not None


def create_pending_user(
    db: Session,
    *,
    national_id: str,
    email: str,
    hashed_password: str,
    display_name: str,
    accepted_terms_version: str,
    accepted_privacy_version: str,
    now: datetime,
    locale: Optional[str] = None,
    timezone: Optional[str] = None,
    marketing_opt_in: bool = False,
) -> User:
    """Insert a PENDING user; uniqueness is enforced by the caller and the schema."""

    user = User(
        national_id=national_id,
        email=email,
        hashed_password=hashed_password,
        status=UserStatus.PENDING,
        display_name=display_name,
        locale=locale,
        timezone=timezone,
        accepted_terms_version=accepted_terms_version,
        accepted_privacy_version=accepted_privacy_version,
        marketing_opt_in=marketing_opt_in,
        last_email_sent_at=now,
        resend_count=0,
        resend_count_reset_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.flush()
    return user


def activate_user(db: Session, user: User, now: datetime) -> User:
    """Move a PENDING user to ACTIVE and hand out an avatar reference if missing."""

    if user.status != UserStatus.PENDING:
        raise ValueError(f"Cannot activate user in status {user.status.value}")
    user.status = UserStatus.ACTIVE
    assign_avatar_if_missing(user)
    user.updated_at = now
    db.flush()
    return user


def assign_avatar_if_missing(user: User) -> uuid.UUID:
    if user.avatar_id is None:
        user.avatar_id = uuid.uuid4()
    return user.avatar_id


def update_password(db: Session, user: User, hashed_password: str, now: datetime) -> None:
    user.hashed_password = hashed_password
    user.updated_at = now
    db.flush()


def update_email(db: Session, user: User, email: str, now: datetime) -> None:
    user.email = email
    user.updated_at = now
    db.flush()


def block_user(db: Session, user: User, now: datetime) -> None:
    """Block an account and drop everything that could be used to sign in."""

    user.status = UserStatus.BLOCKED
    user.updated_at = now
    db.execute(delete(UserToken).where(UserToken.user_id == user.id))
    db.execute(delete(UserSession).where(UserSession.user_id == user.id))
    db.flush()
    logger.info("User blocked", extra={"user_id": str(user.id)})


def record_activation_email(
    db: Session,
    user: User,
    *,
    now: datetime,
    resend_count: int,
    reset_at: datetime,
) -> None:
    user.last_email_sent_at = now
    user.resend_count = resend_count
    user.resend_count_reset_at = reset_at
    user.updated_at = now
    db.flush()


__all__ = [
    "activate_user",
    "assign_avatar_if_missing",
    "block_user",
    "create_pending_user",
    "email_exists",
    "get_user_by_email",
    "get_user_by_id",
    "get_user_by_national_id",
    "lock_user",
    "national_id_exists",
    "record_activation_email",
    "update_email",
    "update_password",
]
