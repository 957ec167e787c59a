"""Refresh-token session store.

Each session keeps the digest of its current refresh token and, for exactly
one generation after a rotation, the digest of the token it replaced. A
presented token therefore matches a session as ``current`` (legitimate use),
as ``previous`` (a superseded token being replayed), or not at all.

Rotation is a compare-and-swap: the UPDATE is keyed by the session id *and*
the digest the caller observed, so of two concurrent refreshes with the same
token only one can affect a row.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from identity.core.security import hash_token
from identity.models.user_session import UserSession
from identity.schemas.auth import AuthMetadata, DeviceInfo

logger = logging.getLogger(__name__)


class TokenMatchKind(str, enum.Enum):
    CURRENT = "current"
    PREVIOUS = "previous"


@dataclass(frozen=True)
class TokenMatch:
    kind: TokenMatchKind
    session: UserSession
    token_hash: str

    @property
    def is_current(self) -> bool:
        return self.kind is TokenMatchKind.CURRENT


def create_session(
    db: Session,
    *,
    user_id: uuid.UUID,
    device: DeviceInfo,
    refresh_token: str,
    refresh_expires_at: datetime,
    access_expires_at: datetime,
    remember_me: bool,
    metadata: AuthMetadata,
    now: datetime,
) -> UserSession:
    session = UserSession(
        user_id=user_id,
        device_id=device.device_id,
        device_name=device.device_name,
        platform=device.platform,
        client_version=device.client_version,
        refresh_token_hash=hash_token(refresh_token),
        previous_token_hash=None,
        previous_token_expires_at=None,
        refresh_token_expires_at=refresh_expires_at,
        access_token_expires_at=access_expires_at,
        remember_me=remember_me,
        ip=metadata.ip,
        user_agent=metadata.user_agent,
        created_at=now,
        updated_at=now,
        last_seen_at=now,
    )
    db.add(session)
    db.flush()
    return session


def find_session_by_refresh_token(db: Session, refresh_token: str) -> Optional[TokenMatch]:
    token_hash = hash_token(refresh_token)
    statement = select(UserSession).where(
        or_(
            UserSession.refresh_token_hash == token_hash,
            UserSession.previous_token_hash == token_hash,
        )
    )
    session = db.execute(statement).scalars().first()
    if session is None:
        return None
    if session.refresh_token_hash == token_hash:
        return TokenMatch(TokenMatchKind.CURRENT, session, token_hash)
    return TokenMatch(TokenMatchKind.PREVIOUS, session, token_hash)


def rotate_session(
    db: Session,
    *,
    session_id: uuid.UUID,
    expected_hash: str,
    new_refresh_token: str,
    refresh_expires_at: datetime,
    access_expires_at: datetime,
    metadata: AuthMetadata,
    now: datetime,
) -> Optional[UserSession]:
    """Swap in a new refresh token if the session still holds ``expected_hash``.

    Returns the updated session, or ``None`` when another rotation won the
    race and zero rows matched.
    """

    result = db.execute(
        update(UserSession)
        .where(
            UserSession.id == session_id,
            UserSession.refresh_token_hash == expected_hash,
        )
        .values(
            previous_token_hash=expected_hash,
            previous_token_expires_at=refresh_expires_at,
            refresh_token_hash=hash_token(new_refresh_token),
            refresh_token_expires_at=refresh_expires_at,
            access_token_expires_at=access_expires_at,
            updated_at=now,
            last_seen_at=now,
            ip=metadata.ip,
            user_agent=metadata.user_agent,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Refresh rotation lost a race",
            extra={"session_id": str(session_id)},
        )
        return None
    return db.get(UserSession, session_id, populate_existing=True)


def touch_session(db: Session, session_id: uuid.UUID, now: datetime) -> None:
    db.execute(update(UserSession).where(UserSession.id == session_id).values(last_seen_at=now))


def delete_session_by_refresh_token(db: Session, refresh_token: str) -> bool:
    result = db.execute(
        delete(UserSession)
        .where(UserSession.refresh_token_hash == hash_token(refresh_token))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def delete_user_sessions(db: Session, user_id: uuid.UUID) -> int:
    result = db.execute(
        delete(UserSession)
        .where(UserSession.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def delete_session(db: Session, user_id: uuid.UUID, session_id: uuid.UUID) -> bool:
    """Delete one session, scoped to its owner."""

    result = db.execute(
        delete(UserSession)
        .where(
            UserSession.user_id == user_id,
            UserSession.id == session_id,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def list_user_sessions(db: Session, user_id: uuid.UUID) -> list[UserSession]:
    statement = (
        select(UserSession)
        .where(UserSession.user_id == user_id)
        .order_by(UserSession.updated_at.desc())
    )
    return list(db.execute(statement).scalars().all())


__all__ = [
    "TokenMatch",
    "TokenMatchKind",
    "create_session",
    "delete_session",
    "delete_session_by_refresh_token",
    "delete_user_sessions",
    "find_session_by_refresh_token",
    "list_user_sessions",
    "rotate_session",
    "touch_session",
]
