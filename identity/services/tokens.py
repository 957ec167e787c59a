"""Helpers for the single-use token lifecycle.

Activation, password reset and email change grants share one table. At most
one live token exists per (user, type): issuing a new one deletes the rest.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from identity.core.config import settings
from identity.core.security import generate_single_use_token, normalize_to_utc
from identity.models.user_token import UserToken, UserTokenType
from identity.models.user import User
from identity.services.errors import ExpiredTokenError, InvalidTokenError

logger = logging.getLogger(__name__)

ACTIVATION_ENDPOINT = "/activate"
PASSWORD_RESET_ENDPOINT = "/reset"
EMAIL_CHANGE_ENDPOINT = "/email"

_LINK_ENDPOINTS: dict[UserTokenType, str] = {
    UserTokenType.ACTIVATION: ACTIVATION_ENDPOINT,
    UserTokenType.PASSWORD_RESET: PASSWORD_RESET_ENDPOINT,
    UserTokenType.EMAIL_CHANGE: EMAIL_CHANGE_ENDPOINT,
}


def issue_token(
    db: Session,
    user_id: uuid.UUID,
    token_type: UserTokenType,
    validity: timedelta,
    now: datetime,
    payload: Optional[str] = None,
) -> UserToken:
    """Create and persist a new token, replacing any previous one of the same type.

    The owner row is locked first so concurrent issuers for the same user
    serialise. The caller owns the transaction; the new row is flushed but not
    committed.
    """

    db.execute(select(User.id).where(User.id == user_id).with_for_update())
    db.execute(
        delete(UserToken).where(
            UserToken.user_id == user_id,
            UserToken.type == token_type,
        )
    )
    token = UserToken(
        user_id=user_id,
        token=generate_single_use_token(),
        type=token_type,
        payload=payload,
        created_at=now,
        expires_at=now + validity,
    )
    db.add(token)
    db.flush()
    return token


def consume_token(db: Session, raw_token: str, token_type: UserTokenType, now: datetime) -> UserToken:
    """Validate and consume a token of the expected type.

    The token row is removed with a conditional DELETE in the caller's
    transaction. When a concurrent request removed it first, zero rows match
    and :class:`InvalidTokenError` is raised, so a token is spent at most once.
    The returned row is detached; its ``user_id`` and ``payload`` remain
    readable.

    An expired token is deleted the same way before :class:`ExpiredTokenError`
    is raised. Callers commit on that error to keep the cleanup.
    """

    statement = select(UserToken).where(
        UserToken.token == raw_token,
        UserToken.type == token_type,
    )
    token = db.execute(statement).scalar_one_or_none()
    if token is None or token.consumed_at is not None:
        raise InvalidTokenError("Token is invalid.")

    expired = normalize_to_utc(token.expires_at) <= now
    removed = db.execute(
        delete(UserToken)
        .where(UserToken.id == token.id, UserToken.consumed_at.is_(None))
        .execution_options(synchronize_session=False)
    ).rowcount
    db.expunge(token)
    if removed != 1:
        logger.warning(
            "Token consumed concurrently",
            extra={"user_id": str(token.user_id), "token_type": token_type.value},
        )
        raise InvalidTokenError("Token is invalid.")

    if expired:
        logger.info(
            "Expired token discarded",
            extra={"user_id": str(token.user_id), "token_type": token_type.value},
        )
        raise ExpiredTokenError()

    token.consumed_at = now
    return token


def delete_user_tokens(db: Session, user_id: uuid.UUID, token_type: UserTokenType | None = None) -> int:
    statement = delete(UserToken).where(UserToken.user_id == user_id)
    if token_type is not None:
        statement = statement.where(UserToken.type == token_type)
    return db.execute(statement).rowcount or 0


def purge_expired_tokens(db: Session, now: datetime) -> int:
    """Remove every expired token; returns the number of rows deleted."""

    result = db.execute(delete(UserToken).where(UserToken.expires_at <= now))
    return result.rowcount or 0


def build_token_link(token_type: UserTokenType, token: str, domain: str | None = None) -> str:
    """Construct the externally visible link that carries a token."""

    base_url = (domain or settings.user_links_domain).strip().rstrip("/") + _LINK_ENDPOINTS[token_type]
    split = urlsplit(base_url)
    query_params = dict(parse_qsl(split.query, keep_blank_values=True))
    query_params["token"] = token
    new_query = urlencode(query_params)
    return urlunsplit(
        (split.scheme, split.netloc, split.path, new_query, split.fragment)
    )


__all__ = [
    "build_token_link",
    "consume_token",
    "delete_user_tokens",
    "issue_token",
    "purge_expired_tokens",
]
