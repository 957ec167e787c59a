"""Security helpers for password hashing, JWT signing and opaque token handling."""

from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from jose import JWTError, jwt
from passlib.context import CryptContext

from identity.core.config import settings


class PasswordHasher(Protocol):
    """Opaque hash/verify capability used by the engine."""

    def hash(self, plaintext: str) -> str: ...

    def verify(self, plaintext: str, hashed: str) -> bool: ...

    def dummy_verify(self) -> None: ...


class AccessTokenSigner(Protocol):
    """Issues and verifies self-contained bearer tokens."""

    def issue(self, subject: uuid.UUID, claims: dict[str, Any], ttl: timedelta, *, now: datetime) -> str: ...

    def verify(self, token: str) -> dict[str, Any] | None: ...


class BcryptPasswordHasher:
    """Password hasher backed by a passlib bcrypt context."""

    def __init__(self, rounds: int | None = None) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds or settings.password_hash_rounds,
        )

    def hash(self, plaintext: str) -> str:
        """Hash a plaintext password using a secure bcrypt context."""
        return self._context.hash(plaintext)

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Verify a plaintext password against a hashed password."""
        if not hashed:
            return False
        return self._context.verify(plaintext, hashed)

    def dummy_verify(self) -> None:
        """Spend the time of a real verification when there is no hash to check."""
        self._context.dummy_verify()


class JwtAccessTokenSigner:
    """HMAC-signed JWT access tokens."""

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        issuer: str | None = None,
    ) -> None:
        self._secret_key = secret_key or settings.secret_key
        self._algorithm = algorithm or settings.jwt_algorithm
        self._issuer = issuer or settings.jwt_issuer

    def issue(self, subject: uuid.UUID, claims: dict[str, Any], ttl: timedelta, *, now: datetime) -> str:
        """Create a signed JWT access token.

        Args:
            subject: Identifier for the token subject (stringified into ``sub``).
            claims: Additional claims to include in the token payload.
            ttl: Lifetime of the token measured from ``now``.
            now: Issue instant, supplied by the caller's clock.
        """

        payload: dict[str, Any] = {
            "sub": str(subject),
            "iss": self._issuer,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        }
        payload.update(claims)
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> dict[str, Any] | None:
        """Return the token claims, or ``None`` when the token is not valid."""

        try:
            return jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
            )
        except JWTError:
            return None


def hash_token(raw_token: str) -> str:
    """One-way digest used to persist refresh tokens."""

    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_refresh_token() -> str:
    return f"rt_{uuid.uuid4()}_{secrets.token_hex(32)}"


def generate_single_use_token() -> str:
    return secrets.token_urlsafe(32)


def normalize_to_utc(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware in UTC."""

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


__all__ = [
    "AccessTokenSigner",
    "BcryptPasswordHasher",
    "JwtAccessTokenSigner",
    "PasswordHasher",
    "generate_refresh_token",
    "generate_single_use_token",
    "hash_token",
    "normalize_to_utc",
]
