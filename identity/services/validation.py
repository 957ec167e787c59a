"""Storage-agnostic input rules shared by registration and auth flows."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Optional

from identity.core.config import Settings, settings
from identity.services.errors import ValidationError, WeakPasswordError

NATIONAL_ID_LENGTH = 12

ALLOWED_PLATFORMS = frozenset({"web", "ios", "android", "desktop"})

BREACHED_PASSWORDS = frozenset(
    {"123456", "password", "qwerty", "12345678", "111111", "password1"}
)

_EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+$")


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    require_upper: bool = False
    require_lower: bool = False
    require_digit: bool = True
    require_symbol: bool = False
    forbid_breached_top_n: bool = True

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "PasswordPolicy":
        source = source or settings
        return cls(
            min_length=source.password_min_length,
            require_upper=source.password_require_upper,
            require_lower=source.password_require_lower,
            require_digit=source.password_require_digit,
            require_symbol=source.password_require_symbol,
            forbid_breached_top_n=source.password_forbid_breached,
        )

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email(email: str) -> str:
    """Return the normalized address or raise when the format is wrong."""

    normalized = normalize_email(email)
    if not _EMAIL_PATTERN.match(normalized):
        raise ValidationError("Email format is invalid.", code="invalid_email_format")
    return normalized


def normalize_national_id(national_id: str) -> str:
    return "".join(national_id.split())


def validate_national_id(national_id: str) -> str:
    normalized = normalize_national_id(national_id)
    if len(normalized) != NATIONAL_ID_LENGTH or not normalized.isdigit():
        raise ValidationError(
            f"IIN must contain {NATIONAL_ID_LENGTH} digits.",
            code="invalid_iin",
        )
    return normalized


def ensure_consents(terms_version: Optional[str], privacy_version: Optional[str]) -> None:
    if not (terms_version and terms_version.strip()) or not (privacy_version and privacy_version.strip()):
        raise ValidationError("Required consents are missing.", code="missing_consents")


def validate_password(password: str, policy: PasswordPolicy) -> None:
    """Apply every policy rule; the first failing rule is reported."""

    if len(password) < policy.min_length:
        raise WeakPasswordError(f"Password must be at least {policy.min_length} characters long.")

    has_lower = any(char.islower() for char in password)
    has_upper = any(char.isupper() for char in password)
    has_digit = any(char.isdigit() for char in password)
    has_symbol = any(not char.isalnum() for char in password)

    if policy.require_lower and not has_lower:
        raise WeakPasswordError("Password must contain a lowercase letter.")
    if policy.require_upper and not has_upper:
        raise WeakPasswordError("Password must contain an uppercase letter.")
    if policy.require_digit and not has_digit:
        raise WeakPasswordError("Password must contain a digit.")
    if policy.require_symbol and not has_symbol:
        raise WeakPasswordError("Password must contain a symbol.")
    if sum((has_lower, has_upper, has_digit, has_symbol)) < 2:
        raise WeakPasswordError("Password must include at least two character classes.")
    if policy.forbid_breached_top_n and password.lower() in BREACHED_PASSWORDS:
        raise WeakPasswordError("Password is in the list of breached passwords.")


def validate_platform(platform: str) -> str:
    normalized = platform.strip().lower()
    if normalized not in ALLOWED_PLATFORMS:
        raise ValidationError(f"Unsupported platform: {platform}.")
    return normalized


__all__ = [
    "ALLOWED_PLATFORMS",
    "BREACHED_PASSWORDS",
    "NATIONAL_ID_LENGTH",
    "PasswordPolicy",
    "ensure_consents",
    "normalize_email",
    "normalize_national_id",
    "validate_email",
    "validate_national_id",
    "validate_password",
    "validate_platform",
]
