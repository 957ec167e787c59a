"""Tests for shared input validation rules."""

from __future__ import annotations

import pytest

from identity.core.config import Settings
from identity.services.errors import ValidationError, WeakPasswordError
from identity.services.validation import (
    PasswordPolicy,
    ensure_consents,
    validate_email,
    validate_national_id,
    validate_password,
    validate_platform,
)


def test_validate_email_normalizes_case_and_whitespace():
    assert validate_email("  A@X.com ") == "a@x.com"


@pytest.mark.parametrize("email", ["", "no-at-sign", "two@@x.com", "space in@x.com"])
def test_validate_email_rejects_malformed(email):
    with pytest.raises(ValidationError) as exc_info:
        validate_email(email)
    assert exc_info.value.code == "invalid_email_format"


def test_validate_national_id_strips_whitespace():
    assert validate_national_id(" 1234 5678 9012 ") == "123456789012"


@pytest.mark.parametrize("national_id", ["12345678901", "1234567890123", "12345678901a"])
def test_validate_national_id_requires_twelve_digits(national_id):
    with pytest.raises(ValidationError) as exc_info:
        validate_national_id(national_id)
    assert exc_info.value.code == "invalid_iin"


def test_ensure_consents_requires_both_versions():
    ensure_consents("v1", "v1")
    with pytest.raises(ValidationError) as exc_info:
        ensure_consents("v1", "  ")
    assert exc_info.value.code == "missing_consents"
    with pytest.raises(ValidationError):
        ensure_consents(None, "v1")


def test_default_policy_accepts_letters_and_digits():
    validate_password("Password1!", PasswordPolicy())
    validate_password("abcdefg1", PasswordPolicy())


@pytest.mark.parametrize(
    "password",
    [
        "short1",  # below minimum length
        "abcdefgh",  # no digit
        "12345678",  # digits only
    ],
)
def test_default_policy_rejects_weak_passwords(password):
    with pytest.raises(WeakPasswordError) as exc_info:
        validate_password(password, PasswordPolicy())
    assert exc_info.value.code == "weak_password"


def test_breached_password_is_rejected_case_insensitively():
    policy = PasswordPolicy(min_length=6)
    with pytest.raises(WeakPasswordError, match="breached"):
        validate_password("Password1", policy)


def test_breached_check_can_be_disabled():
    validate_password("password1", PasswordPolicy(forbid_breached_top_n=False))


def test_optional_character_class_rules():
    policy = PasswordPolicy(require_upper=True, require_symbol=True)
    with pytest.raises(WeakPasswordError, match="uppercase"):
        validate_password("password12!", policy)
    with pytest.raises(WeakPasswordError, match="symbol"):
        validate_password("Password12", policy)
    validate_password("Password12!", policy)


def test_policy_reads_settings(monkeypatch):
    monkeypatch.setenv("PASSWORD_MIN_LENGTH", "12")
    monkeypatch.setenv("PASSWORD_REQUIRE_SYMBOL", "true")

    policy = PasswordPolicy.from_settings(Settings())

    assert policy.min_length == 12
    assert policy.require_symbol is True
    assert policy.as_dict()["require_digit"] is True


def test_validate_platform_allow_list():
    assert validate_platform(" iOS ") == "ios"
    with pytest.raises(ValidationError):
        validate_platform("smartwatch")
