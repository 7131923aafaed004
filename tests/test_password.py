"""Password hashing, password policy and session token signing."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from gatehouse.auth.password import (
    hash_password,
    is_valid_email,
    normalize_email,
    password_policy_errors,
    verify_password,
)
from gatehouse.auth.tokens import (
    TokenError,
    TokenExpiredError,
    create_session_token,
    decode_session_token,
)
from gatehouse.config import settings


# ═══════════════════════════════════════════════════════════
# Hashing
# ═══════════════════════════════════════════════════════════


def test_hash_is_salted_and_verifies():
    h1 = hash_password("Correct1Horse")
    h2 = hash_password("Correct1Horse")
    assert h1 != h2
    assert h1.startswith("$2b$")
    assert verify_password("Correct1Horse", h1)
    assert verify_password("Correct1Horse", h2)


def test_wrong_password_does_not_verify():
    assert not verify_password("Wrong1Horse", hash_password("Correct1Horse"))


def test_malformed_hash_is_a_mismatch():
    assert verify_password("Correct1Horse", "not-a-bcrypt-hash") is False


# ═══════════════════════════════════════════════════════════
# Policy
# ═══════════════════════════════════════════════════════════


def test_strong_password_passes_policy():
    assert password_policy_errors("Correct1Horse") == []


def test_policy_reports_every_violation():
    errors = password_policy_errors("abc")
    assert "Password must be at least 8 characters long" in errors
    assert "Password must contain at least one uppercase letter" in errors
    assert "Password must contain at least one number" in errors
    assert "Password must contain at least one lowercase letter" not in errors


def test_policy_rejects_passwords_bcrypt_would_truncate():
    errors = password_policy_errors("Aa1" + "x" * 70)
    assert errors == ["Password must be at most 72 bytes long"]


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("  Ada@Example.COM ", "ada@example.com"),
        ("ada@example.com", "ada@example.com"),
        ("", ""),
    ],
)
def test_normalize_email(raw, expected):
    assert normalize_email(raw) == expected


@pytest.mark.parametrize(
    "email,ok",
    [
        ("ada@example.com", True),
        ("ada@example", False),
        ("ada example.com", False),
        ("@example.com", False),
        ("a" * 250 + "@example.com", False),
    ],
)
def test_is_valid_email(email, ok):
    assert is_valid_email(email) is ok


# ═══════════════════════════════════════════════════════════
# Session tokens
# ═══════════════════════════════════════════════════════════


def _in(hours: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


def test_session_token_round_trip():
    token = create_session_token("sid-1", "acct-1", _in(1))
    payload = decode_session_token(token)
    assert payload["sid"] == "sid-1"
    assert payload["sub"] == "acct-1"
    assert payload["type"] == "session"


def test_expired_session_token():
    token = create_session_token("sid-1", "acct-1", _in(-1))
    with pytest.raises(TokenExpiredError):
        decode_session_token(token)
    # Logout may still read it.
    assert decode_session_token(token, verify_expiry=False)["sid"] == "sid-1"


def test_token_signed_with_another_secret_is_rejected():
    token = create_session_token("sid-1", "acct-1", _in(1), secret="x" * 40)
    with pytest.raises(TokenError):
        decode_session_token(token)


def test_tampered_token_is_rejected():
    token = create_session_token("sid-1", "acct-1", _in(1))
    head, body, sig = token.split(".")
    tampered = ".".join([head, body, sig[::-1]])
    with pytest.raises(TokenError):
        decode_session_token(tampered)


def test_non_session_jwt_is_rejected():
    token = jwt.encode(
        {"sid": "s", "sub": "a", "type": "access", "exp": _in(1)},
        settings.session_secret,
        algorithm=settings.session_algorithm,
    )
    with pytest.raises(TokenError):
        decode_session_token(token)


def test_garbage_is_rejected():
    with pytest.raises(TokenError):
        decode_session_token("not.a.token")
