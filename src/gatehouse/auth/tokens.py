"""Signed session tokens.

Learn: The token is a JWT carrying only the server-side session id ("sid"),
the account id ("sub") and the expiry. The signature makes it
tamper-evident; the session row behind "sid" is what makes it revocable.
Nothing about the account (name, roles) goes in the token — those are
re-read from the database on every request.
"""

from datetime import datetime, timezone

import jwt

from gatehouse.config import settings


class TokenError(Exception):
    """Raised when a token is malformed, forged, or missing claims."""


class TokenExpiredError(TokenError):
    """Raised when a genuine token is past its expiry."""


def create_session_token(
    session_id: str,
    account_id: str,
    expires_at: datetime,
    secret: str | None = None,
) -> str:
    """Create a signed session token."""
    payload = {
        "sid": session_id,
        "sub": account_id,
        "type": "session",
        "iat": datetime.now(timezone.utc),
        "exp": expires_at,
    }
    return jwt.encode(
        payload, secret or settings.session_secret, algorithm=settings.session_algorithm
    )


def decode_session_token(
    token: str,
    secret: str | None = None,
    verify_expiry: bool = True,
) -> dict:
    """Verify and decode a session token.

    Returns the payload dict on success.
    Raises TokenExpiredError or TokenError on failure. The signature is
    always checked; verify_expiry=False only lets logout act on a token
    that has already run out.
    """
    try:
        payload = jwt.decode(
            token,
            secret or settings.session_secret,
            algorithms=[settings.session_algorithm],
            options={"require": ["exp", "sub", "sid"], "verify_exp": verify_expiry},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Session has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != "session":
        raise TokenError("Not a session token")
    return payload
