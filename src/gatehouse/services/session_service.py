"""Session manager — login sessions backed by the database.

Learn: A session has two halves:
- a row in auth_sessions (random id, account id, expiry) — the server's
  record that the session is alive;
- a signed token given to the client, naming that row.

establish() writes the row and signs the token. rehydrate() checks the
signature, finds the row, then re-reads the account and roles fresh — no
caching, so a revoked role is gone on the very next request. destroy()
deletes the row, which kills the token immediately even though its
signature is still valid.

Expired sessions look exactly like missing ones to the caller: both end
up as "not authenticated".
"""

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.tokens import (
    TokenError,
    TokenExpiredError,
    create_session_token,
    decode_session_token,
)
from gatehouse.config import settings
from gatehouse.db.guard import bounded
from gatehouse.db.models import Account, AuthSession, utcnow
from gatehouse.errors import SessionExpired, SessionInvalid, TransientStoreFailure
from gatehouse.events.store import EventStore
from gatehouse.events.types import SESSION_DESTROYED, SESSION_ESTABLISHED
from gatehouse.services.account_service import AccountService

logger = structlog.get_logger()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we store is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionManager:
    """Create, read and destroy login sessions."""

    def __init__(self, db: AsyncSession, ttl_seconds: Optional[int] = None):
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds or settings.session_ttl_seconds)
        self.accounts = AccountService(db)
        self.events = EventStore(db)

    async def establish(self, account: Account) -> str:
        """Start a session for the account and return its token."""
        session_id = secrets.token_urlsafe(32)
        expires_at = utcnow() + self.ttl
        self.db.add(
            AuthSession(id=session_id, account_id=account.id, expires_at=expires_at)
        )
        await self.events.append(
            stream_id=f"account:{account.id}",
            event_type=SESSION_ESTABLISHED,
            data={"expires_at": expires_at.isoformat()},
        )
        try:
            await bounded(self.db.commit())
        except TransientStoreFailure:
            await self.db.rollback()
            raise

        logger.info("session.established", account_id=str(account.id))
        return create_session_token(session_id, str(account.id), expires_at)

    async def rehydrate(self, token: Optional[str]) -> Account:
        """Return the account behind a live session token.

        Raises SessionInvalid (missing, forged, unknown, destroyed) or
        SessionExpired.
        """
        if not token:
            raise SessionInvalid()
        try:
            payload = decode_session_token(token)
        except TokenExpiredError:
            raise SessionExpired()
        except TokenError:
            raise SessionInvalid()

        record = await self._get_record(payload["sid"])
        if record is None or str(record.account_id) != payload["sub"]:
            raise SessionInvalid()
        if _as_utc(record.expires_at) <= utcnow():
            raise SessionExpired()

        account = await self.accounts.get(record.account_id)
        if account is None:
            raise SessionInvalid()
        return account

    async def destroy(self, token: Optional[str]) -> None:
        """End a session. Unknown, destroyed or garbled tokens are a no-op."""
        if not token:
            return
        try:
            payload = decode_session_token(token, verify_expiry=False)
        except TokenError:
            return

        record = await self._get_record(payload["sid"])
        if record is None:
            return

        await self.db.delete(record)
        await self.events.append(
            stream_id=f"account:{record.account_id}",
            event_type=SESSION_DESTROYED,
            data={},
        )
        await bounded(self.db.commit())
        logger.info("session.destroyed", account_id=str(record.account_id))

    async def destroy_all(self, account_id: uuid.UUID) -> int:
        """End every session of an account (e.g. after a role revocation)."""
        result = await bounded(
            self.db.execute(delete(AuthSession).where(AuthSession.account_id == account_id))
        )
        await bounded(self.db.commit())
        return result.rowcount or 0

    async def purge_expired(self) -> int:
        """Delete session rows past their expiry. Returns how many were removed."""
        result = await bounded(
            self.db.execute(
                delete(AuthSession)
                .where(AuthSession.expires_at <= utcnow())
                .execution_options(synchronize_session="fetch")
            )
        )
        await bounded(self.db.commit())
        if result.rowcount:
            logger.info("session.purged", count=result.rowcount)
        return result.rowcount or 0

    async def _get_record(self, session_id: str) -> Optional[AuthSession]:
        result = await bounded(
            self.db.execute(select(AuthSession).where(AuthSession.id == session_id))
        )
        return result.scalars().first()
