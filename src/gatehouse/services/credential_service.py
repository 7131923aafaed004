"""Credential verifier — local email/password sign-in and registration.

Learn: Failure messages are deliberately boring. "No such email" and
"wrong password" both come back as InvalidCredentials, so the login form
can't be used to enumerate accounts. The single exception is an account
that exists without a password: telling that user to use Google or Apple
is worth the small disclosure.

bcrypt is CPU-bound (~100ms), so hashing runs in a worker thread to keep
the event loop serving other requests.
"""

import asyncio
from functools import lru_cache

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.password import (
    hash_password,
    is_valid_email,
    normalize_email,
    password_policy_errors,
    verify_password,
)
from gatehouse.db.guard import bounded
from gatehouse.db.models import Account
from gatehouse.errors import (
    Conflict,
    InvalidCredentials,
    NoPasswordChannel,
    TransientStoreFailure,
    ValidationError,
)
from gatehouse.events.store import EventStore
from gatehouse.events.types import ACCOUNT_REGISTERED
from gatehouse.services.account_service import AccountService

logger = structlog.get_logger()


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    # Compared against when the email is unknown, so both paths cost one bcrypt check.
    return hash_password("gatehouse-timing-equalizer")


class CredentialVerifier:
    """Verify and register local email/password credentials."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.accounts = AccountService(db)
        self.events = EventStore(db)

    async def verify(self, email: str, password: str) -> Account:
        """Return the account for a correct email/password pair.

        Raises ValidationError, InvalidCredentials or NoPasswordChannel.
        """
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")

        account = await self.accounts.get_by_email(email)
        if account is None:
            await asyncio.to_thread(verify_password, password, _dummy_hash())
            logger.info("auth.login_failed", reason="unknown_email")
            raise InvalidCredentials()

        if not account.password_hash:
            logger.info("auth.login_failed", reason="no_password", account_id=str(account.id))
            raise NoPasswordChannel()

        ok = await asyncio.to_thread(verify_password, password, account.password_hash)
        if not ok:
            logger.info("auth.login_failed", reason="bad_password", account_id=str(account.id))
            raise InvalidCredentials()

        return account

    async def register(self, name: str, email: str, password: str) -> Account:
        """Create a password account.

        Raises ValidationError for bad input and Conflict if the email is taken.
        """
        name = (name or "").strip()
        email = normalize_email(email)
        if not name or not email or not password:
            raise ValidationError("Name, email, and password are required")
        if len(name) > 100:
            raise ValidationError("Name must be at most 100 characters")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")
        errors = password_policy_errors(password)
        if errors:
            raise ValidationError(", ".join(errors))

        if await self.accounts.get_by_email(email):
            raise Conflict()

        password_hash = await asyncio.to_thread(hash_password, password)
        account = Account(name=name, email=email, password_hash=password_hash)
        self.db.add(account)
        try:
            await bounded(self.db.flush())
            await self.events.append(
                stream_id=f"account:{account.id}",
                event_type=ACCOUNT_REGISTERED,
                data={"email": email},
            )
            await bounded(self.db.commit())
        except IntegrityError:
            # Lost a race with a concurrent registration or federation.
            await self.db.rollback()
            raise Conflict()
        except TransientStoreFailure:
            await self.db.rollback()
            raise

        logger.info("auth.registered", account_id=str(account.id))
        return await self.accounts.get(account.id)
