"""Identity resolver — map a proven identity onto the canonical account.

Learn: This is where the three sign-in channels meet. Local assertions are
already an account (the password was checked upstream). External
assertions go through find-or-create:

    provider profile ──► account by email? ──no──► create account + link
                                │
                               yes
                                │
                 link (provider, subject) on it? ──yes──► refresh tokens
                                │
                               no ──► attach a new link (account linking)
                                │
                   refresh name/picture from the profile

The read-then-write sequence races with concurrent sign-ins for the same
email. We don't lock; the database's unique constraints decide the winner.
The loser's commit raises IntegrityError, it rolls back, and resolution
restarts from the lookup — where it now finds the winner's rows.

Account linking trusts the provider's email claim. With link_policy
"verified_email" a new provider is only attached when the provider
vouched for the address (email_verified=True).
"""

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.password import is_valid_email, normalize_email
from gatehouse.config import settings
from gatehouse.db.guard import bounded
from gatehouse.db.models import Account, ProviderLink
from gatehouse.errors import (
    LinkNotPermitted,
    MissingEmailClaim,
    TransientStoreFailure,
    UnknownProvider,
    ValidationError,
)
from gatehouse.events.store import EventStore
from gatehouse.events.types import (
    ACCOUNT_CREATED,
    PROVIDER_LINKED,
    PROVIDER_TOKENS_REFRESHED,
)
from gatehouse.providers.assertions import Assertion, ExternalAssertion, LocalAssertion
from gatehouse.providers.config import ProviderConfig
from gatehouse.services.account_service import AccountService

logger = structlog.get_logger()

NAME_MAX_LENGTH = 100


class IdentityResolver:
    """Find or create the account behind an identity assertion."""

    def __init__(
        self,
        db: AsyncSession,
        providers: ProviderConfig,
        max_attempts: Optional[int] = None,
    ):
        self.db = db
        self.providers = providers
        self.max_attempts = max_attempts or settings.resolve_max_attempts
        self.accounts = AccountService(db)
        self.events = EventStore(db)

    async def resolve(self, assertion: Assertion) -> Account:
        if isinstance(assertion, LocalAssertion):
            return assertion.account
        if isinstance(assertion, ExternalAssertion):
            return await self._resolve_external(assertion)
        raise TypeError(f"Unsupported assertion: {type(assertion).__name__}")

    # ─── External channel ───────────────────────────────

    async def _resolve_external(self, assertion: ExternalAssertion) -> Account:
        if not self.providers.is_enabled(assertion.provider):
            raise UnknownProvider()
        if not assertion.provider_subject_id:
            raise ValidationError("Provider profile has no subject id")

        email = normalize_email(assertion.email or "")
        if not email:
            raise MissingEmailClaim()
        if not is_valid_email(email):
            raise ValidationError("Provider returned a malformed email address")

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._resolve_once(assertion, email)
            except IntegrityError:
                # A concurrent sign-in created the account or link first.
                await self.db.rollback()
                logger.warning(
                    "identity.resolve_conflict",
                    provider=assertion.provider,
                    attempt=attempt,
                )
            except TransientStoreFailure:
                # A timed-out flush leaves the session unusable until rolled back.
                await self.db.rollback()
                raise

        raise TransientStoreFailure()

    async def _resolve_once(self, assertion: ExternalAssertion, email: str) -> Account:
        owner = await self._find_link_owner(assertion)
        account = await self.accounts.get_by_email(email)

        if owner is not None and (account is None or owner != account.id):
            # The provider identity already belongs to an account under a
            # different email. Email is the matching key; don't move the link.
            logger.warning(
                "identity.subject_bound_elsewhere",
                provider=assertion.provider,
                owner_id=str(owner),
            )
            raise LinkNotPermitted(
                f"This {assertion.provider} identity is already linked to another account"
            )

        if account is None:
            return await self._create_account(assertion, email)
        return await self._update_account(account, assertion)

    async def _find_link_owner(self, assertion: ExternalAssertion):
        result = await bounded(
            self.db.execute(
                select(ProviderLink.account_id).where(
                    ProviderLink.provider == assertion.provider,
                    ProviderLink.provider_subject_id == assertion.provider_subject_id,
                )
            )
        )
        return result.scalars().first()

    async def _create_account(self, assertion: ExternalAssertion, email: str) -> Account:
        """Account and its first link in one commit — never one without the other."""
        account = Account(
            email=email,
            name=_display_name(assertion.name, email),
            picture=assertion.picture,
            provider_links=[_new_link(assertion)],
        )
        self.db.add(account)
        await bounded(self.db.flush())

        stream = f"account:{account.id}"
        await self.events.append(
            stream_id=stream,
            event_type=ACCOUNT_CREATED,
            data={"email": email, "provider": assertion.provider},
        )
        await self.events.append(
            stream_id=stream,
            event_type=PROVIDER_LINKED,
            data={"provider": assertion.provider, "auto_linked": False},
        )
        await bounded(self.db.commit())

        logger.info(
            "identity.account_created",
            account_id=str(account.id),
            provider=assertion.provider,
        )
        return await self.accounts.get(account.id)

    async def _update_account(self, account: Account, assertion: ExternalAssertion) -> Account:
        stream = f"account:{account.id}"
        link = _matching_link(account, assertion)

        if link is not None:
            _refresh_tokens(link, assertion)
            await self.events.append(
                stream_id=stream,
                event_type=PROVIDER_TOKENS_REFRESHED,
                data={"provider": assertion.provider},
            )
        else:
            self._check_link_allowed(account, assertion)
            account.provider_links.append(_new_link(assertion))
            await self.events.append(
                stream_id=stream,
                event_type=PROVIDER_LINKED,
                data={
                    "provider": assertion.provider,
                    "auto_linked": True,
                    "email_verified": assertion.email_verified,
                },
            )
            logger.info(
                "identity.provider_linked",
                account_id=str(account.id),
                provider=assertion.provider,
            )

        # Last writer wins: the freshest profile is the display profile.
        if assertion.name and assertion.name.strip():
            account.name = assertion.name.strip()[:NAME_MAX_LENGTH]
        if assertion.picture:
            account.picture = assertion.picture

        await bounded(self.db.commit())
        return await self.accounts.get(account.id)

    def _check_link_allowed(self, account: Account, assertion: ExternalAssertion) -> None:
        if account.link_for(assertion.provider) is not None:
            raise LinkNotPermitted(
                f"This account is already linked to a different {assertion.provider} identity"
            )
        if self.providers.link_policy == "verified_email" and assertion.email_verified is not True:
            logger.warning(
                "identity.link_refused",
                account_id=str(account.id),
                provider=assertion.provider,
                reason="email_not_verified",
            )
            raise LinkNotPermitted()


def _display_name(name: Optional[str], email: str) -> str:
    # Apple only sends the name on the very first authorization.
    cleaned = (name or "").strip()
    return (cleaned or email.split("@", 1)[0])[:NAME_MAX_LENGTH]


def _matching_link(account: Account, assertion: ExternalAssertion) -> Optional[ProviderLink]:
    for link in account.provider_links:
        if (
            link.provider == assertion.provider
            and link.provider_subject_id == assertion.provider_subject_id
        ):
            return link
    return None


def _new_link(assertion: ExternalAssertion) -> ProviderLink:
    tokens = assertion.tokens
    return ProviderLink(
        provider=assertion.provider,
        provider_subject_id=assertion.provider_subject_id,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_expiry=tokens.expires_at,
        token_type=tokens.token_type,
        id_token=tokens.id_token,
        scope=tokens.scope,
    )


def _refresh_tokens(link: ProviderLink, assertion: ExternalAssertion) -> None:
    """Token fields only; the link's identity never changes."""
    tokens = assertion.tokens
    link.access_token = tokens.access_token
    # Providers usually issue a refresh token only on first consent.
    if tokens.refresh_token:
        link.refresh_token = tokens.refresh_token
    link.token_expiry = tokens.expires_at
    link.token_type = tokens.token_type
    link.id_token = tokens.id_token
    link.scope = tokens.scope
