"""Identity resolver — find-or-create and account linking.

Learn: Tests cover the four paths an external sign-in can take:
1. New email → account + first link created together
2. Known link → tokens refreshed, nothing new created
3. Known email, new provider → link attached to the existing account
4. Local assertion → the verified account passes straight through
plus the rejections (missing email, unknown provider, link refused) and
the retry loop that settles concurrent first sign-ins.
"""

import pytest
from sqlalchemy import func, select

from gatehouse.db.models import Account, ProviderLink
from gatehouse.events.store import EventStore
from gatehouse.errors import (
    LinkNotPermitted,
    MissingEmailClaim,
    TransientStoreFailure,
    UnknownProvider,
    ValidationError,
)
from gatehouse.providers.assertions import LocalAssertion, ProviderTokens
from gatehouse.providers.config import ProviderConfig
from gatehouse.services.credential_service import CredentialVerifier
from gatehouse.services.identity_service import IdentityResolver

from conftest import STRONG_PASSWORD, apple_assertion, google_assertion


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _event_types(db, account_id) -> list[str]:
    events = await EventStore(db).read_stream(f"account:{account_id}")
    return [e.type for e in events]


# ═══════════════════════════════════════════════════════════
# New account
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_first_sign_in_creates_account_with_link(db_session, providers):
    account = await IdentityResolver(db_session, providers).resolve(google_assertion())

    assert account.email == "ada@example.com"
    assert account.name == "Ada Lovelace"
    assert account.picture == "https://example.com/ada.png"
    assert account.password_hash is None
    assert len(account.provider_links) == 1
    link = account.provider_links[0]
    assert (link.provider, link.provider_subject_id) == ("google", "g-1001")
    assert link.access_token == "ga-1"
    assert link.refresh_token == "gr-1"
    assert await _event_types(db_session, account.id) == [
        "account.created",
        "provider.linked",
    ]


@pytest.mark.asyncio
async def test_email_from_provider_is_normalized(db_session, providers):
    account = await IdentityResolver(db_session, providers).resolve(
        google_assertion(email="  ADA@Example.com ")
    )
    assert account.email == "ada@example.com"


@pytest.mark.asyncio
async def test_name_falls_back_to_email_local_part(db_session, providers):
    account = await IdentityResolver(db_session, providers).resolve(
        apple_assertion(name=None, email="grace.hopper@example.com")
    )
    assert account.name == "grace.hopper"


# ═══════════════════════════════════════════════════════════
# Returning sign-in
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_repeat_sign_in_is_idempotent(db_session, providers):
    resolver = IdentityResolver(db_session, providers)
    first = await resolver.resolve(google_assertion())
    second = await resolver.resolve(google_assertion())

    assert second.id == first.id
    assert await _count(db_session, Account) == 1
    assert await _count(db_session, ProviderLink) == 1


@pytest.mark.asyncio
async def test_repeat_sign_in_refreshes_tokens(db_session, providers):
    resolver = IdentityResolver(db_session, providers)
    await resolver.resolve(google_assertion())
    account = await resolver.resolve(
        google_assertion(tokens=ProviderTokens(access_token="ga-2", refresh_token="gr-2"))
    )
    link = account.provider_links[0]
    assert link.access_token == "ga-2"
    assert link.refresh_token == "gr-2"
    assert (await _event_types(db_session, account.id))[-1] == "provider.tokens_refreshed"


@pytest.mark.asyncio
async def test_missing_refresh_token_keeps_the_stored_one(db_session, providers):
    resolver = IdentityResolver(db_session, providers)
    await resolver.resolve(google_assertion())
    account = await resolver.resolve(
        google_assertion(tokens=ProviderTokens(access_token="ga-2"))
    )
    link = account.provider_links[0]
    assert link.access_token == "ga-2"
    assert link.refresh_token == "gr-1"


@pytest.mark.asyncio
async def test_latest_profile_wins_but_blank_fields_do_not_erase(db_session, providers):
    resolver = IdentityResolver(db_session, providers)
    await resolver.resolve(google_assertion())

    account = await resolver.resolve(
        google_assertion(name="Ada King", picture="https://example.com/new.png")
    )
    assert account.name == "Ada King"
    assert account.picture == "https://example.com/new.png"

    account = await resolver.resolve(google_assertion(name="   ", picture=None))
    assert account.name == "Ada King"
    assert account.picture == "https://example.com/new.png"


# ═══════════════════════════════════════════════════════════
# Account linking
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_second_provider_links_to_existing_account(db_session, providers):
    resolver = IdentityResolver(db_session, providers)
    google = await resolver.resolve(google_assertion())
    apple = await resolver.resolve(apple_assertion())

    assert apple.id == google.id
    assert sorted(link.provider for link in apple.provider_links) == ["apple", "google"]
    # Apple sent no name; the Google one stays.
    assert apple.name == "Ada Lovelace"
    assert await _count(db_session, Account) == 1


@pytest.mark.asyncio
async def test_provider_links_to_password_account(db_session, providers):
    local = await CredentialVerifier(db_session).register(
        "Ada", "ada@example.com", STRONG_PASSWORD
    )
    account = await IdentityResolver(db_session, providers).resolve(google_assertion())

    assert account.id == local.id
    assert account.password_hash is not None
    assert [link.provider for link in account.provider_links] == ["google"]
    assert (await _event_types(db_session, account.id))[-1] == "provider.linked"


@pytest.mark.asyncio
async def test_verified_email_policy_refuses_unverified_link(db_session):
    strict = ProviderConfig(providers=("google", "apple"), link_policy="verified_email")
    resolver = IdentityResolver(db_session, strict)
    await resolver.resolve(google_assertion())

    with pytest.raises(LinkNotPermitted):
        await resolver.resolve(apple_assertion(email_verified=False))
    with pytest.raises(LinkNotPermitted):
        await resolver.resolve(apple_assertion(email_verified=None))

    account = await resolver.resolve(apple_assertion(email_verified=True))
    assert len(account.provider_links) == 2


@pytest.mark.asyncio
async def test_verified_email_policy_still_creates_new_accounts(db_session):
    strict = ProviderConfig(providers=("google",), link_policy="verified_email")
    account = await IdentityResolver(db_session, strict).resolve(
        google_assertion(email_verified=None)
    )
    assert len(account.provider_links) == 1


@pytest.mark.asyncio
async def test_second_identity_of_same_provider_is_refused(db_session, providers):
    resolver = IdentityResolver(db_session, providers)
    await resolver.resolve(google_assertion())
    with pytest.raises(LinkNotPermitted):
        await resolver.resolve(google_assertion(provider_subject_id="g-other"))
    assert await _count(db_session, ProviderLink) == 1


@pytest.mark.asyncio
async def test_subject_linked_under_another_email_is_refused(db_session, providers):
    resolver = IdentityResolver(db_session, providers)
    await resolver.resolve(google_assertion())
    with pytest.raises(LinkNotPermitted):
        await resolver.resolve(google_assertion(email="ada.new@example.com"))
    assert await _count(db_session, Account) == 1


# ═══════════════════════════════════════════════════════════
# Local assertions
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_local_assertion_passes_through(db_session, providers):
    local = await CredentialVerifier(db_session).register(
        "Ada", "ada@example.com", STRONG_PASSWORD
    )
    account = await IdentityResolver(db_session, providers).resolve(LocalAssertion(local))
    assert account is local
    assert await _count(db_session, ProviderLink) == 0


# ═══════════════════════════════════════════════════════════
# Rejections
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize("email", [None, "", "   "])
async def test_missing_email_claim(db_session, providers, email):
    with pytest.raises(MissingEmailClaim):
        await IdentityResolver(db_session, providers).resolve(google_assertion(email=email))
    assert await _count(db_session, Account) == 0


@pytest.mark.asyncio
async def test_malformed_provider_email(db_session, providers):
    with pytest.raises(ValidationError):
        await IdentityResolver(db_session, providers).resolve(
            google_assertion(email="not-an-email")
        )


@pytest.mark.asyncio
async def test_disabled_provider_is_unknown(db_session):
    google_only = ProviderConfig(providers=("google",))
    with pytest.raises(UnknownProvider):
        await IdentityResolver(db_session, google_only).resolve(apple_assertion())
    assert await _count(db_session, Account) == 0


@pytest.mark.asyncio
async def test_missing_subject_id(db_session, providers):
    with pytest.raises(ValidationError):
        await IdentityResolver(db_session, providers).resolve(
            google_assertion(provider_subject_id="")
        )


# ═══════════════════════════════════════════════════════════
# Lost races
# ═══════════════════════════════════════════════════════════


def _stale_first_lookup(monkeypatch, resolver, times=1):
    """Make the first N lookups miss, as if a concurrent sign-in committed
    right after we looked."""
    real_by_email = resolver.accounts.get_by_email
    real_owner = resolver._find_link_owner
    calls = {"email": 0, "owner": 0}

    async def by_email(email):
        calls["email"] += 1
        if calls["email"] <= times:
            return None
        return await real_by_email(email)

    async def owner(assertion):
        calls["owner"] += 1
        if calls["owner"] <= times:
            return None
        return await real_owner(assertion)

    monkeypatch.setattr(resolver.accounts, "get_by_email", by_email)
    monkeypatch.setattr(resolver, "_find_link_owner", owner)
    return calls


@pytest.mark.asyncio
async def test_lost_race_retries_and_returns_winner(db_session, providers, monkeypatch):
    winner = await IdentityResolver(db_session, providers).resolve(google_assertion())
    winner_id = winner.id

    resolver = IdentityResolver(db_session, providers)
    calls = _stale_first_lookup(monkeypatch, resolver)
    account = await resolver.resolve(google_assertion())

    assert account.id == winner_id
    assert calls["email"] == 2
    assert await _count(db_session, Account) == 1
    assert await _count(db_session, ProviderLink) == 1


@pytest.mark.asyncio
async def test_retries_are_bounded(db_session, providers, monkeypatch):
    await IdentityResolver(db_session, providers).resolve(google_assertion())

    resolver = IdentityResolver(db_session, providers, max_attempts=2)
    _stale_first_lookup(monkeypatch, resolver, times=5)
    with pytest.raises(TransientStoreFailure):
        await resolver.resolve(google_assertion())
    assert await _count(db_session, Account) == 1
