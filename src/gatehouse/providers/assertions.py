"""Identity assertions — what a sign-in channel claims about the user.

Learn: One tagged union instead of a class per provider. The identity
resolver has a single entry point and branches on the variant:

- LocalAssertion: the credential verifier already proved the password,
  so it carries the account itself.
- ExternalAssertion: a provider exchange validated the provider's tokens
  and hands us the profile. We trust it as-is; signature checks happen
  in the exchange, not here.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from gatehouse.db.models import Account


@dataclass(frozen=True)
class ProviderTokens:
    """Opaque provider credentials stored on the ProviderLink."""

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    token_type: str = "Bearer"
    id_token: Optional[str] = None
    scope: Optional[str] = None


@dataclass(frozen=True)
class LocalAssertion:
    account: Account


@dataclass(frozen=True)
class ExternalAssertion:
    provider: str
    provider_subject_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    tokens: ProviderTokens = field(default_factory=ProviderTokens)
    # None = the provider didn't say. Only consulted by the
    # "verified_email" link policy.
    email_verified: Optional[bool] = None


Assertion = Union[LocalAssertion, ExternalAssertion]
