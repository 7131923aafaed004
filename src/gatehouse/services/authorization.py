"""Authorization gate — pure pass/reject decisions on a rehydrated account.

Learn: No I/O, no side effects. The session manager already did the
expensive part (rehydrating the account with its roles); these just look
at the result. That makes them safe to run on every protected request and
trivial to test.

401 means "we don't know who you are", 403 means "we do, and no". The
forbidden message names only the role that was required, never the roles
that exist.
"""

from typing import Optional

from gatehouse.db.models import Account
from gatehouse.errors import Forbidden, Unauthenticated


def require_authenticated(account: Optional[Account]) -> Account:
    if account is None:
        raise Unauthenticated()
    return account


def require_role(account: Optional[Account], role: str) -> Account:
    account = require_authenticated(account)
    if not account.has_role(role):
        raise Forbidden(f"Forbidden - {role.capitalize()} access required")
    return account
