"""Auth service — the operations the outside world calls.

Learn: Service layer separates business logic from HTTP routing.
API routes and the CLI call this facade; it wires the four components
together in the order a sign-in flows through them:

    credential verifier ─┐
                         ├─► identity resolver ─► session manager
    provider assertion ──┘

and the authorization gate sits on the read side. Every call takes the
session token explicitly — there is no ambient "current user".
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.config import settings
from gatehouse.db.models import Account
from gatehouse.errors import Unauthenticated
from gatehouse.providers.assertions import ExternalAssertion, LocalAssertion
from gatehouse.providers.config import ProviderConfig, load_provider_config
from gatehouse.services import authorization
from gatehouse.services.credential_service import CredentialVerifier
from gatehouse.services.identity_service import IdentityResolver
from gatehouse.services.session_service import SessionManager

logger = structlog.get_logger()


class AuthService:
    """Register, sign in, read the current account, sign out, check roles."""

    def __init__(self, db: AsyncSession, providers: Optional[ProviderConfig] = None):
        self.db = db
        self.credentials = CredentialVerifier(db)
        self.resolver = IdentityResolver(db, providers or load_provider_config(settings))
        self.sessions = SessionManager(db)

    async def register(self, name: str, email: str, password: str) -> tuple[Account, str]:
        """Create a password account and sign it in straight away."""
        account = await self.credentials.register(name, email, password)
        token = await self.sessions.establish(account)
        return account, token

    async def login_local(self, email: str, password: str) -> tuple[Account, str]:
        account = await self.credentials.verify(email, password)
        account = await self.resolver.resolve(LocalAssertion(account))
        token = await self.sessions.establish(account)
        logger.info("auth.login_succeeded", account_id=str(account.id), channel="local")
        return account, token

    async def login_external(self, assertion: ExternalAssertion) -> tuple[Account, str]:
        account = await self.resolver.resolve(assertion)
        token = await self.sessions.establish(account)
        logger.info(
            "auth.login_succeeded",
            account_id=str(account.id),
            channel=assertion.provider,
        )
        return account, token

    async def current_account(self, token: Optional[str]) -> Account:
        """Rehydrate the session. Raises Unauthenticated (expired or invalid)."""
        return await self.sessions.rehydrate(token)

    async def optional_account(self, token: Optional[str]) -> Optional[Account]:
        try:
            return await self.sessions.rehydrate(token)
        except Unauthenticated:
            return None

    async def logout(self, token: Optional[str]) -> None:
        await self.sessions.destroy(token)

    async def require_role(self, token: Optional[str], role: str) -> Account:
        """Raises Unauthenticated (401) or Forbidden (403)."""
        return authorization.require_role(await self.optional_account(token), role)
