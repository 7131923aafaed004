"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers. They only extract
the session token from the request and hand it to the AuthService; the
decisions themselves live in the service layer.

The token travels in either of two places:
1. The session cookie (browsers)
2. Authorization: Bearer <token> (API clients)
"""

from typing import Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.config import settings
from gatehouse.db.engine import get_db
from gatehouse.db.models import Account
from gatehouse.providers.config import ProviderConfig, load_provider_config
from gatehouse.services.auth_service import AuthService


def get_provider_config() -> ProviderConfig:
    """Overridable in tests to switch providers or the link policy."""
    return load_provider_config(settings)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    providers: ProviderConfig = Depends(get_provider_config),
) -> AuthService:
    return AuthService(db, providers)


def get_session_token(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> Optional[str]:
    """Session token from the cookie, else from a Bearer header."""
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


async def get_current_account_optional(
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
) -> Optional[Account]:
    """The "soft" dependency — None for anonymous or expired sessions."""
    return await auth.optional_account(token)


async def get_current_account(
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
) -> Account:
    """The "hard" dependency — 401 if the session is missing or dead."""
    return await auth.current_account(token)


def require_role(role: str) -> Callable:
    """Dependency factory: 401 when anonymous, 403 when the role is missing.

    Usage: Depends(require_role("admin"))
    """

    async def role_checker(
        token: Optional[str] = Depends(get_session_token),
        auth: AuthService = Depends(get_auth_service),
    ) -> Account:
        return await auth.require_role(token, role)

    return role_checker
