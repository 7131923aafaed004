"""Auth API — registration, sign-in, current account, sign-out.

Learn: Routes for the public side of authentication:
- POST /auth/register → create a password account and sign it in
- POST /auth/login → email/password → session
- POST /auth/{provider}/callback → provider exchange → session
- GET /auth/me → current account (401 if not signed in)
- POST /auth/logout → end the session (always succeeds)
- GET /auth/status → {"authenticated": bool}

Every successful sign-in sets the session cookie AND returns the token in
the body, so browsers and API clients use the same endpoints.
Errors are raised as GatehouseError subclasses and turned into JSON by
the handler installed in main.py.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from gatehouse.auth.dependencies import (
    get_auth_service,
    get_current_account,
    get_current_account_optional,
    get_session_token,
)
from gatehouse.config import settings
from gatehouse.db.models import Account
from gatehouse.errors import UnknownProvider, ValidationError
from gatehouse.providers.exchange import ExchangeRegistry
from gatehouse.schemas.auth import (
    AccountRead,
    AuthResponse,
    LoginRequest,
    ProviderCallback,
    RegisterRequest,
    StatusResponse,
)
from gatehouse.services.auth_service import AuthService

router = APIRouter(prefix="/auth")


def get_exchange_registry(request: Request) -> ExchangeRegistry:
    return request.app.state.exchanges


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


def _signed_in(response: Response, message: str, account: Account, token: str) -> AuthResponse:
    _set_session_cookie(response, token)
    return AuthResponse(
        message=message,
        user=AccountRead.from_account(account),
        session_token=token,
    )


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """Create a new account and log it in."""
    account, token = await auth.register(body.name, body.email, body.password)
    return _signed_in(response, "Registration successful", account, token)


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """Login with email and password."""
    account, token = await auth.login_local(body.email, body.password)
    return _signed_in(response, "Login successful", account, token)


# ─── External providers ─────────────────────────────────


@router.post("/{provider}/callback", response_model=AuthResponse)
async def provider_callback(
    provider: str,
    body: ProviderCallback,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    registry: ExchangeRegistry = Depends(get_exchange_registry),
):
    """Finish a provider sign-in.

    Learn: The exchange (deployment-supplied) validates the callback with
    the provider and returns a verified profile; we only resolve it.
    """
    if not auth.resolver.providers.is_enabled(provider):
        raise UnknownProvider()
    exchange = registry.get(provider)
    if exchange is None:
        raise HTTPException(
            status_code=501, detail=f"Sign-in with {provider} is not available"
        )

    assertion = await exchange.exchange(body.params)
    if assertion.provider != provider:
        raise ValidationError("Provider profile does not match the callback")

    account, token = await auth.login_external(assertion)
    return _signed_in(response, "Login successful", account, token)


# ─── Current account ────────────────────────────────────


@router.get("/me", response_model=AccountRead)
async def get_me(account: Account = Depends(get_current_account)):
    """Get the current authenticated account."""
    return AccountRead.from_account(account)


@router.get("/status", response_model=StatusResponse)
async def status(account: Optional[Account] = Depends(get_current_account_optional)):
    return StatusResponse(authenticated=account is not None)


# ─── Logout ─────────────────────────────────────────────


@router.post("/logout")
async def logout(
    response: Response,
    token: Optional[str] = Depends(get_session_token),
    auth: AuthService = Depends(get_auth_service),
):
    """End the session. Logging out twice is not an error."""
    await auth.logout(token)
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return {"message": "Logged out successfully"}
