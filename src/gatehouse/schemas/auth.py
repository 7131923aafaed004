"""Pydantic schemas for the auth and admin APIs.

Learn: Request bodies only check shape here (required, types, lengths).
Email format and password policy are enforced in the credential verifier
so the CLI and the API reject the same inputs with the same messages.
"""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from gatehouse.db.models import Account


# ─── Requests ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str


class ProviderCallback(BaseModel):
    """Whatever the provider redirected back with (code, state, id_token…)."""

    params: dict[str, Any] = Field(default_factory=dict)


class RoleGrant(BaseModel):
    role: str = Field(min_length=1, max_length=50)


# ─── Responses ────────────────────────────────────────────


class AccountRead(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    picture: Optional[str] = None
    roles: list[str]

    @classmethod
    def from_account(cls, account: Account) -> "AccountRead":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            picture=account.picture,
            roles=account.role_names,
        )


class ProviderLinkRead(BaseModel):
    provider: str
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountDetail(AccountRead):
    """Admin view — adds linked providers and whether a password is set."""

    has_password: bool
    providers: list[ProviderLinkRead]
    created_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "AccountDetail":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            picture=account.picture,
            roles=account.role_names,
            has_password=bool(account.password_hash),
            providers=[ProviderLinkRead.model_validate(l) for l in account.provider_links],
            created_at=account.created_at,
        )


class AuthResponse(BaseModel):
    message: str
    user: AccountRead
    session_token: str


class StatusResponse(BaseModel):
    authenticated: bool
