"""Admin API — account inspection and role management.

Learn: The whole router is gated with require_role("admin") at
include_router level (see api/__init__.py), so each handler can assume an
admin is calling. Anonymous callers get 401, signed-in non-admins 403.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.db.engine import get_db
from gatehouse.db.models import Account
from gatehouse.schemas.auth import AccountDetail, RoleGrant
from gatehouse.services.account_service import AccountService
from gatehouse.services.session_service import SessionManager

router = APIRouter(prefix="/admin")


async def _get_account_or_404(accounts: AccountService, account_id: uuid.UUID) -> Account:
    account = await accounts.get(account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.get("/accounts/{account_id}", response_model=AccountDetail)
async def get_account(account_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    accounts = AccountService(db)
    return AccountDetail.from_account(await _get_account_or_404(accounts, account_id))


@router.post("/accounts/{account_id}/roles", response_model=AccountDetail)
async def grant_role(
    account_id: uuid.UUID,
    body: RoleGrant,
    db: AsyncSession = Depends(get_db),
):
    """Grant a role. Granting one the account already has changes nothing."""
    accounts = AccountService(db)
    account = await _get_account_or_404(accounts, account_id)
    account = await accounts.grant_role(account, body.role)
    return AccountDetail.from_account(account)


@router.delete("/accounts/{account_id}/roles/{role}", response_model=AccountDetail)
async def revoke_role(
    account_id: uuid.UUID,
    role: str,
    db: AsyncSession = Depends(get_db),
):
    accounts = AccountService(db)
    account = await _get_account_or_404(accounts, account_id)
    account = await accounts.revoke_role(account, role)
    return AccountDetail.from_account(account)


@router.delete("/accounts/{account_id}/sessions")
async def revoke_sessions(account_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Sign the account out everywhere."""
    accounts = AccountService(db)
    account = await _get_account_or_404(accounts, account_id)
    revoked = await SessionManager(db).destroy_all(account.id)
    return {"revoked": revoked}
