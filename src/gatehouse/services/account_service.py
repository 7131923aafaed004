"""Account lookups and role assignment.

Learn: Async SQLAlchemy cannot lazy-load relationships — touching an
unloaded collection raises instead of quietly querying. So every account
this module hands out comes with roles and provider links eagerly loaded
(selectinload), and populate_existing refreshes instances already in the
session's identity map. Callers can read account.roles freely.
"""

import uuid
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gatehouse.db.guard import bounded
from gatehouse.db.models import Account, Role
from gatehouse.errors import ValidationError
from gatehouse.events.store import EventStore
from gatehouse.events.types import ROLE_GRANTED, ROLE_REVOKED

logger = structlog.get_logger()


def account_query():
    """SELECT Account with roles and provider links loaded."""
    return (
        select(Account)
        .options(selectinload(Account.roles), selectinload(Account.provider_links))
        .execution_options(populate_existing=True)
    )


class AccountService:
    """Read accounts and manage their roles."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    async def get(self, account_id: uuid.UUID) -> Optional[Account]:
        result = await bounded(
            self.db.execute(account_query().where(Account.id == account_id))
        )
        return result.scalars().first()

    async def get_by_email(self, email: str) -> Optional[Account]:
        result = await bounded(
            self.db.execute(account_query().where(Account.email == email))
        )
        return result.scalars().first()

    # ─── Roles ──────────────────────────────────────────

    async def get_role(self, name: str) -> Optional[Role]:
        result = await bounded(self.db.execute(select(Role).where(Role.name == name)))
        return result.scalars().first()

    async def grant_role(self, account: Account, role_name: str) -> Account:
        """Give the account a role, creating the role on first use. Idempotent.

        Two admins granting a brand-new role at once race on roles.name;
        the loser rolls back and retries against the winner's row.
        """
        role_name = _clean_role_name(role_name)
        account_id = account.id

        for attempt in range(2):
            if account.has_role(role_name):
                return account
            role = await self.get_role(role_name) or Role(name=role_name)
            account.roles.append(role)
            await self.events.append(
                stream_id=f"account:{account_id}",
                event_type=ROLE_GRANTED,
                data={"role": role_name},
            )
            try:
                await bounded(self.db.commit())
                break
            except IntegrityError:
                await self.db.rollback()
                if attempt:
                    raise
                account = await self.get(account_id)

        logger.info("account.role_granted", account_id=str(account_id), role=role_name)
        return await self.get(account_id)

    async def revoke_role(self, account: Account, role_name: str) -> Account:
        """Remove a role from the account. Revoking a role it lacks is a no-op."""
        role_name = _clean_role_name(role_name)
        if not account.has_role(role_name):
            return account

        account.roles = [r for r in account.roles if r.name != role_name]
        await self.events.append(
            stream_id=f"account:{account.id}",
            event_type=ROLE_REVOKED,
            data={"role": role_name},
        )
        await bounded(self.db.commit())
        logger.info("account.role_revoked", account_id=str(account.id), role=role_name)
        return await self.get(account.id)


def _clean_role_name(role_name: str) -> str:
    name = (role_name or "").strip().lower()
    if not name or len(name) > 50:
        raise ValidationError("Role name must be 1-50 characters")
    return name
