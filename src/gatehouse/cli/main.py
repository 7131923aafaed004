"""Gatehouse CLI — operator tasks that have no HTTP surface on purpose.

Usage:
    gatehouse serve                                # Run the API with uvicorn
    gatehouse init-db                              # Create tables (dev/test; use alembic in prod)
    gatehouse grant-role alice@example.com admin   # Bootstrap the first admin
    gatehouse revoke-role alice@example.com admin
    gatehouse show-account alice@example.com
    gatehouse purge-sessions                       # Delete expired session rows

Database commands take --database-url (default: GATEHOUSE_DATABASE_URL).
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Awaitable, Callable, TypeVar

import click
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.password import normalize_email
from gatehouse.config import settings
from gatehouse.db.engine import build_engine, build_session_factory
from gatehouse.db.models import Base
from gatehouse.errors import GatehouseError
from gatehouse.services.account_service import AccountService
from gatehouse.services.session_service import SessionManager

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_with_session(database_url: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Open an engine, run fn with a session, dispose the engine."""

    async def main() -> T:
        engine = build_engine(database_url)
        try:
            async with build_session_factory(engine)() as session:
                return await fn(session)
        finally:
            await engine.dispose()

    return asyncio.run(main())


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _account_summary(account) -> dict:
    return {
        "id": str(account.id),
        "email": account.email,
        "name": account.name,
        "roles": account.role_names,
        "providers": [link.provider for link in account.provider_links],
        "has_password": bool(account.password_hash),
    }


database_url_option = click.option(
    "--database-url",
    default=lambda: settings.database_url,
    show_default="GATEHOUSE_DATABASE_URL",
    help="SQLAlchemy async database URL.",
)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@click.group()
def cli() -> None:
    """Gatehouse administration."""


@cli.command()
@click.option("--host", default=lambda: settings.host, show_default="GATEHOUSE_HOST")
@click.option("--port", default=lambda: settings.port, type=int, show_default="GATEHOUSE_PORT")
@click.option("--reload", is_flag=True, help="Restart on code changes (development).")
def serve(host: str, port: int, reload: bool) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("gatehouse.main:app", host=host, port=port, reload=reload)


@cli.command("init-db")
@database_url_option
def init_db(database_url: str) -> None:
    """Create all tables that don't exist yet."""

    async def main() -> None:
        engine = build_engine(database_url)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        finally:
            await engine.dispose()

    asyncio.run(main())
    click.echo("Tables created.")


def _change_role(database_url: str, email: str, role: str, grant: bool) -> dict | None:
    async def change(session: AsyncSession):
        accounts = AccountService(session)
        account = await accounts.get_by_email(normalize_email(email))
        if account is None:
            return None
        if grant:
            account = await accounts.grant_role(account, role)
        else:
            account = await accounts.revoke_role(account, role)
        return _account_summary(account)

    try:
        return _run_with_session(database_url, change)
    except GatehouseError as e:
        _fail(e.message)


@cli.command("grant-role")
@click.argument("email")
@click.argument("role")
@database_url_option
def grant_role(email: str, role: str, database_url: str) -> None:
    """Grant ROLE to the account with EMAIL."""
    summary = _change_role(database_url, email, role, grant=True)
    if summary is None:
        _fail(f"No account for {email}")
    click.echo(f"Granted {role} to {summary['email']}: roles={summary['roles']}")


@cli.command("revoke-role")
@click.argument("email")
@click.argument("role")
@database_url_option
def revoke_role(email: str, role: str, database_url: str) -> None:
    """Revoke ROLE from the account with EMAIL."""
    summary = _change_role(database_url, email, role, grant=False)
    if summary is None:
        _fail(f"No account for {email}")
    click.echo(f"Revoked {role} from {summary['email']}: roles={summary['roles']}")


@cli.command("show-account")
@click.argument("email")
@database_url_option
def show_account(email: str, database_url: str) -> None:
    """Print an account as JSON."""

    async def show(session: AsyncSession):
        account = await AccountService(session).get_by_email(normalize_email(email))
        return _account_summary(account) if account else None

    summary = _run_with_session(database_url, show)
    if summary is None:
        _fail(f"No account for {email}")
    click.echo(json.dumps(summary, indent=2))


@cli.command("purge-sessions")
@database_url_option
def purge_sessions(database_url: str) -> None:
    """Delete expired sessions."""
    removed = _run_with_session(
        database_url, lambda session: SessionManager(session).purge_expired()
    )
    click.echo(f"Removed {removed} expired session(s).")


if __name__ == "__main__":
    cli()
