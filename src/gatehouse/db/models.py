"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic auto-generates migrations by comparing these models to the actual DB.

Key concepts:
- UUID primary keys for accounts (never guessable, safe to put in a session)
- Uniqueness lives in the database: accounts.email and
  provider_links(provider, provider_subject_id). The identity resolver relies
  on these constraints to settle concurrent first sign-ins.
- Portable column types (Uuid, JSON) so the same models run on PostgreSQL
  and on SQLite in tests. JSON becomes JSONB on PostgreSQL.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


JSONVariant = JSON().with_variant(JSONB, "postgresql")


# ══════════════════════════════════════════════════════════════
# Accounts and roles
# ══════════════════════════════════════════════════════════════


account_roles = Table(
    "account_roles",
    Base.metadata,
    Column(
        "account_id",
        Uuid,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "role_id",
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Account(Base):
    """The canonical identity of one human.

    Learn: Every sign-in channel ends here. Email is the only key shared
    across channels, so it is unique. password_hash is nullable — accounts
    created through Google or Apple have no password, and local login must
    tell them so instead of failing generically.
    """

    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    picture: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # nullable for OAuth-only accounts
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    roles: Mapped[list["Role"]] = relationship(
        secondary=account_roles, order_by="Role.name"
    )
    provider_links: Mapped[list["ProviderLink"]] = relationship(
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="ProviderLink.id",
    )

    @property
    def role_names(self) -> list[str]:
        return [r.name for r in self.roles]

    def has_role(self, name: str) -> bool:
        # Role names are stored lower-case.
        wanted = (name or "").strip().lower()
        return any(r.name == wanted for r in self.roles)

    def link_for(self, provider: str) -> Optional["ProviderLink"]:
        for link in self.provider_links:
            if link.provider == provider:
                return link
        return None


class Role(Base):
    """A named capability (e.g. "admin"), many-to-many with accounts."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)


class ProviderLink(Base):
    """One external identity (Google subject, Apple subject, …) bound to an account.

    Learn: (provider, provider_subject_id) is globally unique — a provider
    identity can belong to exactly one account. (account_id, provider) is
    unique too: an account holds at most one link per provider.

    Tokens are opaque to us. We only store what the provider exchange hands
    back so later features can call the provider on the user's behalf.
    """

    __tablename__ = "provider_links"
    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_subject_id", name="uq_provider_links_subject"
        ),
        UniqueConstraint("account_id", "provider", name="uq_provider_links_account"),
        Index("idx_provider_links_account", "account_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    provider: Mapped[str] = mapped_column(String(20), nullable=False)  # google, apple
    provider_subject_id: Mapped[str] = mapped_column(String(255), nullable=False)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_expiry: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    token_type: Mapped[str] = mapped_column(String(20), nullable=False, default="Bearer")
    id_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    scope: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    # Relationships
    account: Mapped["Account"] = relationship(back_populates="provider_links")


# ══════════════════════════════════════════════════════════════
# Sessions
# ══════════════════════════════════════════════════════════════


class AuthSession(Base):
    """Server-side half of a login session.

    Learn: The client holds a signed token naming this row's id. Deleting
    the row is what makes logout immediate — a still-valid signature is not
    enough to get back in.
    """

    __tablename__ = "auth_sessions"
    __table_args__ = (
        Index("idx_auth_sessions_account", "account_id"),
        Index("idx_auth_sessions_expires", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ══════════════════════════════════════════════════════════════
# Audit log
# ══════════════════════════════════════════════════════════════


class Event(Base):
    """Immutable audit log of identity changes.

    Learn: Events are append-only (never updated/deleted). They answer
    "when did this account gain an Apple link?" — the question that matters
    when auto-linking by email is under review.

    stream_id examples: "account:<uuid>"
    type examples: "account.registered", "provider.linked"
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_stream", "stream_id", "id"),
        Index("idx_events_type", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stream_id: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(JSONVariant, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
