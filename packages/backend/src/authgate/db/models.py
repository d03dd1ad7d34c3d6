"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Two tables, two uniqueness invariants:
- users.email is unique → one canonical user per (lower-cased) email,
  no matter how many ways that person signs in
- auth_providers (provider, provider_user_id) is unique → one link per
  external identity

Both are enforced by the database, not by application checks. The
identity resolver relies on that: a lost race surfaces as an
IntegrityError that it turns into a retry.

Uuid (not the Postgres-only UUID type) keeps the models portable, so the
same schema runs on SQLite in tests.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class User(Base):
    """Canonical identity. One row per person, however they sign in.

    Learn: password_hash is nullable: a user created through an OAuth
    callback has no local password until they set one (and local login
    treats that exactly like a wrong password).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # nullable for OAuth
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Role.USER.value,
        server_default=Role.USER.value,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow
    )

    # Relationships
    auth_providers: Mapped[list["AuthProvider"]] = relationship(
        back_populates="user"
    )


class AuthProvider(Base):
    """Binds an external (provider, subject) identity to a User.

    Learn: Created the first time a given Google/GitHub account signs in,
    then used as the fast-path lookup on every later callback. Never
    updated. If the provider's email changes, the link still points at
    the same user.
    """

    __tablename__ = "auth_providers"
    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_user_id", name="uq_auth_providers_subject"
        ),
        Index("idx_auth_providers_user", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    provider_user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), default=utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="auth_providers")
