"""Credential store — the persistence boundary for users and provider links.

Learn: The identity resolver only ever talks to the CredentialStore
protocol. Two adapters implement it:
- SqlCredentialStore (this module) → Postgres/SQLite via SQLAlchemy
- MemoryCredentialStore (db/memory.py) → a dict, for dev and tests

Contract every adapter must honour:
- create_user / create_link raise DuplicateRecordError when they would
  break a uniqueness invariant (email, or provider+subject)
- anything else that goes wrong raises StoreError
The resolver turns DuplicateRecordError into "someone else got there
first, look it up again" and the service turns StoreError into a 500.
"""

import uuid
from typing import Optional, Protocol

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authgate.db.models import AuthProvider, Role, User


class StoreError(Exception):
    """The credential store is unavailable or failed unexpectedly."""


class DuplicateRecordError(StoreError):
    """A create would have violated a uniqueness constraint."""


class CredentialStore(Protocol):
    async def find_user_by_email(self, email: str) -> Optional[User]: ...

    async def find_user_by_id(self, user_id: uuid.UUID) -> Optional[User]: ...

    async def create_user(
        self,
        email: str,
        name: str,
        password_hash: Optional[str] = None,
        role: str = Role.USER.value,
    ) -> User: ...

    async def find_link(
        self, provider: str, provider_user_id: str
    ) -> Optional[AuthProvider]: ...

    async def create_link(
        self, user_id: uuid.UUID, provider: str, provider_user_id: str
    ) -> AuthProvider: ...

    async def ping(self) -> None: ...


class SqlCredentialStore:
    """SQLAlchemy-backed credential store.

    Learn: Each operation gets its own session and commits on its own.
    That keeps a failed insert (IntegrityError) from poisoning anything
    else; the caller simply retries with a fresh lookup.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def find_user_by_email(self, email: str) -> Optional[User]:
        try:
            async with self._sessions() as db:
                result = await db.execute(select(User).where(User.email == email))
                return result.scalars().first()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def find_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        try:
            async with self._sessions() as db:
                return await db.get(User, user_id)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def create_user(
        self,
        email: str,
        name: str,
        password_hash: Optional[str] = None,
        role: str = Role.USER.value,
    ) -> User:
        user = User(
            email=email, name=name, password_hash=password_hash, role=role
        )
        return await self._insert(user)

    async def find_link(
        self, provider: str, provider_user_id: str
    ) -> Optional[AuthProvider]:
        q = select(AuthProvider).where(
            AuthProvider.provider == provider,
            AuthProvider.provider_user_id == provider_user_id,
        )
        try:
            async with self._sessions() as db:
                result = await db.execute(q)
                return result.scalars().first()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def create_link(
        self, user_id: uuid.UUID, provider: str, provider_user_id: str
    ) -> AuthProvider:
        link = AuthProvider(
            user_id=user_id, provider=provider, provider_user_id=provider_user_id
        )
        return await self._insert(link)

    async def ping(self) -> None:
        try:
            async with self._sessions() as db:
                await db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def _insert(self, obj):
        try:
            async with self._sessions() as db:
                db.add(obj)
                try:
                    await db.commit()
                except IntegrityError as e:
                    await db.rollback()
                    raise DuplicateRecordError(str(e.orig)) from e
                await db.refresh(obj)
                return obj
        except DuplicateRecordError:
            raise
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
