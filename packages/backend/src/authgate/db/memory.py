"""In-memory credential store (AUTHGATE_USE_MEMORY_STORES and tests).

Learn: Same contract as SqlCredentialStore, including the uniqueness
invariants. Every operation yields to the event loop first
(asyncio.sleep(0)), the way a network round-trip would, so concurrent
callers really do interleave between "look up" and "create", which is
exactly the window the identity resolver has to survive.
"""

import asyncio
import uuid
from typing import Optional

from authgate.db.models import AuthProvider, Role, User, new_uuid, utcnow
from authgate.db.store import DuplicateRecordError


class MemoryCredentialStore:
    """Dict-backed credential store. Not shared across processes."""

    def __init__(self):
        self._users: dict[uuid.UUID, User] = {}
        self._users_by_email: dict[str, uuid.UUID] = {}
        self._links: dict[tuple[str, str], AuthProvider] = {}
        self._lock = asyncio.Lock()

    @property
    def users(self) -> list[User]:
        return list(self._users.values())

    @property
    def links(self) -> list[AuthProvider]:
        return list(self._links.values())

    async def find_user_by_email(self, email: str) -> Optional[User]:
        await asyncio.sleep(0)
        user_id = self._users_by_email.get(email)
        return self._users.get(user_id) if user_id else None

    async def find_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        await asyncio.sleep(0)
        return self._users.get(user_id)

    async def create_user(
        self,
        email: str,
        name: str,
        password_hash: Optional[str] = None,
        role: str = Role.USER.value,
    ) -> User:
        await asyncio.sleep(0)
        async with self._lock:
            if email in self._users_by_email:
                raise DuplicateRecordError(f"users.email: {email}")
            user = User(
                id=new_uuid(),
                email=email,
                name=name,
                password_hash=password_hash,
                role=role,
                created_at=utcnow(),
            )
            self._users[user.id] = user
            self._users_by_email[email] = user.id
            return user

    async def find_link(
        self, provider: str, provider_user_id: str
    ) -> Optional[AuthProvider]:
        await asyncio.sleep(0)
        return self._links.get((provider, provider_user_id))

    async def create_link(
        self, user_id: uuid.UUID, provider: str, provider_user_id: str
    ) -> AuthProvider:
        await asyncio.sleep(0)
        async with self._lock:
            key = (provider, provider_user_id)
            if key in self._links:
                raise DuplicateRecordError(f"auth_providers: {provider}/{provider_user_id}")
            link = AuthProvider(
                id=new_uuid(),
                user_id=user_id,
                provider=provider,
                provider_user_id=provider_user_id,
                created_at=utcnow(),
            )
            self._links[key] = link
            return link

    async def ping(self) -> None:
        return None
