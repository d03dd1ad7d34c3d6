"""Auth service — register, login, refresh, OAuth completion.

Learn: Service layer separates business logic from HTTP routing.
This is the orchestration boundary: it runs the admission gate first,
calls the identity resolver, mints tokens, and translates every
infrastructure failure (store down, cache down, bcrypt blew up, call
took too long) into a single InfraError. Routes only ever see the
AuthError taxonomy.

Every store-bearing call is wrapped in asyncio.wait_for so a hung
database connection becomes a 500, not a request that never returns.
"""

import asyncio
import secrets
from typing import Awaitable, Optional, TypeVar

import structlog

from authgate.auth.errors import AuthError, AuthFailed, InfraError, InvalidCredentials
from authgate.auth.jwt import TokenClaims, TokenCodec, TokenPair
from authgate.auth.oauth import ExternalProfile, OAuthProvider
from authgate.auth.password import HashingError
from authgate.cache.base import CacheError, CacheStore
from authgate.db.models import User
from authgate.db.store import StoreError
from authgate.services.admission_gate import AdmissionGate
from authgate.services.identity_resolver import (
    Credentials,
    IdentityResolver,
    Registration,
)

logger = structlog.get_logger()

T = TypeVar("T")


def claims_for(user: User) -> TokenClaims:
    return TokenClaims(user_id=str(user.id), email=user.email, role=user.role)


class AuthService:
    """Business logic for the four auth operations."""

    def __init__(
        self,
        resolver: IdentityResolver,
        codec: TokenCodec,
        gate: AdmissionGate,
        cache: CacheStore,
        store_timeout: float = 5.0,
        oauth_state_ttl: int = 600,
    ):
        self.resolver = resolver
        self.codec = codec
        self.gate = gate
        self.cache = cache
        self.store_timeout = store_timeout
        self.oauth_state_ttl = oauth_state_ttl

    async def register(self, data: Registration, client_id: str) -> User:
        await self._guard("register.admit", self.gate.admit(client_id))
        return await self._guard("register", self.resolver.register_local(data))

    async def login(self, data: Credentials, client_id: str) -> TokenPair:
        await self._guard("login.admit", self.gate.admit(client_id))
        try:
            user = await self._guard("login", self.resolver.authenticate_local(data))
        except InvalidCredentials:
            logger.info("authgate.login_failed", client=client_id)
            raise
        logger.info("authgate.login_succeeded", user_id=str(user.id))
        return self.codec.issue_pair(claims_for(user))

    def refresh(self, refresh_token: str) -> str:
        """Mint a new access token from a refresh token.

        Learn: No store lookup. The claims are
        whatever they were when the refresh token was issued, and the
        refresh token itself is not rotated.
        """
        claims = self.codec.verify_refresh(refresh_token)
        return self.codec.issue_access(claims)

    async def begin_oauth(self, provider: OAuthProvider) -> str:
        """Issue a single-use state value and return the consent URL."""
        state = secrets.token_urlsafe(32)
        await self._guard(
            "oauth.state",
            self.cache.put_oauth_state(state, provider.name, self.oauth_state_ttl),
        )
        return provider.authorization_url(state)

    async def finish_oauth(
        self, provider: OAuthProvider, code: Optional[str], state: Optional[str]
    ) -> TokenPair:
        """Validate the callback, fetch the profile, resolve and issue tokens.

        Learn: The state is consumed (GETDEL) before the code exchange, so a
        replayed or forged callback fails without ever talking to the
        provider.
        """
        if not state:
            raise AuthFailed(f"{provider.name}: missing state")
        issued_for = await self._guard(
            "oauth.state", self.cache.pop_oauth_state(state)
        )
        if issued_for != provider.name:
            raise AuthFailed(f"{provider.name}: unknown or mismatched state")
        profile = await provider.fetch_profile(code or "")
        return await self.complete_oauth(provider.name, profile)

    async def complete_oauth(self, provider: str, profile: ExternalProfile) -> TokenPair:
        if profile.provider != provider:
            raise AuthFailed(
                f"profile from {profile.provider} presented to {provider} callback"
            )
        user = await self._guard("oauth", self.resolver.resolve_external(profile))
        return self.codec.issue_pair(claims_for(user))

    async def _guard(self, operation: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.store_timeout)
        except AuthError:
            raise
        except asyncio.TimeoutError as e:
            logger.error("authgate.deadline_exceeded", operation=operation)
            raise InfraError(f"{operation}: deadline exceeded") from e
        except (StoreError, CacheError, HashingError) as e:
            logger.error(
                "authgate.infra_error",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise InfraError(f"{operation}: {type(e).__name__}") from e
