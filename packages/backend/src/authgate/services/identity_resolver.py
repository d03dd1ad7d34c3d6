"""Identity resolver — every credential assertion ends at exactly one User.

Learn: Three entry points, one invariant: a person is identified by
their (lower-cased) email, whichever way they signed in.

- register_local: new user with a bcrypt password hash
- authenticate_local: email + password → user, or InvalidCredentials
- resolve_external: OAuth ExternalProfile → linked/reused/new user

The OAuth path is a find-or-create against two unique keys (email and
provider+subject). Two callbacks for the same person can run at the same
time (double click, provider retry, two instances), so we never assume
the "find" is still true by the time we "create". The store enforces
uniqueness; when a create loses the race it raises DuplicateRecordError
and we start over from the lookup, which now finds the winner's row.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog
from email_validator import EmailNotValidError, validate_email

from authgate.auth.errors import (
    Conflict,
    InfraError,
    InvalidCredentials,
    ValidationFailed,
)
from authgate.auth.oauth import ExternalProfile
from authgate.auth.password import MIN_PASSWORD_LENGTH, PasswordHasher
from authgate.db.models import Role, User
from authgate.db.store import CredentialStore, DuplicateRecordError

logger = structlog.get_logger()

MAX_RESOLVE_ATTEMPTS = 5


@dataclass(frozen=True)
class Registration:
    name: Optional[str]
    email: Optional[str]
    password: Optional[str]


@dataclass(frozen=True)
class Credentials:
    email: Optional[str]
    password: Optional[str]


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _check_email_syntax(email: str) -> None:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise ValidationFailed("Invalid email address")


class IdentityResolver:
    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        max_attempts: int = MAX_RESOLVE_ATTEMPTS,
    ):
        self.store = store
        self.hasher = hasher
        self.max_attempts = max_attempts

    # ─── Local registration ─────────────────────────────

    async def register_local(
        self, data: Registration, role: str = Role.USER.value
    ) -> User:
        """Create a local account. Only the operator CLI passes another role."""
        if not data.name or not data.email or not data.password:
            raise ValidationFailed("Name, email, and password are required")
        email = normalize_email(data.email)
        _check_email_syntax(email)
        if len(data.password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        if await self.store.find_user_by_email(email):
            raise Conflict(f"email taken: {email}")

        password_hash = await asyncio.to_thread(self.hasher.hash, data.password)
        try:
            user = await self.store.create_user(
                email=email,
                name=data.name.strip(),
                password_hash=password_hash,
                role=role,
            )
        except DuplicateRecordError:
            # Lost a race with a concurrent registration or OAuth sign-up
            raise Conflict(f"email taken during create: {email}")

        logger.info("authgate.user_registered", user_id=str(user.id))
        return user

    # ─── Local login ────────────────────────────────────

    async def authenticate_local(self, data: Credentials) -> User:
        """Check email + password.

        Learn: unknown email, OAuth-only account (no hash) and wrong
        password all raise the same InvalidCredentials after the same
        bcrypt work (see PasswordHasher.verify).
        """
        if not data.email or not data.password:
            raise ValidationFailed("Email and password are required")
        email = normalize_email(data.email)

        user = await self.store.find_user_by_email(email)
        password_hash = user.password_hash if user else None
        valid = await asyncio.to_thread(self.hasher.verify, data.password, password_hash)
        if user is None or not valid:
            raise InvalidCredentials("login rejected")
        return user

    # ─── OAuth ──────────────────────────────────────────

    async def resolve_external(self, profile: ExternalProfile) -> User:
        """Find or create the user for an externally verified profile."""
        email = normalize_email(profile.email)

        for attempt in range(1, self.max_attempts + 1):
            # 1. Returning OAuth user, fast path
            link = await self.store.find_link(profile.provider, profile.subject_id)
            if link is not None:
                user = await self.store.find_user_by_id(link.user_id)
                if user is None:
                    raise InfraError(f"link {link.id} points at a missing user")
                return user

            # 2. Same person, different sign-in method → reuse by email
            user = await self.store.find_user_by_email(email)
            if user is None:
                try:
                    user = await self.store.create_user(
                        email=email,
                        name=profile.display_name or email.split("@")[0],
                        password_hash=None,
                        role=Role.USER.value,
                    )
                except DuplicateRecordError:
                    logger.info(
                        "authgate.oauth_user_race",
                        provider=profile.provider,
                        attempt=attempt,
                    )
                    continue

            # 3. Bind (provider, subject) to the resolved user
            try:
                await self.store.create_link(
                    user.id, profile.provider, profile.subject_id
                )
            except DuplicateRecordError:
                logger.info(
                    "authgate.oauth_link_race",
                    provider=profile.provider,
                    attempt=attempt,
                )
                continue

            logger.info(
                "authgate.oauth_linked",
                provider=profile.provider,
                user_id=str(user.id),
            )
            return user

        raise InfraError(
            f"could not resolve {profile.provider} identity after "
            f"{self.max_attempts} attempts"
        )
