"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: short-lived (15min), used for API calls
- Refresh token: long-lived (7 days), used to get new access tokens

Each class of token has its own secret. An access token presented to
verify_refresh fails signature verification, and vice versa, on top of
that, the "type" claim is checked so a misconfigured deployment that
reuses a secret still can't swap them.

Every failure is the same TokenInvalid. Expired, tampered, wrong secret,
garbage input: the caller can't tell which, and neither can an attacker.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from authgate.auth.errors import TokenInvalid

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """The identity fields embedded in every token."""

    user_id: str
    email: str
    role: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class SigningContext:
    token_type: str
    secret: str
    expires: timedelta


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    """Signs and verifies access and refresh tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_expires: timedelta = timedelta(minutes=15),
        refresh_expires: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.access = SigningContext(ACCESS, access_secret, access_expires)
        self.refresh = SigningContext(REFRESH, refresh_secret, refresh_expires)
        self.algorithm = algorithm
        self._now = clock or _utcnow

    @classmethod
    def from_settings(cls, settings) -> "TokenCodec":
        return cls(
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_expires=timedelta(minutes=settings.access_token_expire_minutes),
            refresh_expires=timedelta(days=settings.refresh_token_expire_days),
            algorithm=settings.jwt_algorithm,
        )

    def issue_access(self, claims: TokenClaims) -> str:
        return self._encode(self.access, claims)

    def issue_refresh(self, claims: TokenClaims) -> str:
        return self._encode(self.refresh, claims)

    def issue_pair(self, claims: TokenClaims) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access(claims),
            refresh_token=self.issue_refresh(claims),
        )

    def verify_access(self, token: str) -> TokenClaims:
        return self._decode(self.access, token)

    def verify_refresh(self, token: str) -> TokenClaims:
        return self._decode(self.refresh, token)

    def _encode(self, ctx: SigningContext, claims: TokenClaims) -> str:
        now = self._now()
        payload = {
            "sub": claims.user_id,
            "email": claims.email,
            "role": claims.role,
            "type": ctx.token_type,
            "iat": now,
            "exp": now + ctx.expires,
        }
        return jwt.encode(payload, ctx.secret, algorithm=self.algorithm)

    def _decode(self, ctx: SigningContext, token: str) -> TokenClaims:
        """Verify and decode a token of the given class.

        Returns the claims on success. Raises TokenInvalid on any failure.
        """
        if not token or not isinstance(token, str):
            raise TokenInvalid("empty token")
        try:
            payload = jwt.decode(
                token,
                ctx.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.InvalidTokenError as e:
            # Includes ExpiredSignatureError: expired and forged look the same
            raise TokenInvalid(f"{ctx.token_type}: {type(e).__name__}") from e

        if payload.get("type") != ctx.token_type:
            raise TokenInvalid(f"{ctx.token_type}: wrong token type")
        email = payload.get("email")
        role = payload.get("role")
        if not isinstance(email, str) or not isinstance(role, str):
            raise TokenInvalid(f"{ctx.token_type}: missing claims")
        return TokenClaims(user_id=str(payload["sub"]), email=email, role=role)
