"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers. The collaborators
(auth service, codec, cache, providers) are built once by the app
factory and hung off app.state. There are no module-level singletons, so a test
can build an app around in-memory stores.
"""

from typing import Optional

from fastapi import Depends, Header, Request

from authgate.auth.errors import ProviderNotFound, TokenInvalid
from authgate.auth.jwt import TokenClaims, TokenCodec
from authgate.auth.oauth import OAuthProvider
from authgate.services.auth_service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def get_provider(provider: str, request: Request) -> OAuthProvider:
    """Resolve the {provider} path parameter to an enabled strategy."""
    strategy = request.app.state.oauth_providers.get(provider)
    if strategy is None:
        raise ProviderNotFound(provider)
    return strategy


def get_client_id(request: Request) -> str:
    """Network identity used as the admission gate key.

    Learn: Behind a reverse proxy every request comes from the proxy's
    IP, so the first X-Forwarded-For hop is used instead, but only when
    trust_forwarded_for is on, otherwise any client could pick its own
    bucket by sending the header.
    """
    if request.app.state.settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_current_claims(
    authorization: Optional[str] = Header(None),
    codec: TokenCodec = Depends(get_token_codec),
) -> TokenClaims:
    """Verified access-token claims (401 if missing or invalid)."""
    if not authorization or not authorization.startswith("Bearer "):
        raise TokenInvalid("missing bearer token")
    return codec.verify_access(authorization[7:])
