"""Auth API — registration, login, refresh, OAuth.

Learn: Routes for the token lifecycle:
- POST /auth/register → create a local account (rate limited)
- POST /auth/login → email/password → access + refresh tokens (rate limited)
- POST /auth/refresh → refresh token → new access token
- GET /auth/me → claims of the presented access token
- GET /auth/{provider} → redirect to the provider's consent screen
- GET /auth/{provider}/callback → redirect to the frontend with tokens

Handlers are thin: parse, call AuthService, shape the response. Every
failure is an AuthError and is rendered by the handler in main.py.
JSON field names are camelCase on the wire (accessToken, refreshToken)
for compatibility with existing clients.
"""

import uuid
from datetime import datetime
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from authgate.auth.dependencies import (
    get_auth_service,
    get_client_id,
    get_current_claims,
    get_provider,
)
from authgate.auth.errors import AuthFailed, TokenInvalid
from authgate.auth.jwt import TokenClaims
from authgate.auth.oauth import OAuthProvider
from authgate.services.auth_service import AuthService
from authgate.services.identity_resolver import Credentials, Registration

router = APIRouter(prefix="/auth")


# ─── Schemas ─────────────────────────────────────────────
# Fields are optional here so that a missing field is reported by the
# resolver as a 400, the same as any other invalid input.


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = Field(None, alias="refreshToken")

    model_config = {"populate_by_name": True}


class TokenResponse(BaseModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")

    model_config = {"populate_by_name": True}


class AccessTokenResponse(BaseModel):
    access_token: str = Field(alias="accessToken")

    model_config = {"populate_by_name": True}


class UserRead(BaseModel):
    """Public user shape, never carries the password hash."""
    id: uuid.UUID
    email: str
    name: str
    role: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ClaimsRead(BaseModel):
    id: str
    email: str
    role: str


# ─── Local credentials ───────────────────────────────────


@router.post("/register", response_model=UserRead, status_code=201)
async def register(
    body: RegisterRequest,
    client_id: str = Depends(get_client_id),
    service: AuthService = Depends(get_auth_service),
):
    """Create a new user account."""
    return await service.register(
        Registration(name=body.name, email=body.email, password=body.password),
        client_id,
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    client_id: str = Depends(get_client_id),
    service: AuthService = Depends(get_auth_service),
):
    """Login with email and password → JWT tokens."""
    pair = await service.login(
        Credentials(email=body.email, password=body.password), client_id
    )
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh(
    body: RefreshRequest,
    service: AuthService = Depends(get_auth_service),
):
    """Exchange a refresh token for a new access token."""
    if not body.refresh_token:
        raise TokenInvalid("missing refresh token")
    return AccessTokenResponse(access_token=service.refresh(body.refresh_token))


@router.get("/me", response_model=ClaimsRead)
async def get_me(claims: TokenClaims = Depends(get_current_claims)):
    """Claims of the current access token (no store lookup)."""
    return ClaimsRead(id=claims.user_id, email=claims.email, role=claims.role)


# ─── OAuth ───────────────────────────────────────────────


@router.get("/{provider}")
async def oauth_start(
    strategy: OAuthProvider = Depends(get_provider),
    service: AuthService = Depends(get_auth_service),
):
    """Redirect to the provider's consent screen."""
    url = await service.begin_oauth(strategy)
    return RedirectResponse(url, status_code=302)


@router.get("/{provider}/callback")
async def oauth_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    strategy: OAuthProvider = Depends(get_provider),
    service: AuthService = Depends(get_auth_service),
):
    """Provider redirects here → tokens handed to the frontend as query params."""
    if error:
        raise AuthFailed(f"{strategy.name} returned error={error}")
    pair = await service.finish_oauth(strategy, code, state)

    frontend = request.app.state.settings.frontend_url.rstrip("/")
    query = urlencode(
        {"accessToken": pair.access_token, "refreshToken": pair.refresh_token}
    )
    return RedirectResponse(f"{frontend}/auth/callback?{query}", status_code=302)
