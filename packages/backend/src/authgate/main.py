"""FastAPI application factory.

Learn: App factory pattern: create_app() returns a configured FastAPI
instance. Collaborators are composed explicitly here and hung off
app.state:

    PasswordHasher ─┐
    CredentialStore ┴→ IdentityResolver ─┐
    TokenCodec ──────────────────────────┼→ AuthService
    CacheStore ─→ AdmissionGate ─────────┘
    build_providers(settings) → {name: OAuthProvider}

Anything not passed in is built from settings: Postgres + Redis, or the
in-memory adapters when AUTHGATE_USE_MEMORY_STORES is set. Tests pass
in-memory stores directly. Lifespan only checks connectivity on
startup and closes connections on shutdown. It builds nothing, so the
app works the same under httpx's ASGITransport (which skips lifespan).
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from authgate import __version__
from authgate.api import api_router
from authgate.auth.errors import AuthError, RateLimited
from authgate.auth.jwt import TokenCodec
from authgate.auth.oauth import OAuthProvider, build_providers
from authgate.auth.password import PasswordHasher
from authgate.cache.base import CacheError, CacheStore
from authgate.config import Settings, settings as default_settings
from authgate.db.store import CredentialStore, StoreError
from authgate.middleware.request_context import RequestContextMiddleware
from authgate.services.admission_gate import AdmissionGate
from authgate.services.auth_service import AuthService
from authgate.services.identity_resolver import IdentityResolver

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    cfg: Settings = app.state.settings
    logger.info(
        "authgate.starting",
        version=__version__,
        environment=cfg.environment,
        port=cfg.port,
        oauth_providers=sorted(app.state.oauth_providers),
    )

    try:
        await app.state.credential_store.ping()
        logger.info("authgate.store_connected")
    except StoreError as e:
        logger.error("authgate.store_unavailable", error=str(e))

    try:
        await app.state.cache.ping()
        logger.info("authgate.cache_connected")
    except CacheError as e:
        # Without the cache the admission gate can't count; gated routes will 500
        logger.error("authgate.cache_unavailable", error=str(e))

    yield

    logger.info("authgate.shutdown")
    close = getattr(app.state.cache, "close", None)
    if close is not None:
        await close()
    engine = getattr(app.state, "engine", None)
    if engine is not None:
        await engine.dispose()


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "authgate.request_failed",
            error_type=type(exc).__name__,
            reason=exc.reason,
        )
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    elif exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.public_message},
        headers=headers,
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("authgate.unhandled_error", error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None,
    *,
    credential_store: Optional[CredentialStore] = None,
    cache: Optional[CacheStore] = None,
    oauth_providers: Optional[dict[str, OAuthProvider]] = None,
    hasher: Optional[PasswordHasher] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    cfg = settings or default_settings

    app = FastAPI(
        title="authgate",
        description="Identity resolution and token lifecycle service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.engine = None

    if cfg.use_memory_stores:
        from authgate.cache.memory import MemoryCache
        from authgate.db.memory import MemoryCredentialStore

        if credential_store is None:
            credential_store = MemoryCredentialStore()
        if cache is None:
            cache = MemoryCache()
    if credential_store is None:
        from authgate.db.engine import build_engine, build_session_factory
        from authgate.db.store import SqlCredentialStore

        engine = build_engine(cfg.database_url, echo=cfg.debug)
        app.state.engine = engine
        credential_store = SqlCredentialStore(build_session_factory(engine))
    if cache is None:
        from authgate.cache.redis import RedisCache, connect

        cache = RedisCache(connect(cfg.redis_url))

    codec = TokenCodec.from_settings(cfg)
    resolver = IdentityResolver(
        credential_store, hasher or PasswordHasher(rounds=cfg.bcrypt_rounds)
    )
    gate = AdmissionGate(
        cache,
        window_seconds=cfg.rate_limit_window_seconds,
        max_attempts=cfg.rate_limit_max_attempts,
        fail_open=cfg.rate_limit_fail_open,
    )

    app.state.credential_store = credential_store
    app.state.cache = cache
    app.state.token_codec = codec
    app.state.oauth_providers = (
        oauth_providers if oauth_providers is not None else build_providers(cfg)
    )
    app.state.auth_service = AuthService(
        resolver,
        codec,
        gate,
        cache,
        store_timeout=cfg.store_timeout_seconds,
        oauth_state_ttl=cfg.oauth_state_ttl_seconds,
    )

    # ── Error handling ───────────────────────────────────────
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestContext → CORS → handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.include_router(api_router)

    return app
