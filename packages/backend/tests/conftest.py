"""Test fixtures — an app wired to in-memory stores.

Learn: create_app() accepts its collaborators, so tests build the real
FastAPI app around MemoryCredentialStore + MemoryCache instead of
Postgres + Redis. bcrypt runs at its minimum work factor (4 rounds) to
keep the suite fast. OAuth providers talk to a fake provider served
through httpx.MockTransport, no network.
"""

from urllib.parse import parse_qs

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from authgate.auth.oauth import build_providers
from authgate.auth.password import PasswordHasher
from authgate.cache.memory import MemoryCache
from authgate.config import Settings
from authgate.db.memory import MemoryCredentialStore
from authgate.main import create_app


class FakeClock:
    """Monotonic clock the tests can move forward."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProviderServer:
    """Google + GitHub token and userinfo endpoints, keyed by auth code.

    register(code, userinfo, emails=None) makes `code` exchangeable;
    unknown codes get a 401 from the token endpoint.
    """

    def __init__(self):
        self.profiles: dict[str, tuple[dict, list | None]] = {}
        self.requests: list[httpx.Request] = []

    def register(self, code: str, userinfo: dict, emails: list | None = None) -> None:
        self.profiles[code] = (userinfo, emails)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in ("/token", "/login/oauth/access_token"):
            code = parse_qs(request.content.decode())["code"][0]
            if code not in self.profiles:
                return httpx.Response(401, json={"error": "bad_verification_code"})
            return httpx.Response(200, json={"access_token": f"tok-{code}"})

        code = request.headers["Authorization"].removeprefix("Bearer tok-")
        userinfo, emails = self.profiles[code]
        if path in ("/oauth2/v2/userinfo", "/user"):
            return httpx.Response(200, json=userinfo)
        if path == "/user/emails":
            return httpx.Response(200, json=emails or [])
        return httpx.Response(404)


@pytest.fixture()
def test_settings():
    return Settings(
        access_token_secret="test-access-secret",
        refresh_token_secret="test-refresh-secret",
        bcrypt_rounds=4,
        rate_limit_window_seconds=60,
        rate_limit_max_attempts=10,
        store_timeout_seconds=2.0,
        google_client_id="google-client",
        google_client_secret="google-secret",
        github_client_id="github-client",
        github_client_secret="github-secret",
        frontend_url="http://frontend.local",
    )


@pytest.fixture()
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture()
def store():
    return MemoryCredentialStore()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture()
def provider_server():
    return FakeProviderServer()


@pytest_asyncio.fixture()
async def provider_http(provider_server):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(provider_server.handler)
    ) as http:
        yield http


@pytest.fixture()
def app(test_settings, store, cache, hasher, provider_http):
    return create_app(
        test_settings,
        credential_store=store,
        cache=cache,
        hasher=hasher,
        oauth_providers=build_providers(test_settings, http=provider_http),
    )


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client against the in-memory app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
