"""Request context middleware tests — request IDs and hardening headers."""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient


@pytest.mark.asyncio
async def test_request_id_generated(client):
    r = await client.get("/api/v1/health")
    uuid.UUID(r.headers["X-Request-ID"])


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    r = await client.get("/api/v1/health", headers={"X-Request-ID": "trace-123"})
    assert r.headers["X-Request-ID"] == "trace-123"


@pytest.mark.asyncio
async def test_security_headers_on_success_and_error(client):
    ok = await client.get("/api/v1/health")
    denied = await client.get("/api/v1/auth/me")
    for r in (ok, denied):
        assert r.headers["X-Content-Type-Options"] == "nosniff"
        assert r.headers["X-Frame-Options"] == "DENY"
        assert r.headers["Cache-Control"] == "no-store"
        assert "Strict-Transport-Security" not in r.headers


@pytest.mark.asyncio
async def test_hsts_on_https(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="https://test"
    ) as ac:
        r = await ac.get("/api/v1/health")
    assert r.headers["Strict-Transport-Security"].startswith("max-age=")
