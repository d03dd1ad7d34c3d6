"""OAuth provider strategy tests — normalization and the code exchange."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from authgate.auth.errors import AuthFailed
from authgate.auth.oauth import (
    GitHubProvider,
    GoogleProvider,
    OAuthProvider,
    ProviderConfig,
    build_providers,
    normalize_github_profile,
    normalize_google_profile,
)

CONFIG = ProviderConfig("client-id", "client-secret", "http://localhost:8000/cb")


# ═══════════════════════════════════════════════════════════
# Normalization
# ═══════════════════════════════════════════════════════════


def test_normalize_google():
    profile = normalize_google_profile(
        {"id": "1234", "email": "g@x.com", "name": "Gee", "verified_email": True}
    )
    assert (profile.provider, profile.subject_id, profile.email, profile.display_name) == (
        "google", "1234", "g@x.com", "Gee",
    )


def test_normalize_google_rejects_unverified_email():
    with pytest.raises(AuthFailed):
        normalize_google_profile({"id": "1", "email": "g@x.com", "verified_email": False})


def test_normalize_google_requires_email():
    with pytest.raises(AuthFailed):
        normalize_google_profile({"id": "1", "name": "No Email"})


def test_normalize_github_public_email():
    profile = normalize_github_profile({"id": 42, "login": "octo", "email": "o@x.com"})
    assert profile.subject_id == "42"
    assert profile.display_name == "octo"
    assert profile.email == "o@x.com"


def test_normalize_github_falls_back_to_primary_verified_email():
    emails = [
        {"email": "old@x.com", "primary": False, "verified": True},
        {"email": "unverified@x.com", "primary": True, "verified": False},
        {"email": "main@x.com", "primary": True, "verified": True},
    ]
    profile = normalize_github_profile({"id": 42, "login": "octo", "name": None}, emails)
    assert profile.email == "main@x.com"


def test_normalize_github_without_usable_email():
    emails = [{"email": "u@x.com", "primary": True, "verified": False}]
    with pytest.raises(AuthFailed):
        normalize_github_profile({"id": 42, "login": "octo"}, emails)


def test_normalize_github_skips_non_object_email_entries():
    emails = ["octo@x.com", None, {"email": "main@x.com", "primary": True, "verified": True}]
    profile = normalize_github_profile({"id": 42, "login": "octo"}, emails)
    assert profile.email == "main@x.com"

    with pytest.raises(AuthFailed):
        normalize_github_profile({"id": 42, "login": "octo"}, ["octo@x.com"])


@pytest.mark.parametrize(
    "email",
    [["a@x.com"], {"address": "a@x.com"}, 42, "   ", "not-an-email"],
)
def test_unusable_provider_email_is_auth_failed(email):
    with pytest.raises(AuthFailed):
        normalize_google_profile({"id": "g-1", "email": email})
    with pytest.raises(AuthFailed):
        normalize_github_profile({"id": 1, "login": "octo", "email": email})


@pytest.mark.parametrize("subject", [True, ["g-1"], {"id": 1}, 1.5])
def test_unusable_provider_subject_is_auth_failed(subject):
    with pytest.raises(AuthFailed):
        normalize_google_profile({"id": subject, "email": "a@x.com"})
    with pytest.raises(AuthFailed):
        normalize_github_profile({"id": subject, "email": "a@x.com"})


def test_provider_email_is_trimmed_and_name_falls_back():
    profile = normalize_google_profile({"id": "g-1", "email": " a@x.com ", "name": 7})
    assert profile.email == "a@x.com"
    assert profile.display_name == "a"


# ═══════════════════════════════════════════════════════════
# Strategies
# ═══════════════════════════════════════════════════════════


def test_authorization_url_carries_state_and_callback():
    url = urlparse(GitHubProvider(CONFIG).authorization_url("st4te"))
    params = parse_qs(url.query)
    assert url.netloc == "github.com"
    assert params["state"] == ["st4te"]
    assert params["redirect_uri"] == ["http://localhost:8000/cb"]
    assert params["client_id"] == ["client-id"]
    assert params["response_type"] == ["code"]


@pytest.mark.asyncio
async def test_google_fetch_profile(provider_server, provider_http):
    provider_server.register("code-1", {"id": "g-9", "email": "G@x.com", "name": "G"})
    profile = await GoogleProvider(CONFIG, http=provider_http).fetch_profile("code-1")
    assert profile.provider == "google"
    assert profile.subject_id == "g-9"
    assert profile.email == "G@x.com"

    token_request = provider_server.requests[0]
    form = parse_qs(token_request.content.decode())
    assert form["grant_type"] == ["authorization_code"]
    assert form["client_secret"] == ["client-secret"]


@pytest.mark.asyncio
async def test_github_fetch_profile_uses_emails_endpoint(provider_server, provider_http):
    provider_server.register(
        "code-2",
        {"id": 7, "login": "octo", "email": None},
        [{"email": "octo@x.com", "primary": True, "verified": True}],
    )
    profile = await GitHubProvider(CONFIG, http=provider_http).fetch_profile("code-2")
    assert profile.email == "octo@x.com"
    assert [r.url.path for r in provider_server.requests] == [
        "/login/oauth/access_token", "/user", "/user/emails",
    ]


@pytest.mark.asyncio
async def test_rejected_code_is_auth_failed(provider_http):
    with pytest.raises(AuthFailed):
        await GoogleProvider(CONFIG, http=provider_http).fetch_profile("unknown-code")


@pytest.mark.asyncio
async def test_missing_code_is_auth_failed(provider_http):
    with pytest.raises(AuthFailed):
        await GoogleProvider(CONFIG, http=provider_http).fetch_profile("")


@pytest.mark.asyncio
async def test_transport_error_is_auth_failed():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(AuthFailed):
            await GoogleProvider(CONFIG, http=http).fetch_profile("code")


@pytest.mark.asyncio
async def test_garbage_response_is_auth_failed():
    def handler(request):
        return httpx.Response(200, content=b"<html>nope</html>")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(AuthFailed):
            await GoogleProvider(CONFIG, http=http).fetch_profile("code")


def test_build_providers_only_enables_configured(test_settings):
    assert set(build_providers(test_settings)) == {"google", "github"}
    only_github = test_settings.model_copy(update={"google_client_id": ""})
    assert set(build_providers(only_github)) == {"github"}


@pytest.mark.asyncio
async def test_github_emails_with_bare_strings_is_auth_failed(provider_server, provider_http):
    provider_server.register("code-3", {"id": 7, "login": "octo", "email": None}, ["octo@x.com"])
    with pytest.raises(AuthFailed):
        await GitHubProvider(CONFIG, http=provider_http).fetch_profile("code-3")


def test_provider_without_profile_loader_cannot_be_built():
    class HalfProvider(OAuthProvider):
        name = "half"

    with pytest.raises(TypeError):
        HalfProvider(CONFIG)
