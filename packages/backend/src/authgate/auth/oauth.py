"""OAuth provider strategies.

Learn: Every provider speaks the same authorization-code flow but hands
back a differently-shaped user profile. Each strategy object owns:
- its endpoints and scope
- the code → access token → userinfo exchange (httpx)
- a pure normalize function that turns the provider's JSON into one
  ExternalProfile

Nothing downstream of this module knows which provider it is dealing
with. The identity resolver only ever sees ExternalProfile.

There is no global registry: build_providers(settings) returns a plain
dict that the app factory hands to the routes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
import structlog
from email_validator import EmailNotValidError, validate_email

from authgate.auth.errors import AuthFailed

logger = structlog.get_logger()

GOOGLE = "google"
GITHUB = "github"


@dataclass(frozen=True)
class ExternalProfile:
    """Provider-agnostic view of an externally verified identity."""

    provider: str
    subject_id: str
    email: str
    display_name: str


@dataclass(frozen=True)
class ProviderConfig:
    client_id: str
    client_secret: str
    callback_url: str


# ─── Normalization (pure) ────────────────────────────────


def _subject(provider: str, raw: Any) -> str:
    if isinstance(raw, bool) or not isinstance(raw, (str, int)) or raw == "":
        raise AuthFailed(f"{provider}: profile missing id")
    return str(raw)


def _email(provider: str, raw: Any) -> str:
    """A provider email is only an identity key if it is a real address."""
    if not isinstance(raw, str) or not raw.strip():
        raise AuthFailed(f"{provider}: profile missing email")
    email = raw.strip()
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise AuthFailed(f"{provider}: unusable email") from e
    return email


def _display_name(email: str, *candidates: Any) -> str:
    for candidate in candidates:
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return email.split("@")[0]


def normalize_google_profile(userinfo: dict[str, Any]) -> ExternalProfile:
    """Google /oauth2/v2/userinfo → ExternalProfile."""
    subject = _subject(GOOGLE, userinfo.get("id") or userinfo.get("sub"))
    email = _email(GOOGLE, userinfo.get("email"))
    if userinfo.get("verified_email") is False or userinfo.get("email_verified") is False:
        raise AuthFailed("google: email not verified")
    return ExternalProfile(
        provider=GOOGLE,
        subject_id=subject,
        email=email,
        display_name=_display_name(email, userinfo.get("name")),
    )


def normalize_github_profile(
    userinfo: dict[str, Any],
    emails: Optional[list[Any]] = None,
) -> ExternalProfile:
    """GitHub /user (+ /user/emails) → ExternalProfile.

    Learn: GitHub only puts an email on /user when the account has a
    public one. Otherwise we take the primary *verified* address from
    /user/emails. Entries that aren't objects are ignored.
    """
    subject = _subject(GITHUB, userinfo.get("id"))
    email = userinfo.get("email")
    if not email and emails:
        email = next(
            (
                e.get("email")
                for e in emails
                if isinstance(e, dict) and e.get("primary") and e.get("verified")
            ),
            None,
        )
    if not email:
        raise AuthFailed("github: no verified email")
    email = _email(GITHUB, email)
    return ExternalProfile(
        provider=GITHUB,
        subject_id=subject,
        email=email,
        display_name=_display_name(email, userinfo.get("name"), userinfo.get("login")),
    )


# ─── Strategies ──────────────────────────────────────────


class OAuthProvider(ABC):
    """Authorization-code flow for one provider."""

    name: str = ""
    authorize_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""
    scope: str = ""

    def __init__(
        self,
        config: ProviderConfig,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.config = config
        self._http = http
        self.timeout = timeout

    def authorization_url(self, state: str) -> str:
        """Where to send the browser for the consent screen."""
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.callback_url,
            "response_type": "code",
            "scope": self.scope,
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> ExternalProfile:
        """Exchange an authorization code for a normalized profile.

        Raises AuthFailed on anything the provider does wrong: HTTP
        errors, unparseable JSON, missing fields.
        """
        if not code:
            raise AuthFailed(f"{self.name}: missing authorization code")
        try:
            if self._http is not None:
                return await self._exchange(self._http, code)
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=False
            ) as client:
                return await self._exchange(client, code)
        except httpx.HTTPStatusError as e:
            logger.warning(
                "authgate.oauth_http_error",
                provider=self.name,
                status_code=e.response.status_code,
            )
            raise AuthFailed(f"{self.name}: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("authgate.oauth_transport_error", provider=self.name, error=str(e))
            raise AuthFailed(f"{self.name}: {type(e).__name__}") from e
        except ValueError as e:
            # json decode errors
            logger.warning("authgate.oauth_parse_error", provider=self.name)
            raise AuthFailed(f"{self.name}: unparseable response") from e

    async def _exchange(self, client: httpx.AsyncClient, code: str) -> ExternalProfile:
        access_token = await self._exchange_code(client, code)
        return await self._load_profile(client, access_token)

    async def _exchange_code(self, client: httpx.AsyncClient, code: str) -> str:
        resp = await client.post(
            self.token_url,
            data={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "code": code,
                "redirect_uri": self.config.callback_url,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
        payload = resp.json()
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise AuthFailed(f"{self.name}: no access token in exchange response")
        return token

    async def _get_json(self, client: httpx.AsyncClient, url: str, access_token: str):
        resp = await client.get(url, headers=self._userinfo_headers(access_token))
        resp.raise_for_status()
        return resp.json()

    def _userinfo_headers(self, access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}

    @abstractmethod
    async def _load_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> ExternalProfile:
        """Fetch userinfo with the access token and normalize it."""
        ...


class GoogleProvider(OAuthProvider):
    name = GOOGLE
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"
    scope = "openid email profile"

    async def _load_profile(self, client, access_token):
        userinfo = await self._get_json(client, self.userinfo_url, access_token)
        if not isinstance(userinfo, dict):
            raise AuthFailed("google: userinfo is not an object")
        return normalize_google_profile(userinfo)


class GitHubProvider(OAuthProvider):
    name = GITHUB
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    userinfo_url = "https://api.github.com/user"
    emails_url = "https://api.github.com/user/emails"
    scope = "read:user user:email"

    def _userinfo_headers(self, access_token):
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }

    async def _load_profile(self, client, access_token):
        userinfo = await self._get_json(client, self.userinfo_url, access_token)
        if not isinstance(userinfo, dict):
            raise AuthFailed("github: userinfo is not an object")
        emails = None
        if not userinfo.get("email"):
            emails = await self._get_json(client, self.emails_url, access_token)
            if not isinstance(emails, list):
                emails = None
        return normalize_github_profile(userinfo, emails)


def build_providers(
    settings, http: Optional[httpx.AsyncClient] = None
) -> dict[str, OAuthProvider]:
    """Enabled providers keyed by name. A provider without a client id is off."""
    providers: dict[str, OAuthProvider] = {}
    if settings.google_client_id:
        providers[GOOGLE] = GoogleProvider(
            ProviderConfig(
                client_id=settings.google_client_id,
                client_secret=settings.google_client_secret,
                callback_url=settings.google_callback_url,
            ),
            http=http,
        )
    if settings.github_client_id:
        providers[GITHUB] = GitHubProvider(
            ProviderConfig(
                client_id=settings.github_client_id,
                client_secret=settings.github_client_secret,
                callback_url=settings.github_callback_url,
            ),
            http=http,
        )
    return providers
