"""OAuth provider strategies and Authlib client initialisation.

Authlib's Starlette integration keeps the CSRF state in the session cookie
(SessionMiddleware), so no state handling lives here. Strategies turn a
provider's token into a ProviderIdentity.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List

from authlib.integrations.starlette_client import OAuth

from config import OAuthProviderSettings
from schemas.models.account import OAuthProvider
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ProviderIdentity:
    """What an identity provider tells us about the signed-in user."""

    provider: OAuthProvider
    provider_user_id: str
    email: str
    email_verified: bool
    given_name: str = ""
    family_name: str = ""
    picture: str = ""


# ── Provider strategies ───────────────────────────────────────────────────────


class OAuthProviderStrategy(ABC):
    """Encapsulates everything that differs between OAuth providers."""

    @property
    @abstractmethod
    def key(self) -> OAuthProvider: ...

    @abstractmethod
    async def fetch_identity(self, client: Any, token: Any) -> ProviderIdentity: ...


class GoogleStrategy(OAuthProviderStrategy):
    key = OAuthProvider.GOOGLE

    async def fetch_identity(self, client: Any, token: Any) -> ProviderIdentity:
        userinfo = token.get("userinfo")
        if userinfo is None:
            resp = await client.get("userinfo", token=token)
            resp.raise_for_status()
            userinfo = resp.json()
        return identity_from_google(userinfo)


class GitHubStrategy(OAuthProviderStrategy):
    key = OAuthProvider.GITHUB

    async def fetch_identity(self, client: Any, token: Any) -> ProviderIdentity:
        user_response = await client.get("user", token=token)
        user_response.raise_for_status()
        user = user_response.json()
        emails_response = await client.get("user/emails", token=token)
        emails = emails_response.json() if emails_response.status_code == 200 else []
        if not isinstance(emails, list):
            emails = []
        return identity_from_github(user, emails)


PROVIDER_STRATEGIES: dict[OAuthProvider, OAuthProviderStrategy] = {
    s.key: s() for s in [GoogleStrategy, GitHubStrategy]
}


# ── Authlib init ─────────────────────────────────────────────────────────────


def init_oauth(
    settings: OAuthProviderSettings,
) -> Dict[OAuthProvider, Any]:
    """Register an Authlib client for every provider with credentials.

    Returns the registered clients keyed by provider; empty when none are
    configured.
    """
    oauth = OAuth()
    providers: Dict[OAuthProvider, Any] = {}

    if settings.google_oauth_client_id and settings.google_oauth_client_secret:
        providers[OAuthProvider.GOOGLE] = oauth.register(
            name="google",
            client_id=settings.google_oauth_client_id,
            client_secret=settings.google_oauth_client_secret,
            server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
            client_kwargs={
                "scope": "openid email profile",
                "prompt": "select_account",
            },
        )
        log.info("oauth_provider_initialized", provider="google")

    if settings.github_oauth_client_id and settings.github_oauth_client_secret:
        providers[OAuthProvider.GITHUB] = oauth.register(
            name="github",
            client_id=settings.github_oauth_client_id,
            client_secret=settings.github_oauth_client_secret,
            access_token_url="https://github.com/login/oauth/access_token",
            authorize_url="https://github.com/login/oauth/authorize",
            api_base_url="https://api.github.com/",
            client_kwargs={"scope": "user:email"},
        )
        log.info("oauth_provider_initialized", provider="github")

    if not providers:
        log.warning("oauth_no_providers_configured")

    return providers


def get_oauth_redirect_url(
    provider: OAuthProvider, settings: OAuthProviderSettings
) -> str:
    """Return the configured callback URL for *provider* ("" when unset)."""
    return getattr(settings, f"{provider.value}_oauth_redirect_uri", "")


# ── Identity extractors ───────────────────────────────────────────────────────


def identity_from_google(userinfo: Dict[str, Any]) -> ProviderIdentity:
    return ProviderIdentity(
        provider=OAuthProvider.GOOGLE,
        provider_user_id=str(userinfo.get("sub", "")),
        email=(userinfo.get("email") or "").lower().strip(),
        email_verified=bool(userinfo.get("email_verified", False)),
        given_name=userinfo.get("given_name") or "",
        family_name=userinfo.get("family_name") or "",
        picture=userinfo.get("picture") or "",
    )


def identity_from_github(
    userinfo: Dict[str, Any], email_data: List[Dict[str, Any]]
) -> ProviderIdentity:
    primary_email = ""
    email_verified = False
    for entry in email_data:
        if entry.get("primary", False):
            primary_email = (entry.get("email") or "").lower().strip()
            email_verified = bool(entry.get("verified", False))
            break
    if not primary_email and email_data:
        primary_email = (email_data[0].get("email") or "").lower().strip()
        email_verified = bool(email_data[0].get("verified", False))

    name = userinfo.get("name") or userinfo.get("login") or ""
    given_name, _, family_name = name.partition(" ")
    return ProviderIdentity(
        provider=OAuthProvider.GITHUB,
        provider_user_id=str(userinfo.get("id", "")),
        email=primary_email,
        email_verified=email_verified,
        given_name=given_name,
        family_name=family_name,
        picture=userinfo.get("avatar_url") or "",
    )
