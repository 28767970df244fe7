"""
OAuth endpoints under /oauth.

GET    /oauth/{provider}            redirect to the provider's consent page
GET    /oauth/{provider}/callback   finish the handshake, redirect to the client
DELETE /oauth/{provider}/unlink     detach a provider from the current account

The callback always redirects to ``{CLIENT_URL}/login``: with
``access_token``, ``refresh_token`` and ``user`` (JSON) on success, or
``error=oauth_failed`` on any failure.
"""

from __future__ import annotations

import json
from urllib.parse import urlencode

import httpx
from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from dependencies import get_current_account, get_oauth_service, get_settings, rate_limit
from errors import AppError, NotFoundError
from infrastructure.oauth_clients import PROVIDER_STRATEGIES, get_oauth_redirect_url
from infrastructure.rate_limiter import RateLimitScope
from schemas.dto.responses.auth import ProfileResponse, UserData, UserSummary
from schemas.models.account import AccountDoc, OAuthProvider
from services.oauth_service import OAuthService
from shared.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/oauth", tags=["oauth"])


def _client_for(request: Request, provider: OAuthProvider):
    client = request.app.state.oauth_providers.get(provider)
    if client is None:
        raise NotFoundError(f"{provider.value} login is not configured")
    return client


def _login_redirect(request: Request, **params: str) -> RedirectResponse:
    client_url = get_settings(request).client_url.rstrip("/")
    return RedirectResponse(url=f"{client_url}/login?{urlencode(params)}", status_code=302)


@router.get("/{provider}")
async def oauth_start(provider: OAuthProvider, request: Request):
    client = _client_for(request, provider)
    redirect_uri = get_oauth_redirect_url(provider, get_settings(request).oauth) or str(
        request.url_for("oauth_callback", provider=provider.value)
    )
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/{provider}/callback", name="oauth_callback")
async def oauth_callback(
    provider: OAuthProvider,
    request: Request,
    oauth_service: OAuthService = Depends(get_oauth_service),
) -> RedirectResponse:
    try:
        client = _client_for(request, provider)
        token = await client.authorize_access_token(request)
        identity = await PROVIDER_STRATEGIES[provider].fetch_identity(client, token)
        result = await oauth_service.login_with_provider(identity)
    except (OAuthError, httpx.HTTPError, AppError) as e:
        log.warning(
            "oauth_callback_failed",
            provider=provider.value,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _login_redirect(request, error="oauth_failed")

    user = UserSummary.from_account(result.account).to_json_dict()
    return _login_redirect(
        request,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        user=json.dumps(user, separators=(",", ":")),
    )


@router.delete(
    "/{provider}/unlink", dependencies=[Depends(rate_limit(RateLimitScope.AUTH))]
)
async def unlink_provider(
    provider: OAuthProvider,
    account: AccountDoc = Depends(get_current_account),
    oauth_service: OAuthService = Depends(get_oauth_service),
) -> JSONResponse:
    updated = await oauth_service.unlink_provider(account, provider)
    response = ProfileResponse(
        message=f"{provider.value} account unlinked",
        data=UserData(user=UserSummary.from_account(updated)),
    )
    return JSONResponse(content=response.to_json_dict())
