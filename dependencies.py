"""
FastAPI dependency providers.

Services are built once in the app lifespan and stored on app.state; the
providers here hand them to route handlers via Depends().
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import AppSettings
from errors import AuthenticationError, ForbiddenError, RateLimitError
from infrastructure.rate_limiter import RateLimiter, RateLimitScope, get_client_ip
from schemas.models.account import AccountDoc
from services.auth_service import AuthService
from services.oauth_service import OAuthService

_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_oauth_service(request: Request) -> OAuthService:
    return request.app.state.oauth_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


async def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    auth_service: AuthService = Depends(get_auth_service),
) -> AccountDoc:
    """Resolve ``Authorization: Bearer <access token>`` to an account (401 otherwise)."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Access token required")
    return await auth_service.authenticate(credentials.credentials)


async def require_verified_account(
    account: AccountDoc = Depends(get_current_account),
) -> AccountDoc:
    if not account.is_verified:
        raise ForbiddenError("Email verification required")
    return account


def rate_limit(scope: RateLimitScope) -> Callable[..., None]:
    """Build a dependency that counts the request against *scope* for the client IP."""

    def _check(
        request: Request, limiter: RateLimiter = Depends(get_rate_limiter)
    ) -> None:
        if not limiter.hit(scope, get_client_ip(request)):
            raise RateLimitError("Too many requests. Please try again later.")

    return _check
