"""
Integration fixtures: the real routers, error handlers and session middleware
mounted on a FastAPI app whose lifespan injects the in-memory services.
No network connections are made.
"""

import os
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.middleware.sessions import SessionMiddleware

from config import AppSettings, DatabaseSettings, RateLimitSettings
from errors import register_error_handlers
from infrastructure.rate_limiter import RateLimiter
from routes.auth_routes import router as auth_router
from routes.oauth_routes import router as oauth_router

os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/")

CLIENT_URL = "http://client.test"


def build_test_app(
    auth_service,
    oauth_service,
    *,
    rate_limit_settings=None,
    oauth_providers=None,
) -> FastAPI:
    settings = AppSettings(
        db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017/"),
        client_url=CLIENT_URL,
    )
    limiter = RateLimiter(rate_limit_settings or RateLimitSettings(rate_limit_enabled=False))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.auth_service = auth_service
        app.state.oauth_service = oauth_service
        app.state.rate_limiter = limiter
        app.state.oauth_providers = oauth_providers or {}
        yield

    app = FastAPI(lifespan=lifespan)
    app.add_middleware(SessionMiddleware, secret_key="test-session-secret")
    register_error_handlers(app)
    app.include_router(auth_router)
    app.include_router(oauth_router)
    return app


@pytest.fixture
def client(auth_service, oauth_service):
    with TestClient(build_test_app(auth_service, oauth_service)) as c:
        yield c


@pytest.fixture
def make_app(auth_service, oauth_service):
    """Return a factory for apps with custom rate limits or OAuth clients."""

    def _make(**kwargs) -> FastAPI:
        return build_test_app(auth_service, oauth_service, **kwargs)

    return _make
