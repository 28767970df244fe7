"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient
from starlette.middleware.sessions import SessionMiddleware

from config import AppSettings
from errors import ConfigurationError, register_error_handlers
from infrastructure.email.brevo import BrevoEmailProvider
from infrastructure.email.console import ConsoleEmailProvider
from infrastructure.http_client import HttpClient
from infrastructure.oauth_clients import init_oauth
from infrastructure.rate_limiter import RateLimiter
from repositories.account_repository import AccountRepository
from repositories.otp_repository import OtpRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.oauth_routes import router as oauth_router
from services.auth_service import AuthService
from services.oauth_service import OAuthService
from services.otp_service import OtpService
from services.token_service import TokenIssuer
from shared.crypto import CredentialHasher
from shared.generators import generate_secure_token
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)

ACCOUNTS_COLLECTION = "accounts"
OTP_COLLECTION = "otp-codes"


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application.

    Raises ConfigurationError when the JWT signing secrets are missing, or
    when production has no mail API key.
    """
    if settings is None:
        settings = AppSettings()

    setup_logging(settings.logging)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            environment=settings.env,
        )

    token_issuer = TokenIssuer(settings.jwt)
    # Production never falls back to the console mailer
    if settings.is_production and not settings.email.brevo_api_key:
        raise ConfigurationError("BREVO_API_KEY must be set in production")
    oauth_providers = init_oauth(settings.oauth)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        db = mongo_client[settings.db.db_name]
        app.state.mongo_client = mongo_client
        app.state.db = db
        app.state.settings = settings

        # Redis is optional; only rate-limit counters live there
        redis_client = None
        if settings.redis.redis_uri:
            redis_client = aioredis.from_url(
                settings.redis.redis_uri,
                encoding="utf-8",
                decode_responses=True,
            )
        app.state.redis = redis_client
        app.state.rate_limiter = RateLimiter(
            settings.rate_limit, storage_uri=settings.redis.redis_uri
        )

        otp_repo = OtpRepository(db[OTP_COLLECTION])
        account_repo = AccountRepository(
            db[ACCOUNTS_COLLECTION],
            otp_collection=db[OTP_COLLECTION],
            client=mongo_client,
        )
        await account_repo.ensure_indexes()
        await otp_repo.ensure_indexes()

        http_client: Optional[HttpClient] = None
        if settings.email.brevo_api_key:
            http_client = HttpClient(timeout=10.0)
            email_provider = BrevoEmailProvider(
                settings.email,
                http_client,
                app_url=settings.client_url,
                otp_expiry_minutes=settings.otp.otp_expiry_minutes,
            )
        else:
            log.warning("email_provider_console", reason="brevo_api_key_not_configured")
            email_provider = ConsoleEmailProvider()

        hasher = CredentialHasher()
        otp_service = OtpService(otp_repo, hasher, settings.otp)
        auth_service = AuthService(
            account_repo, otp_service, token_issuer, hasher, email_provider
        )
        app.state.auth_service = auth_service
        app.state.oauth_service = OAuthService(account_repo, auth_service)
        app.state.oauth_providers = oauth_providers

        log.info("app_started", env=settings.env, db_name=settings.db.db_name)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        if http_client is not None:
            await http_client.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Authlib keeps the OAuth state in the session cookie
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key or generate_secure_token(),
        https_only=settings.is_production,
        same_site="lax",
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(oauth_router)

    return app
