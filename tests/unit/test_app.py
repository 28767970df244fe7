"""Unit tests for the create_app() factory (no lifespan, no network)."""

import pytest

from app import create_app
from config import AppSettings, DatabaseSettings, EmailSettings, JWTSettings
from errors import ConfigurationError

SECRETS = {"jwt_secret": "access-secret", "jwt_refresh_secret": "refresh-secret"}


def _settings(env: str = "development", brevo_api_key: str = "", **jwt) -> AppSettings:
    return AppSettings(
        env=env,
        db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017/"),
        jwt=JWTSettings(**jwt),
        email=EmailSettings(brevo_api_key=brevo_api_key),
    )


class TestCreateApp:
    def test_missing_jwt_secrets_fail_at_startup(self):
        with pytest.raises(ConfigurationError):
            create_app(_settings())

    def test_production_requires_mail_api_key(self):
        with pytest.raises(ConfigurationError, match="BREVO_API_KEY"):
            create_app(_settings(env="production", **SECRETS))

    def test_production_with_mail_api_key(self):
        app = create_app(_settings(env="production", brevo_api_key="brevo-key", **SECRETS))
        assert "/auth/signup" in app.openapi()["paths"]

    def test_development_allows_console_mailer(self):
        assert create_app(_settings(**SECRETS)) is not None

    def test_routes_registered(self):
        paths = set(create_app(_settings(**SECRETS)).openapi()["paths"])
        assert {
            "/health",
            "/auth/signup",
            "/auth/login",
            "/auth/verify-email",
            "/auth/resend-email",
            "/auth/forgot-password",
            "/auth/reset-password",
            "/auth/refresh-token",
            "/auth/logout",
            "/auth/profile",
            "/auth/change-password",
            "/auth/set-password",
            "/auth/account",
            "/oauth/{provider}",
            "/oauth/{provider}/callback",
            "/oauth/{provider}/unlink",
        } <= paths

    def test_openapi_documents_error_shape(self):
        schema = create_app(_settings(**SECRETS)).openapi()
        assert "ErrorResponse" in schema["components"]["schemas"]
        signup = schema["paths"]["/auth/signup"]["post"]
        assert "429" in signup["responses"]
