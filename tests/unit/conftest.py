"""
Unit test configuration.

Patches dotenv so pydantic-settings never reads the project's real .env file
during unit tests, and clears secrets that may be exported in the shell.
Tests control config exclusively through monkeypatch.setenv().
"""

import pytest

_SECRET_ENV_VARS = ("JWT_SECRET", "JWT_REFRESH_SECRET", "BREVO_API_KEY", "SECRET_KEY")


@pytest.fixture(autouse=True)
def disable_dotenv_loading(monkeypatch):
    """Prevent pydantic-settings from loading .env files in all unit tests."""
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})
    for name in _SECRET_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
