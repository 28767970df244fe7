"""
Token issuer: signed access/refresh JWT pairs.

Access and refresh tokens use distinct secrets and a ``type`` claim, so one
can never be accepted as the other. Every token carries a random ``jti``;
two pairs minted for the same account within one second still differ.

Whether a refresh token is *usable* (equal to the account's stored token)
is decided by AuthService, not here.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import jwt

from config import JWTSettings
from errors import ConfigurationError, InvalidTokenError, TokenExpiredError
from schemas.models.account import AccountDoc
from shared.datetime_utils import utcnow

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenIssuer:
    def __init__(
        self,
        settings: JWTSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not settings.is_configured:
            raise ConfigurationError(
                "JWT_SECRET and JWT_REFRESH_SECRET must both be set"
            )
        if settings.jwt_secret == settings.jwt_refresh_secret:
            raise ConfigurationError(
                "JWT_SECRET and JWT_REFRESH_SECRET must be different"
            )
        self._settings = settings
        self._clock = clock or utcnow

    def _encode(
        self, claims: dict[str, Any], secret: str, ttl_seconds: int
    ) -> str:
        now = self._clock()
        payload = {
            **claims,
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=ttl_seconds)).timestamp()),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm=self._settings.jwt_algorithm)

    def issue_access_token(self, account: AccountDoc) -> str:
        account_id = str(account.id)
        return self._encode(
            {
                "sub": account_id,
                "id": account_id,
                "email": account.email,
                "isVerified": account.is_verified,
                "type": TOKEN_TYPE_ACCESS,
            },
            self._settings.jwt_secret,
            self._settings.access_token_ttl_seconds,
        )

    def issue_refresh_token(self, account: AccountDoc) -> str:
        account_id = str(account.id)
        return self._encode(
            {
                "sub": account_id,
                "id": account_id,
                "email": account.email,
                "type": TOKEN_TYPE_REFRESH,
            },
            self._settings.jwt_refresh_secret,
            self._settings.refresh_token_ttl_seconds,
        )

    def issue_tokens(self, account: AccountDoc) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(account),
            refresh_token=self.issue_refresh_token(account),
        )

    def _decode(self, token: str, secret: str, expected_type: str) -> dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self._settings.jwt_algorithm],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
                options={"require": ["exp", "iat", "sub", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired") from None
        except jwt.InvalidTokenError:
            raise InvalidTokenError() from None

        if claims.get("type") != expected_type:
            raise InvalidTokenError()
        # The injected clock may run ahead of wall time
        if claims["exp"] <= int(self._clock().timestamp()):
            raise TokenExpiredError("Token has expired")
        return claims

    def verify_access(self, token: str) -> dict[str, Any]:
        """Return the claims of a valid access token or raise InvalidTokenError."""
        return self._decode(token, self._settings.jwt_secret, TOKEN_TYPE_ACCESS)

    def verify_refresh(self, token: str) -> dict[str, Any]:
        """Return the claims of a valid refresh token or raise InvalidTokenError."""
        return self._decode(
            token, self._settings.jwt_refresh_secret, TOKEN_TYPE_REFRESH
        )
