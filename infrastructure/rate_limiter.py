"""Per-IP fixed-window rate limiting on top of the ``limits`` library.

Counters live in Redis when REDIS_URI is set, in process memory otherwise.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from fastapi import Request
from limits import RateLimitItem, parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter

from config import RateLimitSettings
from shared.logging import get_logger

log = get_logger(__name__)


class RateLimitScope(str, Enum):
    AUTH = "auth"
    OTP = "otp"
    PASSWORD_RESET = "password_reset"


class RateLimiter:
    def __init__(
        self, settings: RateLimitSettings, storage_uri: Optional[str] = None
    ) -> None:
        self.enabled = settings.rate_limit_enabled
        self._storage = storage_from_string(storage_uri or "memory://")
        self._limiter = FixedWindowRateLimiter(self._storage)
        self._limits: dict[RateLimitScope, RateLimitItem] = {
            RateLimitScope.AUTH: parse(settings.rate_limit_auth),
            RateLimitScope.OTP: parse(settings.rate_limit_otp),
            RateLimitScope.PASSWORD_RESET: parse(settings.rate_limit_password_reset),
        }

    def hit(self, scope: RateLimitScope, key: str) -> bool:
        """Count one request for *key*; False once the scope's limit is exceeded."""
        if not self.enabled:
            return True
        allowed = self._limiter.hit(self._limits[scope], scope.value, key)
        if not allowed:
            log.warning("rate_limit_exceeded", scope=scope.value, client_ip=key)
        return allowed

    def reset(self) -> None:
        self._storage.reset()


def get_client_ip(request: Request) -> str:
    """Extract the real client IP, honouring common proxy headers.

    Checked in order: CF-Connecting-IP, True-Client-IP, X-Forwarded-For
    (first entry), X-Real-IP; then the socket peer address.
    """
    for header in ("CF-Connecting-IP", "True-Client-IP", "X-Forwarded-For", "X-Real-IP"):
        ip_value = request.headers.get(header)
        if ip_value:
            client_ip = ip_value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else ""
