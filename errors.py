"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses of the shape
``{"success": false, "message": ..., "code": ...}``.

Non-AppError exceptions are logged and bubble up as 500s (with Sentry
reporting in production).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class ConfigurationError(Exception):
    """Raised at startup when required configuration is missing."""


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {
            "success": False,
            "message": self.message,
            "code": self.error_code,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class ConflictError(AppError):
    status_code = 400
    error_code = "conflict"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class InvalidCredentialsError(AuthenticationError):
    error_code = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class InvalidTokenError(AuthenticationError):
    error_code = "invalid_token"

    def __init__(self, message: str = "Invalid or expired token", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class TokenExpiredError(InvalidTokenError):
    error_code = "token_expired"


class InvalidCodeError(AppError):
    status_code = 400
    error_code = "invalid_code"

    def __init__(self, attempts_remaining: int) -> None:
        super().__init__(
            "Invalid OTP.",
            details={"attemptsLeft": attempts_remaining},
        )
        self.attempts_remaining = attempts_remaining

    def to_dict(self) -> dict:
        # The client reads attemptsLeft at the top level
        return {**super().to_dict(), "attemptsLeft": self.attempts_remaining}


class OtpNotFoundError(AppError):
    status_code = 400
    error_code = "otp_not_found"

    def __init__(
        self, message: str = "Invalid or expired OTP. Please request a new one."
    ) -> None:
        super().__init__(message)


class TooManyAttemptsError(AppError):
    status_code = 429
    error_code = "too_many_attempts"

    def __init__(
        self, message: str = "Too many attempts. Please request a new code."
    ) -> None:
        super().__init__(message)


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class InternalError(AppError):
    status_code = 500
    error_code = "internal_error"


def _field_path(loc: Any) -> str:
    return ".".join(str(part) for part in loc if part != "body")


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"field": _field_path(err.get("loc", [])), "message": err.get("msg")}
            for err in exc.errors()
        ]
        error = ValidationError("Validation error", details={"errors": errors})
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return JSONResponse(
            status_code=500,
            content=InternalError("Internal server error").to_dict(),
        )
