"""
Request DTOs for authentication endpoints.

SignupRequest           POST /auth/signup
LoginRequest            POST /auth/login
VerifyEmailRequest      POST /auth/verify-email
ResendEmailRequest      POST /auth/resend-email
ForgotPasswordRequest   POST /auth/forgot-password
ResetPasswordRequest    POST /auth/reset-password
RefreshTokenRequest     POST /auth/refresh-token
UpdateProfileRequest    PATCH /auth/profile
ChangePasswordRequest   POST /auth/change-password
SetPasswordRequest      POST /auth/set-password
DeleteAccountRequest    DELETE /auth/account
"""

from __future__ import annotations

from typing import Optional

from pydantic import EmailStr, Field, field_validator

from schemas.dto.base import CamelModel
from schemas.models.otp import PURPOSE_ALIASES, OtpPurpose, resolve_purpose
from shared.generators import OTP_LENGTH
from shared.validators import normalize_email, validate_password

OTP_PATTERN = rf"^\d{{{OTP_LENGTH}}}$"


def _check_password(value: str) -> str:
    ok, missing = validate_password(value)
    if not ok:
        raise ValueError("Password must contain " + ", ".join(missing))
    return value


class _EmailRequest(CamelModel):
    email: EmailStr

    @field_validator("email", mode="after")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        return normalize_email(v)


class _PurposeMixin(CamelModel):
    type: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _known_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in PURPOSE_ALIASES:
            raise ValueError(
                f"type must be one of: {', '.join(sorted(PURPOSE_ALIASES))}"
            )
        return v

    @property
    def purpose(self) -> OtpPurpose:
        return resolve_purpose(self.type)


class SignupRequest(_EmailRequest):
    """Request body for POST /auth/signup."""

    password: str
    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)

    @field_validator("password")
    @classmethod
    def _password_policy(cls, v: str) -> str:
        return _check_password(v)


class LoginRequest(_EmailRequest):
    """Request body for POST /auth/login. The password policy is not applied."""

    password: str = Field(min_length=1)


class VerifyEmailRequest(_EmailRequest, _PurposeMixin):
    """Request body for POST /auth/verify-email.

    ``otp`` is the 6-digit code sent to the email address.
    """

    otp: str = Field(pattern=OTP_PATTERN)


class ResendEmailRequest(_EmailRequest, _PurposeMixin):
    """Request body for POST /auth/resend-email."""


class ForgotPasswordRequest(_EmailRequest):
    """Request body for POST /auth/forgot-password."""


class ResetPasswordRequest(_EmailRequest):
    """Request body for POST /auth/reset-password."""

    otp: str = Field(pattern=OTP_PATTERN)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password_policy(cls, v: str) -> str:
        return _check_password(v)


class RefreshTokenRequest(CamelModel):
    """Request body for POST /auth/refresh-token."""

    refresh_token: str = Field(min_length=1)


class UpdateProfileRequest(CamelModel):
    """Request body for PATCH /auth/profile. Omitted fields are left unchanged."""

    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    avatar: Optional[str] = Field(default=None, max_length=2048)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)


class ChangePasswordRequest(CamelModel):
    """Request body for POST /auth/change-password."""

    current_password: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password_policy(cls, v: str) -> str:
        return _check_password(v)


class SetPasswordRequest(CamelModel):
    """Request body for POST /auth/set-password.

    Only applies to OAuth-only accounts that have not yet set a password.
    """

    password: str

    @field_validator("password")
    @classmethod
    def _password_policy(cls, v: str) -> str:
        return _check_password(v)


class DeleteAccountRequest(CamelModel):
    """Request body for DELETE /auth/account."""

    password: str = Field(min_length=1)
