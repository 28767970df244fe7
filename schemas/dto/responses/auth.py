"""
Response DTOs for authentication endpoints.

UserSummary           account shape embedded in most responses
SignupResponse        POST /auth/signup  (201)
LoginResponse         POST /auth/login  (200)
VerifyEmailResponse   POST /auth/verify-email  (200)
RefreshResponse       POST /auth/refresh-token  (200)
ProfileResponse       GET/PATCH /auth/profile  (200)
"""

from __future__ import annotations

from typing import Optional

from schemas.dto.base import CamelModel
from schemas.models.account import AccountDoc


class UserSummary(CamelModel):
    """Public view of an account. Never carries credential material."""

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar: Optional[str] = None
    is_verified: bool
    # Duplicate of is_verified kept for older clients
    email_verified: bool
    is_active: bool
    has_password: bool
    auth_providers: list[str] = []
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    city: Optional[str] = None

    @classmethod
    def from_account(cls, account: AccountDoc) -> "UserSummary":
        return cls(
            id=str(account.id),
            email=account.email,
            first_name=account.first_name,
            last_name=account.last_name,
            avatar=account.avatar,
            is_verified=account.is_verified,
            email_verified=account.is_verified,
            is_active=account.is_active,
            has_password=account.has_password,
            auth_providers=[entry.provider.value for entry in account.auth_providers],
            latitude=account.latitude,
            longitude=account.longitude,
            address=account.address,
            city=account.city,
        )


class SignupData(CamelModel):
    id: str
    email: str
    is_verified: bool
    requires_verification: bool = True


class SignupResponse(CamelModel):
    """Response body for POST /auth/signup (201)."""

    success: bool = True
    message: str
    data: SignupData


class TokenPairData(CamelModel):
    access_token: str
    refresh_token: str


class LoginData(CamelModel):
    user: UserSummary
    access_token: str
    refresh_token: str


class LoginResponse(CamelModel):
    """Response body for POST /auth/login (200).

    ``user`` is repeated at the root and ``token`` mirrors the access token
    for clients that read them from there.
    """

    success: bool = True
    message: str = "Login successful"
    user: UserSummary
    data: LoginData
    token: str
    requires_verification: bool


class UserData(CamelModel):
    user: UserSummary


class VerifyEmailResponse(CamelModel):
    """Response body for POST /auth/verify-email (200).

    Tokens and user are present only for email verification.
    """

    success: bool = True
    message: str
    user: Optional[UserSummary] = None
    data: Optional[UserData] = None
    token: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class RefreshResponse(CamelModel):
    """Response body for POST /auth/refresh-token (200)."""

    success: bool = True
    data: TokenPairData


class ProfileResponse(CamelModel):
    """Response body for GET/PATCH /auth/profile (200)."""

    success: bool = True
    message: Optional[str] = None
    data: UserData
