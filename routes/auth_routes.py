"""
Authentication endpoints under /auth.

POST   /auth/signup            create account, email a verification code
POST   /auth/login             password login (tokens even when unverified)
POST   /auth/verify-email      consume a code (verification or password reset)
POST   /auth/resend-email      issue a new code
POST   /auth/forgot-password   email a password reset code
POST   /auth/reset-password    set a new password with a reset code
POST   /auth/refresh-token     rotate the refresh token
POST   /auth/logout            revoke the refresh token
GET    /auth/profile           current account
PATCH  /auth/profile           update profile fields
POST   /auth/change-password   change password (current password required)
POST   /auth/set-password      first password for OAuth-only accounts
DELETE /auth/account           delete account and its codes
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from dependencies import (
    get_auth_service,
    get_current_account,
    rate_limit,
    require_verified_account,
)
from infrastructure.rate_limiter import RateLimitScope
from schemas.dto.requests.auth import (
    ChangePasswordRequest,
    DeleteAccountRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    ResendEmailRequest,
    ResetPasswordRequest,
    SetPasswordRequest,
    SignupRequest,
    UpdateProfileRequest,
    VerifyEmailRequest,
)
from schemas.dto.responses.auth import (
    LoginData,
    LoginResponse,
    ProfileResponse,
    RefreshResponse,
    SignupData,
    SignupResponse,
    TokenPairData,
    UserData,
    UserSummary,
    VerifyEmailResponse,
)
from schemas.dto.responses.common import ErrorResponse, MessageResponse
from schemas.models.account import AccountDoc
from schemas.models.otp import OtpPurpose
from services.auth_service import AuthService, ResendOutcome

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)

_auth_limit = Depends(rate_limit(RateLimitScope.AUTH))
_otp_limit = Depends(rate_limit(RateLimitScope.OTP))
_reset_limit = Depends(rate_limit(RateLimitScope.PASSWORD_RESET))

RESEND_GENERIC_MESSAGE = (
    "If an account with this email exists, a new verification code will be sent."
)
FORGOT_GENERIC_MESSAGE = (
    "If an account with this email exists, a password reset code will be sent."
)


def _message(message: str, success: bool = True) -> JSONResponse:
    return JSONResponse(content=MessageResponse(success=success, message=message).to_json_dict())


@router.post("/signup", dependencies=[_auth_limit])
async def signup(
    body: SignupRequest, auth_service: AuthService = Depends(get_auth_service)
) -> JSONResponse:
    account = await auth_service.signup(
        body.email, body.password, body.first_name, body.last_name
    )
    response = SignupResponse(
        message="Account created successfully. Please check your email for verification code.",
        data=SignupData(
            id=str(account.id),
            email=account.email,
            is_verified=account.is_verified,
            requires_verification=True,
        ),
    )
    return JSONResponse(status_code=201, content=response.to_json_dict())


@router.post("/login", dependencies=[_auth_limit])
async def login(
    body: LoginRequest, auth_service: AuthService = Depends(get_auth_service)
) -> JSONResponse:
    result = await auth_service.login(body.email, body.password)
    user = UserSummary.from_account(result.account)
    response = LoginResponse(
        user=user,
        data=LoginData(
            user=user,
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
        ),
        token=result.tokens.access_token,
        requires_verification=not result.account.is_verified,
    )
    return JSONResponse(content=response.to_json_dict())


@router.post("/verify-email", dependencies=[_auth_limit])
async def verify_email(
    body: VerifyEmailRequest, auth_service: AuthService = Depends(get_auth_service)
) -> JSONResponse:
    result = await auth_service.verify_otp(body.email, body.otp, body.purpose)

    if result.purpose is not OtpPurpose.EMAIL_VERIFICATION:
        response = VerifyEmailResponse(message="OTP verified successfully!")
        return JSONResponse(content=response.to_json_dict())

    user = UserSummary.from_account(result.account)
    response = VerifyEmailResponse(
        message="Email verified successfully!",
        user=user,
        data=UserData(user=user),
        token=result.tokens.access_token,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )
    return JSONResponse(content=response.to_json_dict())


@router.post("/resend-email", dependencies=[_otp_limit])
async def resend_email(
    body: ResendEmailRequest, auth_service: AuthService = Depends(get_auth_service)
) -> JSONResponse:
    outcome = await auth_service.resend_otp(body.email, body.purpose)
    if outcome is ResendOutcome.ALREADY_VERIFIED:
        return _message("Email is already verified.", success=False)
    # SENT and UNKNOWN_EMAIL must be indistinguishable
    return _message(RESEND_GENERIC_MESSAGE)


@router.post("/forgot-password", dependencies=[_reset_limit])
async def forgot_password(
    body: ForgotPasswordRequest, auth_service: AuthService = Depends(get_auth_service)
) -> JSONResponse:
    await auth_service.forgot_password(body.email)
    return _message(FORGOT_GENERIC_MESSAGE)


@router.post("/reset-password", dependencies=[_auth_limit])
async def reset_password(
    body: ResetPasswordRequest, auth_service: AuthService = Depends(get_auth_service)
) -> JSONResponse:
    await auth_service.reset_password(body.email, body.otp, body.new_password)
    return _message("Password reset successfully. Please login with your new password.")


@router.post("/refresh-token", dependencies=[_auth_limit])
async def refresh_token(
    body: RefreshTokenRequest, auth_service: AuthService = Depends(get_auth_service)
) -> JSONResponse:
    tokens = await auth_service.refresh(body.refresh_token)
    response = RefreshResponse(
        data=TokenPairData(
            access_token=tokens.access_token, refresh_token=tokens.refresh_token
        )
    )
    return JSONResponse(content=response.to_json_dict())


@router.post("/logout")
async def logout(
    account: AccountDoc = Depends(get_current_account),
    auth_service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await auth_service.logout(account)
    return _message("Logged out successfully")


@router.get("/profile")
async def get_profile(
    account: AccountDoc = Depends(require_verified_account),
) -> JSONResponse:
    response = ProfileResponse(data=UserData(user=UserSummary.from_account(account)))
    return JSONResponse(content=response.to_json_dict())


@router.patch("/profile")
async def update_profile(
    body: UpdateProfileRequest,
    account: AccountDoc = Depends(require_verified_account),
    auth_service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    fields = body.model_dump(exclude_unset=True)
    updated = await auth_service.update_profile(account, fields)
    response = ProfileResponse(
        message="Profile updated successfully",
        data=UserData(user=UserSummary.from_account(updated)),
    )
    return JSONResponse(content=response.to_json_dict())


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    account: AccountDoc = Depends(require_verified_account),
    auth_service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await auth_service.change_password(account, body.current_password, body.new_password)
    return _message("Password changed successfully. Please login again.")


@router.post("/set-password")
async def set_password(
    body: SetPasswordRequest,
    account: AccountDoc = Depends(get_current_account),
    auth_service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await auth_service.set_password(account, body.password)
    return _message("Password set successfully")


@router.delete("/account")
async def delete_account(
    body: DeleteAccountRequest,
    account: AccountDoc = Depends(require_verified_account),
    auth_service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await auth_service.delete_account(account, body.password)
    return _message("Account deleted successfully")
