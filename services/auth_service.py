"""
AuthService: signup, login, OTP verification, password flows and sessions.

Composes AccountRepository, OtpService, TokenIssuer, CredentialHasher and
an EmailProvider. Route handlers translate the returned values into HTTP
responses; every failure is raised as an AppError subclass.

Refresh tokens are stored as SHA-256 digests and rotated with a
compare-and-set, so a stale token can never win a concurrent refresh.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from errors import (
    ConflictError,
    ForbiddenError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    OtpNotFoundError,
    ValidationError,
)
from infrastructure.email.protocol import EmailProvider
from repositories.account_repository import AccountRepository
from schemas.models.account import AccountDoc
from schemas.models.otp import OtpPurpose
from services.otp_service import OtpService
from services.token_service import TokenIssuer, TokenPair
from shared.crypto import CredentialHasher, hash_token
from shared.logging import get_logger

log = get_logger(__name__)

INACTIVE_MESSAGE = "Account has been deactivated. Please contact support."


@dataclass(frozen=True)
class AuthResult:
    account: AccountDoc
    tokens: TokenPair


@dataclass(frozen=True)
class VerifyResult:
    purpose: OtpPurpose
    account: Optional[AccountDoc] = None
    tokens: Optional[TokenPair] = None


class ResendOutcome(str, Enum):
    SENT = "sent"
    UNKNOWN_EMAIL = "unknown_email"
    ALREADY_VERIFIED = "already_verified"


class AuthService:
    def __init__(
        self,
        account_repo: AccountRepository,
        otp_service: OtpService,
        token_issuer: TokenIssuer,
        hasher: CredentialHasher,
        email_provider: EmailProvider,
    ) -> None:
        self._accounts = account_repo
        self._otp = otp_service
        self._tokens = token_issuer
        self._hasher = hasher
        self._email = email_provider
        self._dummy_hash: Optional[str] = None

    # ── Helpers ─────────────────────────────────────────────────────────────

    async def start_session(self, account: AccountDoc) -> AuthResult:
        """Issue a token pair and make its refresh token the account's current one."""
        tokens = self._tokens.issue_tokens(account)
        await self._accounts.record_login(account.id, hash_token(tokens.refresh_token))
        return AuthResult(account=account, tokens=tokens)

    async def _send_otp(self, account: AccountDoc, purpose: OtpPurpose) -> None:
        code = await self._otp.issue(account.email, purpose)
        sent = await self._email.send_otp_email(
            account.email, account.first_name, code, purpose
        )
        if not sent:
            log.warning(
                "otp_email_not_sent", account_id=str(account.id), purpose=purpose.value
            )

    async def _check_password(self, account: Optional[AccountDoc], password: str) -> bool:
        if account is None or not account.password_hash:
            # Unknown emails still pay for one hash comparison
            if self._dummy_hash is None:
                self._dummy_hash = await self._hasher.hash_async("not-a-real-password")
            await self._hasher.verify_async(password, self._dummy_hash)
            return False
        return await self._hasher.verify_async(password, account.password_hash)

    # ── Signup / login ──────────────────────────────────────────────────────

    async def signup(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AccountDoc:
        """Create an unverified account and email it a verification code.

        No tokens are issued until the email is verified or the user logs in.
        """
        if await self._accounts.find_by_email(email) is not None:
            raise ConflictError("User already exists with this email", field="email")

        account = await self._accounts.create(
            AccountDoc(
                email=email,
                password_hash=await self._hasher.hash_async(password),
                first_name=first_name,
                last_name=last_name,
                is_verified=False,
                is_active=True,
            )
        )
        await self._send_otp(account, OtpPurpose.EMAIL_VERIFICATION)
        log.info("signup_success", account_id=str(account.id))
        return account

    async def login(self, email: str, password: str) -> AuthResult:
        account = await self._accounts.find_by_email(email)
        if not await self._check_password(account, password):
            log.warning("login_failed", reason="invalid_credentials")
            raise InvalidCredentialsError()
        if not account.is_active:
            log.warning("login_failed", account_id=str(account.id), reason="inactive")
            raise ForbiddenError(INACTIVE_MESSAGE)

        result = await self.start_session(account)
        log.info(
            "login_success", account_id=str(account.id), is_verified=account.is_verified
        )
        return result

    # ── One-time codes ──────────────────────────────────────────────────────

    async def verify_otp(self, email: str, code: str, purpose: OtpPurpose) -> VerifyResult:
        """Consume a code. Email verification also marks the account verified
        and starts a session; a password-reset code is only checked.
        """
        await self._otp.verify(email, purpose, code)

        if purpose is not OtpPurpose.EMAIL_VERIFICATION:
            await self._otp.invalidate_all(email, purpose)
            return VerifyResult(purpose=purpose)

        existing = await self._accounts.find_by_email(email)
        if existing is None:
            await self._otp.invalidate_all(email, purpose)
            raise OtpNotFoundError()

        account = await self._accounts.mark_verified(existing.id)
        await self._otp.invalidate_all(email, purpose)
        if account is None:
            raise OtpNotFoundError()
        log.info("email_verified", account_id=str(account.id))

        if not existing.is_verified:
            if not await self._email.send_welcome_email(account.email, account.first_name):
                log.warning("welcome_email_not_sent", account_id=str(account.id))

        if not account.is_active:
            raise ForbiddenError(INACTIVE_MESSAGE)

        result = await self.start_session(account)
        return VerifyResult(purpose=purpose, account=result.account, tokens=result.tokens)

    async def resend_otp(self, email: str, purpose: OtpPurpose) -> ResendOutcome:
        account = await self._accounts.find_by_email(email)
        if account is None:
            log.info("otp_resend_skipped", reason="unknown_email", purpose=purpose.value)
            return ResendOutcome.UNKNOWN_EMAIL
        if purpose is OtpPurpose.EMAIL_VERIFICATION and account.is_verified:
            return ResendOutcome.ALREADY_VERIFIED

        await self._send_otp(account, purpose)
        return ResendOutcome.SENT

    # ── Password flows ──────────────────────────────────────────────────────

    async def forgot_password(self, email: str) -> None:
        account = await self._accounts.find_by_email(email)
        if account is None:
            log.info("password_reset_skipped", reason="unknown_email")
            return
        await self._send_otp(account, OtpPurpose.PASSWORD_RESET)
        log.info("password_reset_requested", account_id=str(account.id))

    async def reset_password(self, email: str, code: str, new_password: str) -> None:
        await self._otp.verify(email, OtpPurpose.PASSWORD_RESET, code)

        account = await self._accounts.find_by_email(email)
        if account is None:
            await self._otp.invalidate_all(email, OtpPurpose.PASSWORD_RESET)
            raise OtpNotFoundError()

        await self._accounts.set_password(
            account.id, await self._hasher.hash_async(new_password)
        )
        await self._otp.invalidate_all(email, OtpPurpose.PASSWORD_RESET)
        log.info("password_reset_success", account_id=str(account.id))

    async def change_password(
        self, account: AccountDoc, current_password: str, new_password: str
    ) -> None:
        if not account.has_password:
            raise ValidationError(
                "No password is set for this account. Use set-password instead."
            )
        if not await self._hasher.verify_async(current_password, account.password_hash):
            raise ValidationError(
                "Current password is incorrect", field="currentPassword"
            )
        await self._accounts.set_password(
            account.id, await self._hasher.hash_async(new_password)
        )
        log.info("password_changed", account_id=str(account.id))

    async def set_password(self, account: AccountDoc, password: str) -> None:
        """Give an OAuth-only account its first password."""
        already_set = ValidationError(
            "Password already set. Use change-password instead.", field="password"
        )
        if account.has_password:
            raise already_set
        if not await self._accounts.set_password_if_unset(
            account.id, await self._hasher.hash_async(password)
        ):
            raise already_set
        log.info("password_set", account_id=str(account.id))

    # ── Sessions ────────────────────────────────────────────────────────────

    async def refresh(self, refresh_token: str) -> TokenPair:
        claims = self._tokens.verify_refresh(refresh_token)
        current_hash = hash_token(refresh_token)

        account = await self._accounts.find_by_refresh_token(claims.get("id"), current_hash)
        if account is None:
            log.warning("refresh_rejected", reason="not_current")
            raise InvalidTokenError("Invalid refresh token")
        if not account.is_active:
            raise ForbiddenError("Account has been deactivated")

        tokens = self._tokens.issue_tokens(account)
        rotated = await self._accounts.rotate_refresh_token(
            account.id, current_hash, hash_token(tokens.refresh_token)
        )
        if not rotated:
            log.warning("refresh_rejected", account_id=str(account.id), reason="lost_race")
            raise InvalidTokenError("Invalid refresh token")

        log.info("tokens_refreshed", account_id=str(account.id))
        return tokens

    async def logout(self, account: AccountDoc) -> None:
        """Revoke the refresh token. Access tokens stay valid until they expire."""
        await self._accounts.clear_refresh_token(account.id)
        log.info("logout", account_id=str(account.id))

    async def authenticate(self, access_token: str) -> AccountDoc:
        """Resolve a bearer access token to its (active) account."""
        claims = self._tokens.verify_access(access_token)
        account = await self._accounts.find_by_id(claims.get("id"))
        if account is None:
            raise InvalidTokenError()
        if not account.is_active:
            raise ForbiddenError(INACTIVE_MESSAGE)
        return account

    # ── Account management ──────────────────────────────────────────────────

    async def update_profile(self, account: AccountDoc, fields: dict[str, Any]) -> AccountDoc:
        if not fields:
            return account
        updated = await self._accounts.update_profile(account.id, fields)
        if updated is None:
            raise NotFoundError("User not found")
        log.info("profile_updated", account_id=str(account.id), fields=sorted(fields))
        return updated

    async def delete_account(self, account: AccountDoc, password: str) -> None:
        if not await self._check_password(account, password):
            raise ValidationError("Incorrect password", field="password")
        if not await self._accounts.delete(account):
            raise NotFoundError("User not found")
