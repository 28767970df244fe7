"""
Shared fixtures: in-memory repositories, a controllable clock, a recording
email provider and fully wired services built on top of them.

The fake repositories mirror the conditional-update semantics of the Mongo
repositories (attempt caps, compare-and-set rotation, scope replacement).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import pytest
from bson import ObjectId

from config import JWTSettings, OTPSettings
from errors import ConflictError
from schemas.models.account import AccountDoc, AuthProviderEntry, OAuthProvider
from schemas.models.base import parse_object_id
from schemas.models.otp import OtpPurpose, OtpRecordDoc
from services.auth_service import AuthService
from services.oauth_service import OAuthService
from services.otp_service import OtpService
from services.token_service import TokenIssuer
from shared.crypto import CredentialHasher
from shared.datetime_utils import utcnow


# ── Clock ─────────────────────────────────────────────────────────────────────


class FrozenClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ── Repositories ──────────────────────────────────────────────────────────────


class FakeOtpRepository:
    def __init__(self) -> None:
        self.records: dict[tuple[str, OtpPurpose], OtpRecordDoc] = {}

    async def ensure_indexes(self) -> None:
        return None

    def get(self, email: str, purpose: OtpPurpose) -> Optional[OtpRecordDoc]:
        return self.records.get((email, purpose))

    async def replace_for_scope(self, record: OtpRecordDoc) -> None:
        key = (record.email, record.purpose)
        existing = self.records.get(key)
        stored = record.model_copy(deep=True)
        stored.id = existing.id if existing else ObjectId()
        self.records[key] = stored

    async def find_active(self, email, purpose, now):
        record = self.records.get((email, purpose))
        if record is None or record.verified or record.expires_at <= now:
            return None
        return record.model_copy(deep=True)

    def _match(self, record_id, code_hash) -> Optional[OtpRecordDoc]:
        for record in self.records.values():
            if record.id == record_id and record.code_hash == code_hash:
                return record
        return None

    async def increment_attempts(self, record_id, code_hash, max_attempts):
        record = self._match(record_id, code_hash)
        if record is None or record.verified or record.attempts >= max_attempts:
            return None
        record.attempts += 1
        return record.attempts

    async def mark_verified(self, record_id, code_hash, max_attempts, now):
        record = self._match(record_id, code_hash)
        if (
            record is None
            or record.verified
            or record.attempts >= max_attempts
            or record.expires_at <= now
        ):
            return False
        record.verified = True
        return True

    async def delete_for_scope(self, email, purpose):
        return 1 if self.records.pop((email, purpose), None) else 0

    def delete_for_email(self, email: str) -> None:
        for key in [k for k in self.records if k[0] == email]:
            del self.records[key]


class FakeAccountRepository:
    def __init__(self, otp_repo: FakeOtpRepository) -> None:
        self.accounts: dict[ObjectId, AccountDoc] = {}
        self._otp_repo = otp_repo

    async def ensure_indexes(self) -> None:
        return None

    def _copy(self, account: Optional[AccountDoc]) -> Optional[AccountDoc]:
        return account.model_copy(deep=True) if account is not None else None

    def get(self, account_id) -> Optional[AccountDoc]:
        return self.accounts.get(parse_object_id(account_id))

    async def find_by_email(self, email):
        for account in self.accounts.values():
            if account.email == email:
                return self._copy(account)
        return None

    async def find_by_id(self, account_id):
        return self._copy(self.get(account_id))

    async def find_by_refresh_token(self, account_id, refresh_token_hash):
        account = self.get(account_id)
        if account is None or account.refresh_token_hash != refresh_token_hash:
            return None
        return self._copy(account)

    async def find_by_provider(self, provider, provider_user_id):
        for account in self.accounts.values():
            for entry in account.auth_providers:
                if entry.provider == provider and entry.provider_user_id == provider_user_id:
                    return self._copy(account)
        return None

    async def create(self, account: AccountDoc) -> AccountDoc:
        if await self.find_by_email(account.email) is not None:
            raise ConflictError("User already exists with this email", field="email")
        stored = account.model_copy(deep=True)
        stored.id = ObjectId()
        stored.created_at = stored.updated_at = utcnow()
        self.accounts[stored.id] = stored
        return self._copy(stored)

    async def mark_verified(self, account_id):
        account = self.get(account_id)
        if account is None:
            return None
        account.is_verified = True
        return self._copy(account)

    async def record_login(self, account_id, refresh_token_hash):
        account = self.get(account_id)
        if account is not None:
            account.refresh_token_hash = refresh_token_hash
            account.last_login_at = utcnow()

    async def rotate_refresh_token(self, account_id, current_hash, new_hash):
        account = self.get(account_id)
        if account is None or account.refresh_token_hash != current_hash:
            return False
        account.refresh_token_hash = new_hash
        return True

    async def clear_refresh_token(self, account_id):
        account = self.get(account_id)
        if account is not None:
            account.refresh_token_hash = None

    async def set_password(self, account_id, password_hash):
        account = self.get(account_id)
        if account is not None:
            account.password_hash = password_hash
            account.refresh_token_hash = None

    async def set_password_if_unset(self, account_id, password_hash):
        account = self.get(account_id)
        if account is None or account.password_hash is not None:
            return False
        account.password_hash = password_hash
        return True

    async def set_active(self, account_id, is_active):
        account = self.get(account_id)
        if account is None:
            return False
        account.is_active = is_active
        if not is_active:
            account.refresh_token_hash = None
        return True

    async def update_profile(self, account_id, fields):
        account = self.get(account_id)
        if account is None:
            return None
        for key, value in fields.items():
            setattr(account, key, value)
        return self._copy(account)

    async def link_provider(self, account_id, entry: AuthProviderEntry, *, avatar=None):
        account = self.get(account_id)
        if account is None:
            return None
        account.auth_providers = [
            e for e in account.auth_providers if e.provider != entry.provider
        ] + [entry]
        account.is_verified = True
        if avatar and account.avatar is None:
            account.avatar = avatar
        return self._copy(account)

    async def unlink_provider(self, account_id, provider: OAuthProvider):
        account = self.get(account_id)
        if account is None or account.get_provider(provider) is None:
            return False
        if account.password_hash is None and len(account.auth_providers) < 2:
            return False
        account.auth_providers = [
            e for e in account.auth_providers if e.provider != provider
        ]
        return True

    async def delete(self, account: AccountDoc) -> bool:
        self._otp_repo.delete_for_email(account.email)
        return self.accounts.pop(account.id, None) is not None


# ── Email ─────────────────────────────────────────────────────────────────────


class RecordingEmailProvider:
    def __init__(self) -> None:
        self.otp_emails: list[tuple[str, str, OtpPurpose]] = []
        self.welcome_emails: list[str] = []
        self.deliver = True

    async def send_otp_email(self, email, name, code, purpose):
        self.otp_emails.append((email, code, purpose))
        return self.deliver

    async def send_welcome_email(self, email, name):
        self.welcome_emails.append(email)
        return self.deliver

    def last_code(self, email: str, purpose: OtpPurpose) -> str:
        for sent_to, code, sent_purpose in reversed(self.otp_emails):
            if sent_to == email and sent_purpose == purpose:
                return code
        raise AssertionError(f"no {purpose.value} code sent to {email}")


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def hasher():
    # Minimal argon2 cost keeps the suite fast
    return CredentialHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def otp_repo():
    return FakeOtpRepository()


@pytest.fixture
def account_repo(otp_repo):
    return FakeAccountRepository(otp_repo)


@pytest.fixture
def email_provider():
    return RecordingEmailProvider()


@pytest.fixture
def jwt_settings():
    return JWTSettings(
        jwt_secret="test-access-secret-0123456789abcdef",
        jwt_refresh_secret="test-refresh-secret-0123456789abcdef",
    )


@pytest.fixture
def otp_settings():
    return OTPSettings(otp_expiry_minutes=10, max_otp_attempts=3)


@pytest.fixture
def token_issuer(jwt_settings):
    return TokenIssuer(jwt_settings)


@pytest.fixture
def otp_service(otp_repo, hasher, otp_settings, clock):
    return OtpService(otp_repo, hasher, otp_settings, clock=clock)


@pytest.fixture
def auth_service(account_repo, otp_service, token_issuer, hasher, email_provider):
    return AuthService(account_repo, otp_service, token_issuer, hasher, email_provider)


@pytest.fixture
def oauth_service(account_repo, auth_service):
    return OAuthService(account_repo, auth_service)
