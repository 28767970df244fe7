"""
One-time code issuance and verification policy.

Codes are scoped by (email, purpose). Issuing replaces the scope's record
in one atomic write, so only the newest code can ever verify. Attempts are
counted per issued code, and the cap is checked before the code is compared.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, NoReturn, Optional

from config import OTPSettings
from errors import InvalidCodeError, OtpNotFoundError, TooManyAttemptsError
from repositories.otp_repository import OtpRepository
from schemas.models.otp import OtpPurpose, OtpRecordDoc
from shared.crypto import CredentialHasher
from shared.datetime_utils import utcnow
from shared.generators import generate_otp_code
from shared.logging import get_logger

log = get_logger(__name__)


class OtpService:
    def __init__(
        self,
        otp_repo: OtpRepository,
        hasher: CredentialHasher,
        settings: OTPSettings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repo = otp_repo
        self._hasher = hasher
        self._settings = settings
        self._clock = clock or utcnow

    @property
    def max_attempts(self) -> int:
        return self._settings.max_otp_attempts

    async def issue(self, email: str, purpose: OtpPurpose) -> str:
        """Create a fresh code for the scope and return it in plaintext.

        Any earlier code for the same scope stops verifying immediately.
        """
        code = generate_otp_code()
        now = self._clock()
        record = OtpRecordDoc(
            email=email,
            purpose=purpose,
            code_hash=await self._hasher.hash_async(code),
            expires_at=now + timedelta(minutes=self._settings.otp_expiry_minutes),
            verified=False,
            attempts=0,
            created_at=now,
        )
        await self._repo.replace_for_scope(record)
        log.info("otp_issued", purpose=purpose.value)
        return code

    async def verify(self, email: str, purpose: OtpPurpose, candidate: str) -> None:
        """Check *candidate* against the scope's current code.

        Returns normally when the code matched and the record is now marked
        verified. Cleanup is left to the caller.

        Raises:
            OtpNotFoundError: no unexpired, unverified code exists.
            TooManyAttemptsError: the attempt budget is spent.
            InvalidCodeError: wrong code; carries the attempts remaining.
        """
        now = self._clock()
        record = await self._repo.find_active(email, purpose, now)
        if record is None:
            log.warning("otp_verification_failed", purpose=purpose.value, reason="not_found")
            raise OtpNotFoundError()

        if record.attempts >= self.max_attempts:
            log.warning("otp_verification_failed", purpose=purpose.value, reason="max_attempts")
            raise TooManyAttemptsError()

        if not await self._hasher.verify_async(candidate, record.code_hash):
            attempts = await self._repo.increment_attempts(
                record.id, record.code_hash, self.max_attempts
            )
            if attempts is None:
                await self._raise_for_lost_record(record, now)
            remaining = max(self.max_attempts - attempts, 0)
            log.warning(
                "otp_verification_failed",
                purpose=purpose.value,
                reason="mismatch",
                attempts_remaining=remaining,
            )
            raise InvalidCodeError(remaining)

        if not await self._repo.mark_verified(
            record.id, record.code_hash, self.max_attempts, now
        ):
            await self._raise_for_lost_record(record, now)

        log.info("otp_verified", purpose=purpose.value)

    async def _raise_for_lost_record(self, record: OtpRecordDoc, now: datetime) -> NoReturn:
        # A concurrent request changed the record between our read and write
        current = await self._repo.find_active(record.email, record.purpose, now)
        if current is None or current.code_hash != record.code_hash:
            raise OtpNotFoundError()
        raise TooManyAttemptsError()

    async def invalidate_all(self, email: str, purpose: OtpPurpose) -> None:
        deleted = await self._repo.delete_for_scope(email, purpose)
        log.info("otp_invalidated", purpose=purpose.value, deleted=deleted)
