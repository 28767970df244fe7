"""
Unit tests for services/otp_service.py.

Runs against the in-memory FakeOtpRepository and a FrozenClock, so expiry
and attempt-cap behaviour is fully deterministic.
"""

import pytest

from errors import InvalidCodeError, OtpNotFoundError, TooManyAttemptsError
from schemas.models.otp import OtpPurpose

EMAIL = "jane@example.com"
VERIFY = OtpPurpose.EMAIL_VERIFICATION
RESET = OtpPurpose.PASSWORD_RESET


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


# ── issue ─────────────────────────────────────────────────────────────────────


class TestIssue:
    async def test_returns_six_digit_code(self, otp_service):
        code = await otp_service.issue(EMAIL, VERIFY)
        assert len(code) == 6 and code.isdigit()

    async def test_stores_hash_not_plaintext(self, otp_service, otp_repo):
        code = await otp_service.issue(EMAIL, VERIFY)
        record = otp_repo.get(EMAIL, VERIFY)
        assert record.code_hash != code
        assert code not in record.code_hash
        assert record.attempts == 0
        assert record.verified is False

    async def test_expiry_from_settings(self, otp_service, otp_repo, clock):
        await otp_service.issue(EMAIL, VERIFY)
        record = otp_repo.get(EMAIL, VERIFY)
        assert (record.expires_at - clock.now).total_seconds() == 600

    async def test_one_record_per_scope(self, otp_service, otp_repo):
        await otp_service.issue(EMAIL, VERIFY)
        await otp_service.issue(EMAIL, VERIFY)
        await otp_service.issue(EMAIL, RESET)
        assert len(otp_repo.records) == 2

    async def test_reissue_resets_attempts(self, otp_service, otp_repo):
        code = await otp_service.issue(EMAIL, VERIFY)
        with pytest.raises(InvalidCodeError):
            await otp_service.verify(EMAIL, VERIFY, _wrong(code))
        await otp_service.issue(EMAIL, VERIFY)
        assert otp_repo.get(EMAIL, VERIFY).attempts == 0


# ── verify ────────────────────────────────────────────────────────────────────


class TestVerify:
    async def test_correct_code(self, otp_service, otp_repo):
        code = await otp_service.issue(EMAIL, VERIFY)
        await otp_service.verify(EMAIL, VERIFY, code)
        assert otp_repo.get(EMAIL, VERIFY).verified is True

    async def test_replay_rejected(self, otp_service):
        code = await otp_service.issue(EMAIL, VERIFY)
        await otp_service.verify(EMAIL, VERIFY, code)
        with pytest.raises(OtpNotFoundError):
            await otp_service.verify(EMAIL, VERIFY, code)

    async def test_no_code_issued(self, otp_service):
        with pytest.raises(OtpNotFoundError):
            await otp_service.verify(EMAIL, VERIFY, "123456")

    async def test_scopes_are_independent(self, otp_service):
        code = await otp_service.issue(EMAIL, VERIFY)
        with pytest.raises(OtpNotFoundError):
            await otp_service.verify(EMAIL, RESET, code)

    async def test_wrong_code_increments_by_one(self, otp_service, otp_repo):
        code = await otp_service.issue(EMAIL, VERIFY)
        with pytest.raises(InvalidCodeError) as exc:
            await otp_service.verify(EMAIL, VERIFY, _wrong(code))
        assert exc.value.attempts_remaining == 2
        assert otp_repo.get(EMAIL, VERIFY).attempts == 1

    async def test_attempts_remaining_counts_down(self, otp_service):
        code = await otp_service.issue(EMAIL, VERIFY)
        remaining = []
        for _ in range(3):
            with pytest.raises(InvalidCodeError) as exc:
                await otp_service.verify(EMAIL, VERIFY, _wrong(code))
            remaining.append(exc.value.attempts_remaining)
        assert remaining == [2, 1, 0]

    async def test_cap_blocks_correct_code(self, otp_service, otp_repo):
        code = await otp_service.issue(EMAIL, VERIFY)
        for _ in range(3):
            with pytest.raises(InvalidCodeError):
                await otp_service.verify(EMAIL, VERIFY, _wrong(code))
        with pytest.raises(TooManyAttemptsError):
            await otp_service.verify(EMAIL, VERIFY, code)
        assert otp_repo.get(EMAIL, VERIFY).attempts == 3
        assert otp_repo.get(EMAIL, VERIFY).verified is False

    async def test_expired_code(self, otp_service, clock):
        code = await otp_service.issue(EMAIL, VERIFY)
        clock.advance(minutes=11)
        with pytest.raises(OtpNotFoundError):
            await otp_service.verify(EMAIL, VERIFY, code)

    async def test_valid_just_before_expiry(self, otp_service, clock):
        code = await otp_service.issue(EMAIL, VERIFY)
        clock.advance(minutes=9, seconds=59)
        await otp_service.verify(EMAIL, VERIFY, code)

    async def test_superseded_code_rejected(self, otp_service):
        first = await otp_service.issue(EMAIL, VERIFY)
        second = await otp_service.issue(EMAIL, VERIFY)
        if first != second:
            with pytest.raises(InvalidCodeError):
                await otp_service.verify(EMAIL, VERIFY, first)
        await otp_service.verify(EMAIL, VERIFY, second)


# ── concurrency ───────────────────────────────────────────────────────────────


class TestLostRaces:
    async def test_increment_lost_to_reissue(self, otp_service, otp_repo, mocker):
        code = await otp_service.issue(EMAIL, VERIFY)
        original = otp_repo.increment_attempts

        async def reissue_then_increment(*args):
            await otp_service.issue(EMAIL, VERIFY)
            return await original(*args)

        mocker.patch.object(otp_repo, "increment_attempts", side_effect=reissue_then_increment)
        with pytest.raises(OtpNotFoundError):
            await otp_service.verify(EMAIL, VERIFY, _wrong(code))

    async def test_mark_verified_lost_to_cap(self, otp_service, otp_repo, mocker):
        code = await otp_service.issue(EMAIL, VERIFY)
        original = otp_repo.mark_verified

        async def exhaust_then_mark(*args):
            otp_repo.get(EMAIL, VERIFY).attempts = 3
            return await original(*args)

        mocker.patch.object(otp_repo, "mark_verified", side_effect=exhaust_then_mark)
        with pytest.raises(TooManyAttemptsError):
            await otp_service.verify(EMAIL, VERIFY, code)

    async def test_concurrent_verify_only_one_wins(self, otp_service, otp_repo, mocker):
        code = await otp_service.issue(EMAIL, VERIFY)
        original = otp_repo.mark_verified

        async def other_request_wins(*args):
            assert await original(*args) is True
            return await original(*args)

        mocker.patch.object(otp_repo, "mark_verified", side_effect=other_request_wins)
        with pytest.raises(OtpNotFoundError):
            await otp_service.verify(EMAIL, VERIFY, code)


# ── invalidate ────────────────────────────────────────────────────────────────


class TestInvalidate:
    async def test_invalidate_all(self, otp_service, otp_repo):
        code = await otp_service.issue(EMAIL, RESET)
        await otp_service.invalidate_all(EMAIL, RESET)
        assert otp_repo.get(EMAIL, RESET) is None
        with pytest.raises(OtpNotFoundError):
            await otp_service.verify(EMAIL, RESET, code)

    async def test_invalidate_leaves_other_scope(self, otp_service, otp_repo):
        await otp_service.issue(EMAIL, VERIFY)
        await otp_service.issue(EMAIL, RESET)
        await otp_service.invalidate_all(EMAIL, RESET)
        assert otp_repo.get(EMAIL, VERIFY) is not None
