import string
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from tests.fakes import InMemoryOtpRepository, RecordingSmsSender
from warden.domain.otp import errors
from warden.domain.otp.config import OtpConfig
from warden.domain.otp.service import OtpService, generate_otp, generate_token

PHONE = "+84912345678"


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


def _service(*, sms_result: bool = True, **config):
    repo = InMemoryOtpRepository()
    sender = RecordingSmsSender(result=sms_result)
    clock = FakeClock()
    service = OtpService(config=OtpConfig(**config), repository=repo, sms_sender=sender, clock=clock)
    return service, repo, sender, clock


def _active(repo: InMemoryOtpRepository, phone: str = PHONE):
    return next(row for row in repo.rows if row.phone == phone and row.deleted_at is None)


def test_generate_otp_has_exact_length_and_no_leading_zero():
    for _ in range(200):
        code = generate_otp(6)
        assert len(code) == 6
        assert code.isdigit()
        assert code[0] != "0"


def test_generate_token_uses_alphanumeric_alphabet():
    token = generate_token()
    assert len(token) == 64
    assert set(token) <= set(string.ascii_letters + string.digits)


@pytest.mark.asyncio
async def test_issue_stores_code_and_dispatches_sms():
    service, repo, sender, clock = _service()
    result = await service.issue("+84 912 345 678", ip_address="203.0.113.7")

    assert result.phone == PHONE
    assert result.otp is None
    assert result.request_count == 1
    assert result.expires_at == clock.now + timedelta(minutes=1)
    row = _active(repo)
    assert sender.sent == [(PHONE, row.otp)]
    assert row.ip_address == "203.0.113.7"


@pytest.mark.asyncio
async def test_issue_rejects_invalid_phone():
    service, repo, sender, _ = _service()
    with pytest.raises(errors.InvalidPhoneNumber):
        await service.issue("0912345678")
    assert repo.rows == []
    assert sender.sent == []


@pytest.mark.asyncio
async def test_throttle_scenario_three_then_denied_then_reset():
    service, repo, _, clock = _service()
    for expected in (1, 2, 3):
        result = await service.issue(PHONE)
        assert result.request_count == expected
        clock.advance(minutes=1)

    with pytest.raises(errors.OtpRateLimited) as exc:
        await service.issue(PHONE)
    assert 1 <= exc.value.retry_after_minutes <= 15
    assert exc.value.reason == "OTP_TOO_MANY_REQUESTS"
    assert _active(repo).request_count == 3

    clock.advance(minutes=16)
    result = await service.issue(PHONE)
    assert result.request_count == 1


@pytest.mark.asyncio
async def test_sms_failure_surfaces_error_and_keeps_row():
    service, repo, sender, _ = _service(sms_result=False)
    with pytest.raises(errors.SmsDispatchFailed) as exc:
        await service.issue(PHONE)
    assert exc.value.status_code == 503
    assert len(sender.sent) == 1
    assert _active(repo).request_count == 1


@pytest.mark.asyncio
async def test_test_mode_echoes_code_without_sms():
    service, repo, sender, _ = _service(test_mode=True)
    result = await service.issue(PHONE)
    assert result.otp == _active(repo).otp
    assert sender.sent == []


@pytest.mark.asyncio
async def test_verify_success_issues_token_without_claiming_phone():
    service, repo, _, clock = _service()
    await service.issue(PHONE)
    code = _active(repo).otp

    result = await service.verify(PHONE, code)

    assert len(result.token) == 64
    assert result.token_expires_at == clock.now + timedelta(minutes=2)
    row = _active(repo)
    assert row.token == result.token
    assert row.verified_at is None


@pytest.mark.asyncio
async def test_verify_mismatch_does_not_mutate_row():
    service, repo, _, _ = _service()
    await service.issue(PHONE)
    before = _active(repo)
    writes = repo.writes
    wrong = "1" * 6 if before.otp != "1" * 6 else "2" * 6

    with pytest.raises(errors.OtpInvalid):
        await service.verify(PHONE, wrong)

    after = _active(repo)
    assert repo.writes == writes
    assert (after.otp, after.token, after.verified_at) == (before.otp, None, None)


@pytest.mark.asyncio
async def test_verify_compares_codes_as_strings():
    service, repo, _, _ = _service()
    await service.issue(PHONE)
    _active(repo).otp = "001234"

    with pytest.raises(errors.OtpInvalid):
        await service.verify(PHONE, "1234")
    result = await service.verify(PHONE, "001234")
    assert result.token


@pytest.mark.asyncio
async def test_second_verify_with_same_code_fails():
    service, repo, _, _ = _service()
    await service.issue(PHONE)
    code = _active(repo).otp
    first = await service.verify(PHONE, code)

    with pytest.raises(errors.OtpAlreadyUsed):
        await service.verify(PHONE, code)
    assert _active(repo).token == first.token


@pytest.mark.asyncio
async def test_reissue_rearms_verification():
    service, repo, _, clock = _service()
    await service.issue(PHONE)
    await service.verify(PHONE, _active(repo).otp)

    clock.advance(seconds=30)
    await service.issue(PHONE)
    row = _active(repo)
    assert row.token is None
    result = await service.verify(PHONE, row.otp)
    assert result.token


@pytest.mark.asyncio
async def test_verify_unknown_phone_and_expired_code():
    service, repo, _, clock = _service()
    with pytest.raises(errors.OtpNotFound):
        await service.verify(PHONE, "123456")

    await service.issue(PHONE)
    clock.advance(minutes=1, seconds=1)
    with pytest.raises(errors.OtpExpired):
        await service.verify(PHONE, _active(repo).otp)


@pytest.mark.asyncio
async def test_redeem_token_claims_phone():
    service, repo, _, _ = _service()
    await service.issue(PHONE)
    token = (await service.verify(PHONE, _active(repo).otp)).token
    user_id = uuid4()

    phone = await service.redeem_token(token, user_id=user_id)

    assert phone == PHONE
    row = _active(repo)
    assert row.verified_at is not None
    assert row.user_id == user_id
    assert row.token is None
    with pytest.raises(errors.OtpTokenInvalid):
        await service.redeem_token(token, user_id=user_id)
    with pytest.raises(errors.PhoneAlreadyRegistered):
        await service.issue(PHONE)
    with pytest.raises(errors.PhoneAlreadyRegistered):
        await service.verify(PHONE, row.otp)


@pytest.mark.asyncio
async def test_redeem_rejects_expired_or_unknown_token():
    service, repo, _, clock = _service()
    await service.issue(PHONE)
    token = (await service.verify(PHONE, _active(repo).otp)).token

    with pytest.raises(errors.OtpTokenInvalid):
        await service.redeem_token("x" * 64)
    clock.advance(minutes=2, seconds=1)
    with pytest.raises(errors.OtpTokenInvalid):
        await service.redeem_token(token)
    assert _active(repo).verified_at is None


@pytest.mark.asyncio
async def test_release_phone_archives_and_frees_number():
    service, repo, _, _ = _service()
    await service.issue(PHONE)
    token = (await service.verify(PHONE, _active(repo).otp)).token
    await service.redeem_token(token)

    assert await service.release_phone(PHONE) is True
    assert await service.release_phone(PHONE) is False

    result = await service.issue(PHONE)
    assert result.request_count == 1
    assert len(repo.rows) == 2
    assert sum(1 for row in repo.rows if row.deleted_at is None) == 1
