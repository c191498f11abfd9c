"""Phone OTP lifecycle: issue, verify, redeem and release.

Verification contract: `verify` exchanges a matching code for a short-lived
token but never sets `verified_at`. The phone becomes claimed only when the
downstream consumer calls `redeem_token`. A spent code (token already issued)
cannot be verified again until a fresh code is issued.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol
from uuid import UUID

import asyncpg

from warden.domain.otp import errors
from warden.domain.otp.config import OtpConfig
from warden.domain.otp.models import IssueResult, OtpRequest, VerifyResult
from warden.domain.otp.phone import normalize_phone
from warden.domain.otp.sms import SmsSender
from warden.domain.otp.throttle import OtpThrottleGate
from warden.obs import metrics as obs_metrics
from warden.obs.logging import mask_phone

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 64
_TOKEN_ATTEMPTS = 3


class OtpRepository(Protocol):
	async def find_active_by_phone(self, phone: str) -> Optional[OtpRequest]: ...

	async def find_active_by_token(self, token: str, *, now: datetime) -> Optional[OtpRequest]: ...

	async def upsert_issue(
		self,
		*,
		phone: str,
		otp: str,
		request_count: int,
		now: datetime,
		expires_at: datetime,
		ip_address: Optional[str],
	) -> OtpRequest: ...

	async def store_token(self, request_id: UUID, *, token: str, token_expires_at: datetime) -> Optional[OtpRequest]: ...

	async def mark_verified(self, request_id: UUID, *, user_id: Optional[UUID], now: datetime) -> Optional[OtpRequest]: ...

	async def archive(self, request_id: UUID) -> bool: ...


def _now() -> datetime:
	return datetime.now(timezone.utc)


def generate_otp(length: int) -> str:
	"""Uniform draw over [10^(n-1), 10^n - 1] from a CSPRNG."""
	low = 10 ** (length - 1)
	high = 10**length - 1
	return str(low + secrets.randbelow(high - low + 1))


def generate_token(length: int = TOKEN_LENGTH) -> str:
	return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def _canonical(phone: str) -> str:
	normalized = normalize_phone(phone)
	if not normalized:
		raise errors.InvalidPhoneNumber()
	return normalized


class OtpService:
	def __init__(
		self,
		*,
		config: OtpConfig,
		repository: OtpRepository,
		sms_sender: SmsSender,
		clock: Callable[[], datetime] = _now,
	) -> None:
		self.config = config
		self.repo = repository
		self.sms = sms_sender
		self.gate = OtpThrottleGate(config)
		self._clock = clock

	async def issue(self, phone: str, *, ip_address: str | None = None) -> IssueResult:
		normalized = _canonical(phone)
		existing = await self.repo.find_active_by_phone(normalized)
		if existing and existing.is_verified:
			obs_metrics.inc_otp_request("already_registered")
			raise errors.PhoneAlreadyRegistered()

		now = self._clock()
		decision = self.gate.evaluate(
			request_count=existing.request_count if existing else None,
			last_request_at=existing.last_request_at if existing else None,
			now=now,
		)
		if not decision.allowed:
			obs_metrics.inc_otp_request("throttled")
			logger.info(
				"otp_throttled",
				extra={"phone_masked": mask_phone(normalized), "retry_after_minutes": decision.retry_after_minutes},
			)
			raise errors.OtpRateLimited(decision.retry_after_minutes)

		code = generate_otp(self.config.otp_length)
		expires_at = now + self.config.otp_ttl
		record = await self.repo.upsert_issue(
			phone=normalized,
			otp=code,
			request_count=decision.request_count,
			now=now,
			expires_at=expires_at,
			ip_address=ip_address,
		)

		if self.config.test_mode:
			obs_metrics.inc_otp_request("test_mode")
			logger.info(
				"otp_issued_test_mode",
				extra={"phone_masked": mask_phone(normalized), "request_count": record.request_count},
			)
			return IssueResult(
				phone=normalized,
				expires_at=record.expires_at,
				request_count=record.request_count,
				otp=code,
			)

		# The stored row is left in place when dispatch fails so the caller can
		# resend without resetting the throttle window.
		if not await self.sms.send_otp(normalized, code):
			obs_metrics.inc_otp_request("sms_failed")
			logger.error("otp_sms_failed", extra={"phone_masked": mask_phone(normalized)})
			raise errors.SmsDispatchFailed()

		obs_metrics.inc_otp_request("sent")
		logger.info(
			"otp_issued",
			extra={"phone_masked": mask_phone(normalized), "request_count": record.request_count},
		)
		return IssueResult(phone=normalized, expires_at=record.expires_at, request_count=record.request_count)

	async def verify(self, phone: str, code: str) -> VerifyResult:
		normalized = _canonical(phone)
		record = await self.repo.find_active_by_phone(normalized)
		if record is None:
			obs_metrics.inc_otp_verify("not_found")
			raise errors.OtpNotFound()
		if record.is_verified:
			obs_metrics.inc_otp_verify("already_registered")
			raise errors.PhoneAlreadyRegistered()
		now = self._clock()
		if record.is_expired(now):
			obs_metrics.inc_otp_verify("expired")
			raise errors.OtpExpired()
		# Compared as strings so codes keep their exact digits.
		if not secrets.compare_digest(record.otp.encode("utf-8"), (code or "").strip().encode("utf-8")):
			obs_metrics.inc_otp_verify("mismatch")
			raise errors.OtpInvalid()
		if record.code_spent:
			obs_metrics.inc_otp_verify("already_used")
			raise errors.OtpAlreadyUsed()

		token_expires_at = now + self.config.token_ttl
		updated = await self._store_token(record, token_expires_at)
		if updated is None or updated.token is None:
			obs_metrics.inc_otp_verify("already_used")
			raise errors.OtpAlreadyUsed()
		obs_metrics.inc_otp_verify("ok")
		logger.info("otp_verified", extra={"phone_masked": mask_phone(normalized)})
		return VerifyResult(token=updated.token, token_expires_at=token_expires_at)

	async def _store_token(self, record: OtpRequest, token_expires_at: datetime) -> Optional[OtpRequest]:
		assert record.id is not None
		for attempt in range(_TOKEN_ATTEMPTS):
			try:
				return await self.repo.store_token(
					record.id,
					token=generate_token(),
					token_expires_at=token_expires_at,
				)
			except asyncpg.UniqueViolationError:
				if attempt == _TOKEN_ATTEMPTS - 1:
					raise
				logger.warning("otp_token_collision", extra={"attempt": attempt + 1})
		return None

	async def redeem_token(self, token: str, *, user_id: UUID | None = None) -> str:
		"""Consume an exchange token and mark its phone as claimed.

		Returns the canonical phone so the caller can bind it to an account.
		"""
		now = self._clock()
		record = await self.repo.find_active_by_token(token, now=now) if token else None
		if record is None or not record.token_valid(now) or record.is_verified:
			raise errors.OtpTokenInvalid()
		assert record.id is not None
		updated = await self.repo.mark_verified(record.id, user_id=user_id, now=now)
		if updated is None:
			raise errors.OtpTokenInvalid()
		logger.info("otp_token_redeemed", extra={"phone_masked": mask_phone(updated.phone)})
		return updated.phone

	async def release_phone(self, phone: str) -> bool:
		"""Archive the active row for `phone` so it can be registered again."""
		normalized = _canonical(phone)
		record = await self.repo.find_active_by_phone(normalized)
		if record is None or record.id is None:
			return False
		archived = await self.repo.archive(record.id)
		if archived:
			logger.info("otp_phone_released", extra={"phone_masked": mask_phone(normalized)})
		return archived
