"""SMS dispatch for phone OTPs.

`send_otp(phone, code)` returns True when the provider accepted the message.
No retries happen here; a False result is surfaced to the caller.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Protocol

import httpx

from warden.obs.logging import mask_phone
from warden.settings import Settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
OTP_MESSAGE_TEMPLATE = "Your verification code is {code}"


class SmsSender(Protocol):
	async def send_otp(self, phone: str, code: str) -> bool:
		...


def _hash_number(e164: str) -> str:
	return hashlib.sha256(e164.encode("utf-8")).hexdigest()[:12]


class LoggingSmsSender:
	"""Stub sender that logs the event without disclosing the number or code."""

	async def send_otp(self, phone: str, code: str) -> bool:
		logger.info(
			"sms_stub_send",
			extra={"to_masked": mask_phone(phone), "hash": _hash_number(phone), "template": "otp"},
		)
		return True


class DisabledSmsSender:
	"""Sender used in production when no provider is configured; every send fails."""

	async def send_otp(self, phone: str, code: str) -> bool:
		logger.warning("sms_provider_missing", extra={"to_masked": mask_phone(phone)})
		return False


class TwilioSmsSender:
	"""Sends messages through the Twilio Messages REST API."""

	def __init__(
		self,
		*,
		account_sid: str,
		auth_token: str,
		from_number: str,
		timeout: float = 10.0,
		http: httpx.AsyncClient | None = None,
	) -> None:
		self._account_sid = account_sid
		self._auth = (account_sid, auth_token)
		self._from_number = from_number
		self._timeout = timeout
		self._http = http

	async def send_otp(self, phone: str, code: str) -> bool:
		url = f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"
		data = {
			"To": phone,
			"From": self._from_number,
			"Body": OTP_MESSAGE_TEMPLATE.format(code=code),
		}
		try:
			if self._http is not None:
				resp = await self._http.post(url, data=data, auth=self._auth, timeout=self._timeout)
			else:
				async with httpx.AsyncClient(timeout=self._timeout) as client:
					resp = await client.post(url, data=data, auth=self._auth)
		except httpx.HTTPError as exc:
			logger.error(
				"sms_send_transport_error",
				extra={"to_masked": mask_phone(phone), "error": type(exc).__name__},
			)
			return False
		if resp.status_code >= 400:
			logger.error(
				"sms_send_rejected",
				extra={"to_masked": mask_phone(phone), "status": resp.status_code},
			)
			return False
		try:
			payload = resp.json()
		except ValueError:
			payload = {}
		if not isinstance(payload, dict):
			payload = {}
		logger.info(
			"sms_sent",
			extra={"to_masked": mask_phone(phone), "sid": payload.get("sid"), "status": payload.get("status")},
		)
		return True


def build_sms_sender(settings: Settings) -> SmsSender:
	if settings.twilio_configured():
		return TwilioSmsSender(
			account_sid=str(settings.twilio_account_sid),
			auth_token=str(settings.twilio_auth_token),
			from_number=str(settings.twilio_phone_number),
			timeout=settings.sms_timeout_seconds,
		)
	if settings.is_prod():
		logger.warning(
			"twilio_not_configured",
			extra={
				"has_account_sid": bool(settings.twilio_account_sid),
				"has_auth": bool(settings.twilio_auth_token),
				"has_from_number": bool(settings.twilio_phone_number),
			},
		)
		return DisabledSmsSender()
	return LoggingSmsSender()
