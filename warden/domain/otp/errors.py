"""Errors raised by the phone OTP flows."""

from __future__ import annotations

from fastapi import status


class OtpError(Exception):
	"""Base class for OTP failures; `reason` is the client-facing error code."""

	status_code: int = status.HTTP_400_BAD_REQUEST
	reason: str = "OTP_ERROR"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class InvalidPhoneNumber(OtpError):
	reason = "INVALID_PHONE_NUMBER_FORMAT"


class PhoneAlreadyRegistered(OtpError):
	status_code = status.HTTP_409_CONFLICT
	reason = "PHONE_ALREADY_REGISTERED"


class OtpRateLimited(OtpError):
	status_code = status.HTTP_429_TOO_MANY_REQUESTS
	reason = "OTP_TOO_MANY_REQUESTS"

	def __init__(self, retry_after_minutes: int) -> None:
		super().__init__()
		self.retry_after_minutes = retry_after_minutes


class OtpNotFound(OtpError):
	status_code = status.HTTP_404_NOT_FOUND
	reason = "OTP_NOT_FOUND"


class OtpExpired(OtpError):
	reason = "OTP_EXPIRED"


class OtpInvalid(OtpError):
	reason = "OTP_INVALID"


class OtpAlreadyUsed(OtpError):
	status_code = status.HTTP_409_CONFLICT
	reason = "OTP_ALREADY_USED"


class OtpTokenInvalid(OtpError):
	reason = "OTP_TOKEN_INVALID"


class SmsDispatchFailed(OtpError):
	status_code = status.HTTP_503_SERVICE_UNAVAILABLE
	reason = "SMS_DISPATCH_FAILED"
