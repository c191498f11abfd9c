"""Immutable OTP configuration handed to the throttle gate and lifecycle service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from warden.settings import Settings

OTP_LENGTH_MIN = 4
OTP_LENGTH_MAX = 10


@dataclass(frozen=True, slots=True)
class OtpConfig:
	otp_expiry_minutes: int = 1
	throttle_window_minutes: int = 15
	max_requests_per_window: int = 3
	otp_length: int = 6
	token_ttl_seconds: int = 120
	test_mode: bool = False

	def __post_init__(self) -> None:
		if self.otp_expiry_minutes <= 0:
			raise ValueError("otp_expiry_minutes must be positive")
		if self.throttle_window_minutes <= 0:
			raise ValueError("throttle_window_minutes must be positive")
		if self.max_requests_per_window <= 0:
			raise ValueError("max_requests_per_window must be positive")
		if not (OTP_LENGTH_MIN <= self.otp_length <= OTP_LENGTH_MAX):
			raise ValueError(f"otp_length must be between {OTP_LENGTH_MIN} and {OTP_LENGTH_MAX}")
		if self.token_ttl_seconds <= 0:
			raise ValueError("token_ttl_seconds must be positive")

	@property
	def throttle_window(self) -> timedelta:
		return timedelta(minutes=self.throttle_window_minutes)

	@property
	def otp_ttl(self) -> timedelta:
		return timedelta(minutes=self.otp_expiry_minutes)

	@property
	def token_ttl(self) -> timedelta:
		return timedelta(seconds=self.token_ttl_seconds)

	@classmethod
	def from_settings(cls, settings: Settings) -> "OtpConfig":
		if settings.otp_test_mode and settings.is_prod():
			raise ValueError("OTP test mode must not be enabled in production")
		return cls(
			otp_expiry_minutes=settings.otp_expiry_minutes,
			throttle_window_minutes=settings.otp_throttle_window_minutes,
			max_requests_per_window=settings.otp_max_requests_per_window,
			otp_length=settings.otp_length,
			token_ttl_seconds=settings.otp_token_ttl_seconds,
			test_mode=settings.otp_test_mode,
		)
