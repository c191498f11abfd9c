"""Per-phone OTP request throttle.

The window is anchored at the last permitted request: every permitted request
moves the rollover deadline to `last_request_at + window`. The gate is a pure
decision; callers persist the returned count.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from warden.domain.otp.config import OtpConfig


@dataclass(frozen=True, slots=True)
class ThrottleDecision:
	allowed: bool
	request_count: int
	retry_after_minutes: int = 0


class OtpThrottleGate:
	def __init__(self, config: OtpConfig) -> None:
		self._config = config

	def evaluate(
		self,
		*,
		request_count: Optional[int],
		last_request_at: Optional[datetime],
		now: datetime,
	) -> ThrottleDecision:
		"""Decide whether one more OTP may be sent.

		`request_count`/`last_request_at` come from the active row for the phone,
		or are None when the phone has no active row.
		"""
		if request_count is None or last_request_at is None:
			return ThrottleDecision(allowed=True, request_count=1)

		window = self._config.throttle_window
		window_start = now - window
		if last_request_at < window_start:
			return ThrottleDecision(allowed=True, request_count=1)

		if request_count >= self._config.max_requests_per_window:
			remaining = (last_request_at + window - now).total_seconds()
			minutes = max(1, math.ceil(remaining / 60))
			return ThrottleDecision(
				allowed=False,
				request_count=request_count,
				retry_after_minutes=min(minutes, self._config.throttle_window_minutes),
			)
		return ThrottleDecision(allowed=True, request_count=request_count + 1)


__all__ = ["OtpThrottleGate", "ThrottleDecision"]
