"""Canonical phone keys shared by OTP issuance and verification."""

from __future__ import annotations

import re
from typing import Optional

_NOT_PHONE_CHARS = re.compile(r"[^\d+]")

# E.164 caps a number at 15 digits; `otp_requests.phone` is sized for it.
MAX_DIGITS = 15


def _canonical(digits: str) -> Optional[str]:
	if not digits or len(digits) > MAX_DIGITS:
		return None
	return f"+{digits}"


def normalize_phone(raw: str | None) -> Optional[str]:
	"""Return the canonical `+<digits>` form of `raw`, or None when it is rejected.

	Numbers in local format (leading ``0``) are rejected because the country
	they belong to is ambiguous. Numbers longer than 15 digits are rejected.
	"""
	if not raw:
		return None
	cleaned = _NOT_PHONE_CHARS.sub("", raw)
	if cleaned.startswith("+"):
		return _canonical(cleaned[1:].replace("+", ""))
	cleaned = cleaned.replace("+", "")
	if not cleaned or cleaned[0] == "0":
		return None
	return _canonical(cleaned)
