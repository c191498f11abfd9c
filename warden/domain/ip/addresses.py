"""Client IP extraction and normalization."""

from __future__ import annotations

import ipaddress
import re
from typing import Optional

from starlette.requests import HTTPConnection

_MAPPED_V4 = re.compile(r"^\[?::ffff:(\d{1,3}(?:\.\d{1,3}){3})\]?$", re.IGNORECASE)


def normalize_ip(raw: Optional[str]) -> Optional[str]:
	"""Return a canonical textual IP or None when `raw` is not an address.

	IPv6 loopback collapses to `127.0.0.1` and IPv4-mapped IPv6 addresses
	(optionally bracketed) collapse to their IPv4 form, so the same client is
	never stored under two spellings.
	"""
	if not raw:
		return None
	value = raw.strip()
	if not value or value.lower() == "unknown":
		return None
	if value in {"::1", "[::1]"}:
		return "127.0.0.1"
	match = _MAPPED_V4.match(value)
	if match:
		value = match.group(1)
	elif value.startswith("[") and value.endswith("]"):
		value = value[1:-1]
	try:
		return str(ipaddress.ip_address(value))
	except ValueError:
		return None


def is_valid_ip(raw: Optional[str]) -> bool:
	return normalize_ip(raw) is not None


def client_ip(conn: HTTPConnection, *, trust_forwarded_for: bool = False) -> Optional[str]:
	if trust_forwarded_for:
		forwarded = conn.headers.get("x-forwarded-for")
		if forwarded:
			first = forwarded.split(",")[0]
			normalized = normalize_ip(first)
			if normalized:
				return normalized
	client = conn.client
	return normalize_ip(client.host) if client else None


__all__ = ["client_ip", "is_valid_ip", "normalize_ip"]
