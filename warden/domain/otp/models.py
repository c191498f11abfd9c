"""Domain models for phone OTP requests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional
from uuid import UUID

RecordLike = Mapping[str, Any]


def _as_uuid(value: Any) -> Optional[UUID]:
	if value is None:
		return None
	if isinstance(value, UUID):
		return value
	return UUID(str(value))


@dataclass(slots=True)
class OtpRequest:
	"""One row per phone while active; archived rows are kept as history.

	`request_count` only has meaning relative to `last_request_at` and the
	throttle window. `token` is set only after the current code matched.
	"""

	id: Optional[UUID]
	phone: str
	otp: str
	request_count: int
	last_request_at: datetime
	expires_at: datetime
	ip_address: Optional[str] = None
	verified_at: Optional[datetime] = None
	token: Optional[str] = None
	token_expires_at: Optional[datetime] = None
	user_id: Optional[UUID] = None
	deleted_at: Optional[datetime] = None
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record: RecordLike) -> "OtpRequest":
		return cls(
			id=_as_uuid(record.get("id")),
			phone=str(record["phone"]),
			otp=str(record["otp"]),
			request_count=int(record.get("request_count") or 1),
			last_request_at=record["last_request_at"],
			expires_at=record["expires_at"],
			ip_address=record.get("ip_address"),
			verified_at=record.get("verified_at"),
			token=record.get("token"),
			token_expires_at=record.get("token_expires_at"),
			user_id=_as_uuid(record.get("user_id")),
			deleted_at=record.get("deleted_at"),
			created_at=record.get("created_at"),
			updated_at=record.get("updated_at"),
		)

	@property
	def is_verified(self) -> bool:
		return self.verified_at is not None

	@property
	def is_archived(self) -> bool:
		return self.deleted_at is not None

	@property
	def code_spent(self) -> bool:
		"""The current code was already exchanged for a token."""
		return self.token is not None

	def is_expired(self, now: datetime) -> bool:
		return now > self.expires_at

	def token_valid(self, now: datetime) -> bool:
		return self.token is not None and self.token_expires_at is not None and now < self.token_expires_at


@dataclass(frozen=True, slots=True)
class IssueResult:
	phone: str
	expires_at: datetime
	request_count: int
	otp: Optional[str] = None


@dataclass(frozen=True, slots=True)
class VerifyResult:
	token: str
	token_expires_at: datetime
