"""Async repository for `otp_requests` rows."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from warden.domain.otp.models import OtpRequest
from warden.infra.postgres import get_pool
from warden.infra.soft_delete import soft_delete

_TABLE = "otp_requests"


class OtpRequestRepository:
	"""Thin data-access layer around asyncpg.

	Uniqueness of the active row per phone is enforced by the partial index
	`uq_otp_requests_phone_active` (`WHERE deleted_at IS NULL`).
	"""

	async def find_active_by_phone(self, phone: str) -> Optional[OtpRequest]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"SELECT * FROM otp_requests WHERE phone = $1 AND deleted_at IS NULL",
				phone,
			)
		return OtpRequest.from_record(row) if row else None

	async def find_active_by_token(self, token: str, *, now: datetime) -> Optional[OtpRequest]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				SELECT * FROM otp_requests
				WHERE token = $1
					AND deleted_at IS NULL
					AND token_expires_at > $2
				""",
				token,
				now,
			)
		return OtpRequest.from_record(row) if row else None

	async def upsert_issue(
		self,
		*,
		phone: str,
		otp: str,
		request_count: int,
		now: datetime,
		expires_at: datetime,
		ip_address: Optional[str],
	) -> OtpRequest:
		"""Insert the active row for `phone` or rewrite it in place for a new code.

		A new code always clears `verified_at` and any token issued for the
		previous code.
		"""
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO otp_requests (
					id, phone, otp, ip_address, request_count, last_request_at, expires_at,
					verified_at, token, token_expires_at
				)
				VALUES ($1, $2, $3, $4, $5, $6, $7, NULL, NULL, NULL)
				ON CONFLICT (phone) WHERE deleted_at IS NULL
				DO UPDATE SET
					otp = EXCLUDED.otp,
					ip_address = COALESCE(EXCLUDED.ip_address, otp_requests.ip_address),
					request_count = EXCLUDED.request_count,
					last_request_at = EXCLUDED.last_request_at,
					expires_at = EXCLUDED.expires_at,
					verified_at = NULL,
					token = NULL,
					token_expires_at = NULL,
					updated_at = NOW()
				RETURNING *
				""",
				uuid4(),
				phone,
				otp,
				ip_address,
				request_count,
				now,
				expires_at,
			)
		return OtpRequest.from_record(row)

	async def store_token(self, request_id: UUID, *, token: str, token_expires_at: datetime) -> Optional[OtpRequest]:
		"""Attach an exchange token if the current code has not been spent yet.

		Returns None when another verification won the race.
		"""
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				UPDATE otp_requests
				SET token = $2, token_expires_at = $3, updated_at = NOW()
				WHERE id = $1
					AND deleted_at IS NULL
					AND verified_at IS NULL
					AND token IS NULL
				RETURNING *
				""",
				request_id,
				token,
				token_expires_at,
			)
		return OtpRequest.from_record(row) if row else None

	async def mark_verified(self, request_id: UUID, *, user_id: Optional[UUID], now: datetime) -> Optional[OtpRequest]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				UPDATE otp_requests
				SET verified_at = $3,
					user_id = COALESCE($2, user_id),
					token = NULL,
					token_expires_at = NULL,
					updated_at = NOW()
				WHERE id = $1
					AND deleted_at IS NULL
					AND verified_at IS NULL
				RETURNING *
				""",
				request_id,
				user_id,
				now,
			)
		return OtpRequest.from_record(row) if row else None

	async def archive(self, request_id: UUID) -> bool:
		pool = await get_pool()
		async with pool.acquire() as conn:
			result = await soft_delete(conn, _TABLE, "id", request_id)
		return str(result).endswith(" 1")
