"""Postgres access for `user_ips`, `blocked_ips` and `user_profiles`."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from warden.domain.ip.models import BlockedIp, UserIp
from warden.infra.postgres import get_pool

Pair = Tuple[UUID, str]


class UserIpRepository:
	async def upsert_chunk(self, pairs: Sequence[Pair]) -> int:
		"""Insert unseen pairs and touch `updated_at` on known ones, in one transaction.

		`created_at` is never rewritten and `updated_at` only moves forward,
		so replaying a chunk is harmless.
		"""
		if not pairs:
			return 0
		user_ids = [user_id for user_id, _ in pairs]
		ips = [ip for _, ip in pairs]
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				await conn.execute(
					"""
					INSERT INTO user_ips (user_id, ip, created_at, updated_at)
					SELECT pair.user_id, pair.ip, NOW(), NOW()
					FROM unnest($1::uuid[], $2::text[]) AS pair(user_id, ip)
					ON CONFLICT (user_id, ip)
					DO UPDATE SET updated_at = GREATEST(user_ips.updated_at, EXCLUDED.updated_at)
					""",
					user_ids,
					ips,
				)
		return len(pairs)

	async def latest_ip_for_user(self, user_id: UUID) -> Optional[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			return await conn.fetchval(
				"""
				SELECT ip FROM user_ips
				WHERE user_id = $1
				ORDER BY updated_at DESC, created_at DESC
				LIMIT 1
				""",
				user_id,
			)

	async def blocked_ips_for_user(self, user_id: UUID) -> List[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT ip FROM user_ips WHERE user_id = $1 AND is_blocked = TRUE ORDER BY ip",
				user_id,
			)
		return [str(row["ip"]) for row in rows]

	async def list_for_user(self, user_id: UUID) -> List[UserIp]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT id, user_id, ip, is_blocked, created_at, updated_at
				FROM user_ips
				WHERE user_id = $1
				ORDER BY updated_at DESC, created_at DESC
				""",
				user_id,
			)
		return [UserIp.from_record(row) for row in rows]

	async def set_blocked(self, user_id: UUID, ip: str, blocked: bool) -> Optional[UserIp]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				UPDATE user_ips
				SET is_blocked = $3
				WHERE user_id = $1 AND ip = $2
				RETURNING id, user_id, ip, is_blocked, created_at, updated_at
				""",
				user_id,
				ip,
				blocked,
			)
		return UserIp.from_record(row) if row else None


class BlockedIpRepository:
	async def list_all(self) -> List[BlockedIp]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"SELECT id, ip, note, created_by_admin_id, created_at, updated_at FROM blocked_ips ORDER BY created_at DESC",
			)
		return [BlockedIp.from_record(row) for row in rows]

	async def list_ips(self) -> List[str]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT ip FROM blocked_ips ORDER BY ip")
		return [str(row["ip"]) for row in rows]

	async def upsert(self, ip: str, *, note: Optional[str], admin_id: Optional[UUID]) -> BlockedIp:
		pool = await get_pool()
		async with pool.acquire() as conn:
			row = await conn.fetchrow(
				"""
				INSERT INTO blocked_ips (ip, note, created_by_admin_id)
				VALUES ($1, $2, $3)
				ON CONFLICT (ip)
				DO UPDATE SET note = EXCLUDED.note, updated_at = NOW()
				RETURNING id, ip, note, created_by_admin_id, created_at, updated_at
				""",
				ip,
				note,
				admin_id,
			)
		return BlockedIp.from_record(row)

	async def delete(self, ip: str) -> bool:
		pool = await get_pool()
		async with pool.acquire() as conn:
			result = await conn.execute("DELETE FROM blocked_ips WHERE ip = $1", ip)
		return str(result).endswith(" 1")


class ProfileRepository:
	async def set_last_request_ip(self, user_id: UUID, ip: str) -> None:
		pool = await get_pool()
		async with pool.acquire() as conn:
			await conn.execute(
				"""
				INSERT INTO user_profiles (user_id, last_request_ip, updated_at)
				VALUES ($1, $2, NOW())
				ON CONFLICT (user_id)
				DO UPDATE SET last_request_ip = EXCLUDED.last_request_ip, updated_at = NOW()
				""",
				user_id,
				ip,
			)


__all__ = ["BlockedIpRepository", "Pair", "ProfileRepository", "UserIpRepository"]
