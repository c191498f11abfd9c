"""Redis cache of blocked IPs, per user and global.

Both entries are stored as JSON lists so an empty list is a cacheable
answer. Misses read Postgres and repopulate the entry.
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional, Set
from uuid import UUID

from warden.domain.ip.addresses import normalize_ip
from warden.domain.ip.models import BlockVerdict
from warden.domain.ip.repo import BlockedIpRepository, UserIpRepository
from warden.infra.redis import redis_client

logger = logging.getLogger(__name__)

GLOBAL_KEY = "blocked:ips:global"
USER_KEY_PREFIX = "blocked:ips:user:"
DEFAULT_TTL_SECONDS = 1800


def user_key(user_id: UUID | str) -> str:
	return f"{USER_KEY_PREFIX}{user_id}"


def _decode(raw: Optional[str]) -> Optional[List[str]]:
	if raw is None:
		return None
	try:
		value = json.loads(raw)
	except (TypeError, ValueError):
		return None
	if not isinstance(value, list):
		return None
	return [str(item) for item in value]


class BlockedIpCache:
	def __init__(
		self,
		*,
		user_ips: Optional[UserIpRepository] = None,
		blocked_ips: Optional[BlockedIpRepository] = None,
		ttl_seconds: int = DEFAULT_TTL_SECONDS,
	) -> None:
		self.user_ips = user_ips or UserIpRepository()
		self.blocked_ips = blocked_ips or BlockedIpRepository()
		self.ttl_seconds = ttl_seconds

	async def refresh_user(self, user_id: UUID) -> List[str]:
		ips = await self.user_ips.blocked_ips_for_user(user_id)
		await redis_client.set(user_key(user_id), json.dumps(ips), ex=self.ttl_seconds)
		return ips

	async def refresh_global(self) -> List[str]:
		ips = await self.blocked_ips.list_ips()
		await redis_client.set(GLOBAL_KEY, json.dumps(ips), ex=self.ttl_seconds)
		logger.info("blocked_ip_global_refreshed", extra={"count": len(ips)})
		return ips

	async def user_blocked(self, user_id: UUID) -> Set[str]:
		cached = _decode(await redis_client.get(user_key(user_id)))
		if cached is None:
			cached = await self.refresh_user(user_id)
		return set(cached)

	async def global_blocked(self) -> Set[str]:
		cached = _decode(await redis_client.get(GLOBAL_KEY))
		if cached is None:
			cached = await self.refresh_global()
		return set(cached)

	async def check_global(self, ip: str) -> BlockVerdict:
		candidate = normalize_ip(ip) or ip
		if candidate in await self.global_blocked():
			return BlockVerdict(blocked=True, scope="global")
		return BlockVerdict(blocked=False)

	async def check(self, user_id: UUID, ip: str) -> BlockVerdict:
		"""Blocked when `ip` is blocked globally or for this user."""
		verdict = await self.check_global(ip)
		if verdict.blocked:
			return verdict
		candidate = normalize_ip(ip) or ip
		if candidate in await self.user_blocked(user_id):
			return BlockVerdict(blocked=True, scope="user")
		return BlockVerdict(blocked=False)


__all__ = ["BlockedIpCache", "GLOBAL_KEY", "USER_KEY_PREFIX", "user_key"]
