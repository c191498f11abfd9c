"""Admin operations on blocked IPs; every write refreshes the affected cache entry."""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status

from warden.domain.ip.addresses import normalize_ip
from warden.domain.ip.blocked_cache import BlockedIpCache
from warden.domain.ip.models import BlockedIp, UserIp, UserSyncSummary
from warden.domain.ip.reconciler import IpReconciler
from warden.domain.ip.repo import BlockedIpRepository, UserIpRepository

logger = logging.getLogger(__name__)


class IpPolicyError(Exception):
	status_code: int = status.HTTP_400_BAD_REQUEST

	def __init__(self, reason: str, *, status_code: int | None = None) -> None:
		super().__init__(reason)
		self.reason = reason
		if status_code is not None:
			self.status_code = status_code


def _require_ip(raw: str) -> str:
	ip = normalize_ip(raw)
	if ip is None:
		raise IpPolicyError("IP_INVALID")
	return ip


class IpAdminService:
	def __init__(
		self,
		*,
		reconciler: IpReconciler,
		blocked_cache: BlockedIpCache,
		user_ips: Optional[UserIpRepository] = None,
		blocked_ips: Optional[BlockedIpRepository] = None,
	) -> None:
		self.reconciler = reconciler
		self.cache = blocked_cache
		self.user_ips = user_ips or UserIpRepository()
		self.blocked_ips = blocked_ips or BlockedIpRepository()

	async def block_ip(self, raw_ip: str, *, note: Optional[str], admin_id: Optional[UUID]) -> BlockedIp:
		ip = _require_ip(raw_ip)
		record = await self.blocked_ips.upsert(ip, note=note, admin_id=admin_id)
		await self.cache.refresh_global()
		logger.info("ip_blocked_global", extra={"ip": ip, "admin_id": str(admin_id) if admin_id else None})
		return record

	async def unblock_ip(self, raw_ip: str, *, admin_id: Optional[UUID]) -> bool:
		ip = _require_ip(raw_ip)
		removed = await self.blocked_ips.delete(ip)
		await self.cache.refresh_global()
		logger.info(
			"ip_unblocked_global",
			extra={"ip": ip, "removed": removed, "admin_id": str(admin_id) if admin_id else None},
		)
		return removed

	async def set_user_ip_blocked(self, user_id: UUID, raw_ip: str, blocked: bool) -> UserIp:
		ip = _require_ip(raw_ip)
		record = await self.user_ips.set_blocked(user_id, ip, blocked)
		if record is None:
			raise IpPolicyError("USER_IP_NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)
		await self.cache.refresh_user(user_id)
		logger.info("ip_pair_block_set", extra={"user_id": str(user_id), "ip": ip, "blocked": blocked})
		return record

	async def list_user_ips(self, user_id: UUID) -> List[UserIp]:
		return await self.user_ips.list_for_user(user_id)

	async def list_blocked(self) -> List[BlockedIp]:
		return await self.blocked_ips.list_all()

	async def trigger_sync(self, user_id: UUID) -> UserSyncSummary:
		return await self.reconciler.sync_user(user_id)


__all__ = ["IpAdminService", "IpPolicyError"]
