"""Redis buffer of recently observed client IPs per user.

Each user owns one set `user:ips:{user_id}` whose TTL is refreshed on every
write. Reconciliation only reads the buffer; entries are left to expire so a
failed database write is retried on the next pass.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Iterable, List, Optional
from uuid import UUID

from warden.infra.redis import redis_client

logger = logging.getLogger(__name__)

KEY_PREFIX = "user:ips:"
DEFAULT_TTL_SECONDS = 3600


def buffer_key(user_id: UUID | str) -> str:
	return f"{KEY_PREFIX}{user_id}"


def parse_buffer_key(key: str) -> Optional[UUID]:
	if not key.startswith(KEY_PREFIX):
		return None
	suffix = key[len(KEY_PREFIX):]
	try:
		return UUID(suffix)
	except ValueError:
		return None


class IpSightingBuffer:
	def __init__(self, *, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
		self.ttl_seconds = ttl_seconds

	async def record(self, user_id: UUID | str, ip: str) -> None:
		key = buffer_key(user_id)
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.sadd(key, ip)
			pipe.expire(key, self.ttl_seconds)
			await pipe.execute()

	async def user_ids(self) -> AsyncIterator[UUID]:
		"""Yield owners of buffered sightings, skipping malformed keys."""
		seen: set[UUID] = set()
		async for key in redis_client.scan_keys(f"{KEY_PREFIX}*"):
			user_id = parse_buffer_key(key)
			if user_id is None:
				logger.warning("ip_buffer_key_invalid", extra={"key": key})
				continue
			# SCAN may return the same key more than once.
			if user_id in seen:
				continue
			seen.add(user_id)
			yield user_id

	async def ips_for(self, user_id: UUID | str) -> List[str]:
		members: Iterable = await redis_client.smembers(buffer_key(user_id)) or ()
		return sorted(m.decode("utf-8") if isinstance(m, bytes) else str(m) for m in members)


__all__ = ["IpSightingBuffer", "buffer_key", "parse_buffer_key", "KEY_PREFIX"]
