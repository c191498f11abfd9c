"""Shared asyncpg pool.

Connections run in UTC and are tagged with the service name so Warden's
sessions can be told apart in `pg_stat_activity`. The reconciler's chunk
upserts are the longest statements; `command_timeout` bounds them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import asyncpg

from warden.settings import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.pool.Pool] = None


def pool_options() -> Dict[str, Any]:
	return {
		"dsn": settings.postgres_url,
		"min_size": settings.postgres_min_pool_size,
		"max_size": settings.postgres_max_pool_size,
		"command_timeout": settings.postgres_command_timeout_seconds,
		"server_settings": {"application_name": settings.service_name, "timezone": "UTC"},
	}


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		options = pool_options()
		_pool = await asyncpg.create_pool(**options)
		logger.info(
			"postgres_pool_ready",
			extra={"min_size": options["min_size"], "max_size": options["max_size"]},
		)
	return _pool


async def get_pool() -> asyncpg.pool.Pool:
	if _pool is None:
		await init_pool()
	assert _pool is not None
	return _pool


async def close_pool() -> None:
	global _pool
	if _pool is not None:
		await _pool.close()
		_pool = None
		logger.info("postgres_pool_closed")
