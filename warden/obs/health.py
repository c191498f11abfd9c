"""Liveness and readiness checks.

Readiness covers Redis (IP buffer and blocked-IP cache), the Warden schema
in Postgres, and the ip-sync job.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from warden.infra import postgres
from warden.infra.redis import redis_client
from warden.obs import metrics
from warden.settings import settings

LOGGER = logging.getLogger(__name__)

REQUIRED_TABLES = ("otp_requests", "user_ips", "blocked_ips", "user_profiles")


async def _timed(
	name: str,
	check: Callable[[], Awaitable[Dict[str, Any]]],
	mark: Callable[..., None],
	timeout: float,
) -> Dict[str, Any]:
	start = perf_counter()
	try:
		state = await asyncio.wait_for(check(), timeout=timeout)
	except Exception as exc:
		mark(False)
		LOGGER.warning("readiness_check_failed", extra={"check": name, "error": type(exc).__name__})
		return {"ok": False, "error": str(exc) or type(exc).__name__}
	latency = perf_counter() - start
	mark(bool(state.get("ok")), latency_seconds=latency)
	return {**state, "latency_ms": round(latency * 1000, 2)}


async def _redis_check() -> Dict[str, Any]:
	await redis_client.ping()
	return {"ok": True}


async def _schema_check() -> Dict[str, Any]:
	pool = await postgres.get_pool()
	async with pool.acquire() as conn:
		missing = [
			table
			for table in REQUIRED_TABLES
			if await conn.fetchval("SELECT to_regclass($1)", f"public.{table}") is None
		]
		version = None
		if await conn.fetchval("SELECT to_regclass('public.schema_migrations')") is not None:
			version = await conn.fetchval("SELECT max(version) FROM schema_migrations")
	required = settings.health_min_migration
	current = str(version) if version is not None else None
	return {
		"ok": not missing and current is not None and current >= required,
		"version": current,
		"required": required,
		"missing_tables": missing,
	}


def ip_sync_status(reconciler: Any = None, scheduler: Any = None) -> Dict[str, Any]:
	"""Scheduler state plus the outcome of the reconciler's last batch pass."""
	if not settings.ip_sync_enabled:
		return {"ok": True, "enabled": False}
	running = bool(scheduler is not None and scheduler.running)
	state: Dict[str, Any] = {"ok": running, "enabled": True, "scheduled": running}
	last = getattr(reconciler, "last_run", None)
	if last is not None:
		state["last_run"] = last.to_dict()
	return state


async def liveness() -> Dict[str, Any]:
	return {"status": "ok"}


async def readiness(*, reconciler: Any = None, scheduler: Optional[Any] = None) -> Tuple[int, Dict[str, Any]]:
	redis_state = await _timed("redis", _redis_check, metrics.mark_redis, timeout=0.2)
	schema_state = await _timed("postgres", _schema_check, metrics.mark_postgres, timeout=0.5)
	sync_state = ip_sync_status(reconciler, scheduler)
	ok = all(state.get("ok") for state in (redis_state, schema_state, sync_state))
	return (
		200 if ok else 503,
		{
			"status": "ok" if ok else "degraded",
			"checks": {"redis": redis_state, "schema": schema_state, "ip_sync": sync_state},
		},
	)
