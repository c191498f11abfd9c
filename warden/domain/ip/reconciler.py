"""Merge buffered IP sightings into `user_ips` and derived profile state.

Batch pass:
  1. collect `user_id -> {ip}` from the Redis buffer;
  2. upsert the flattened pairs in fixed-size chunks, one transaction each;
  3. for every user whose pairs all committed, recompute
     `user_profiles.last_request_ip` and refresh the blocked-IP cache entry.

Step 3 runs per user and collects failures instead of raising, so one bad
user never blocks the rest. The buffer is not cleared; entries expire on
their own TTL and a failed chunk is retried on the next pass.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set
from uuid import UUID

from warden.domain.ip.addresses import normalize_ip
from warden.domain.ip.blocked_cache import BlockedIpCache
from warden.domain.ip.buffer import IpSightingBuffer
from warden.domain.ip.models import IpSyncConfig, ReconcileReport, SyncRun, UserFailure, UserSyncSummary
from warden.domain.ip.repo import Pair, ProfileRepository, UserIpRepository
from warden.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

JOB_NAME = "ip-sync"


def chunked(pairs: List[Pair], size: int) -> List[List[Pair]]:
	return [pairs[i : i + size] for i in range(0, len(pairs), size)]


class IpReconciler:
	def __init__(
		self,
		*,
		config: IpSyncConfig,
		buffer: Optional[IpSightingBuffer] = None,
		user_ips: Optional[UserIpRepository] = None,
		profiles: Optional[ProfileRepository] = None,
		blocked_cache: Optional[BlockedIpCache] = None,
	) -> None:
		self.config = config
		self.buffer = buffer or IpSightingBuffer(ttl_seconds=config.buffer_ttl_seconds)
		self.user_ips = user_ips or UserIpRepository()
		self.profiles = profiles or ProfileRepository()
		self.blocked_cache = blocked_cache or BlockedIpCache(
			user_ips=self.user_ips,
			ttl_seconds=config.blocked_cache_ttl_seconds,
		)
		self.last_run: Optional[SyncRun] = None

	async def collect(self) -> Dict[UUID, Set[str]]:
		merged: Dict[UUID, Set[str]] = {}
		async for user_id in self.buffer.user_ids():
			ips = await self._buffered_ips(user_id)
			if ips:
				merged.setdefault(user_id, set()).update(ips)
		return merged

	async def _buffered_ips(self, user_id: UUID) -> Set[str]:
		valid: Set[str] = set()
		for raw in await self.buffer.ips_for(user_id):
			ip = normalize_ip(raw)
			if ip is None:
				logger.warning("ip_buffer_value_invalid", extra={"user_id": str(user_id)})
				continue
			valid.add(ip)
		return valid

	async def run_once(self) -> ReconcileReport:
		"""Run one batch pass. Never raises; problems end up in the report."""
		started = time.perf_counter()
		report = ReconcileReport()
		result = "success"
		try:
			await self._run(report)
		except Exception:
			result = "error"
			report.aborted = True
			logger.exception("ip_sync_failed")
		finally:
			if result == "success" and (report.aborted or report.failed_users):
				result = "partial"
			duration = time.perf_counter() - started
			obs_metrics.record_job_run(JOB_NAME, result=result, duration_seconds=duration)
			self.last_run = SyncRun(
				result=result,
				finished_at=datetime.now(timezone.utc),
				duration_seconds=duration,
				report=report,
			)
		if report.ips:
			logger.info("ip_sync_completed", extra=report.to_dict())
		return report

	async def _run(self, report: ReconcileReport) -> None:
		merged = await self.collect()
		report.users = len(merged)
		report.ips = sum(len(ips) for ips in merged.values())
		if report.ips == 0:
			return

		pairs: List[Pair] = [(user_id, ip) for user_id in sorted(merged, key=str) for ip in sorted(merged[user_id])]
		chunks = chunked(pairs, self.config.chunk_size)
		report.chunks_total = len(chunks)
		last_chunk: Dict[UUID, int] = {}
		for index, chunk in enumerate(chunks):
			for user_id, _ in chunk:
				last_chunk[user_id] = index

		for index, chunk in enumerate(chunks):
			try:
				await self.user_ips.upsert_chunk(chunk)
			except Exception as exc:
				report.aborted = True
				logger.error(
					"ip_sync_chunk_failed",
					extra={"chunk": index, "chunks_total": len(chunks), "error": type(exc).__name__},
				)
				break
			report.chunks_committed += 1
			obs_metrics.inc_ip_sync_pairs(len(chunk))

		ready = [user_id for user_id, index in last_chunk.items() if index < report.chunks_committed]
		for user_id in sorted(ready, key=str):
			failure = await self._finalize_user(user_id)
			if failure is None:
				report.synced_users.append(user_id)
			else:
				report.failed_users.append(failure)

	async def _finalize_user(self, user_id: UUID) -> Optional[UserFailure]:
		stage = "last_request_ip"
		try:
			latest = await self.user_ips.latest_ip_for_user(user_id)
			if latest:
				await self.profiles.set_last_request_ip(user_id, latest)
			stage = "blocked_cache"
			await self.blocked_cache.refresh_user(user_id)
		except Exception as exc:
			obs_metrics.inc_ip_sync_user_failure(stage)
			logger.error(
				"ip_sync_user_failed",
				extra={"user_id": str(user_id), "stage": stage, "error": type(exc).__name__},
			)
			return UserFailure(user_id=user_id, stage=stage, error=str(exc) or type(exc).__name__)
		return None

	async def sync_user(self, user_id: UUID) -> UserSyncSummary:
		"""Reconcile a single user right away; errors propagate to the caller."""
		ips = sorted(await self._buffered_ips(user_id))
		if not ips:
			blocked = await self.blocked_cache.refresh_user(user_id)
			return UserSyncSummary(user_id=user_id, total_ips=0, blocked_ips=len(blocked))

		pairs: List[Pair] = [(user_id, ip) for ip in ips]
		for chunk in chunked(pairs, self.config.chunk_size):
			await self.user_ips.upsert_chunk(chunk)
		obs_metrics.inc_ip_sync_pairs(len(pairs))
		latest = await self.user_ips.latest_ip_for_user(user_id)
		if latest:
			await self.profiles.set_last_request_ip(user_id, latest)
		blocked = await self.blocked_cache.refresh_user(user_id)
		logger.info(
			"ip_sync_user_completed",
			extra={"user_id": str(user_id), "total_ips": len(ips), "blocked_ips": len(blocked)},
		)
		return UserSyncSummary(user_id=user_id, total_ips=len(ips), blocked_ips=len(blocked))

	async def refresh_after_login(self, user_id: UUID) -> Optional[UserSyncSummary]:
		try:
			return await self.sync_user(user_id)
		except Exception:
			logger.exception("ip_sync_login_refresh_failed", extra={"user_id": str(user_id)})
			return None


__all__ = ["IpReconciler", "JOB_NAME", "chunked"]
