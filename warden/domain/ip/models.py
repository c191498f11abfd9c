"""Domain models for IP sightings, blocks and reconciliation reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from warden.settings import Settings

RecordLike = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class IpSyncConfig:
	chunk_size: int = 1000
	interval_seconds: int = 300
	buffer_ttl_seconds: int = 3600
	blocked_cache_ttl_seconds: int = 1800

	def __post_init__(self) -> None:
		if self.chunk_size <= 0:
			raise ValueError("chunk_size must be positive")
		if self.interval_seconds <= 0:
			raise ValueError("interval_seconds must be positive")
		if self.buffer_ttl_seconds <= 0 or self.blocked_cache_ttl_seconds <= 0:
			raise ValueError("ttl values must be positive")

	@classmethod
	def from_settings(cls, settings: Settings) -> "IpSyncConfig":
		return cls(
			chunk_size=settings.ip_sync_chunk_size,
			interval_seconds=settings.ip_sync_interval_seconds,
			buffer_ttl_seconds=settings.ip_buffer_ttl_seconds,
			blocked_cache_ttl_seconds=settings.blocked_ip_cache_ttl_seconds,
		)


@dataclass(slots=True)
class UserIp:
	"""A (user, ip) pair ever seen. `created_at` is the first sighting."""

	user_id: UUID
	ip: str
	is_blocked: bool = False
	id: Optional[UUID] = None
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record: RecordLike) -> "UserIp":
		return cls(
			id=record.get("id"),
			user_id=record["user_id"],
			ip=str(record["ip"]),
			is_blocked=bool(record.get("is_blocked", False)),
			created_at=record.get("created_at"),
			updated_at=record.get("updated_at"),
		)


@dataclass(slots=True)
class BlockedIp:
	ip: str
	note: Optional[str] = None
	created_by_admin_id: Optional[UUID] = None
	id: Optional[UUID] = None
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record: RecordLike) -> "BlockedIp":
		return cls(
			id=record.get("id"),
			ip=str(record["ip"]),
			note=record.get("note"),
			created_by_admin_id=record.get("created_by_admin_id"),
			created_at=record.get("created_at"),
			updated_at=record.get("updated_at"),
		)


@dataclass(frozen=True, slots=True)
class BlockVerdict:
	blocked: bool
	scope: Optional[str] = None  # "global" or "user" when blocked


@dataclass(slots=True)
class UserFailure:
	user_id: UUID
	stage: str
	error: str


@dataclass(slots=True)
class ReconcileReport:
	"""Outcome of one batch reconciliation pass."""

	users: int = 0
	ips: int = 0
	chunks_total: int = 0
	chunks_committed: int = 0
	aborted: bool = False
	synced_users: List[UUID] = field(default_factory=list)
	failed_users: List[UserFailure] = field(default_factory=list)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"users": self.users,
			"ips": self.ips,
			"chunks_total": self.chunks_total,
			"chunks_committed": self.chunks_committed,
			"aborted": self.aborted,
			"synced_users": len(self.synced_users),
			"failed_users": [
				{"user_id": str(item.user_id), "stage": item.stage, "error": item.error}
				for item in self.failed_users
			],
		}


@dataclass(frozen=True, slots=True)
class UserSyncSummary:
	user_id: UUID
	total_ips: int
	blocked_ips: int

@dataclass(frozen=True, slots=True)
class SyncRun:
	"""Last batch pass as reported by the readiness check."""

	result: str
	finished_at: datetime
	duration_seconds: float
	report: ReconcileReport

	def to_dict(self) -> Dict[str, Any]:
		return {
			"result": self.result,
			"finished_at": self.finished_at.isoformat(),
			"duration_ms": round(self.duration_seconds * 1000, 2),
			"chunks_committed": self.report.chunks_committed,
			"chunks_total": self.report.chunks_total,
			"failed_users": len(self.report.failed_users),
		}
