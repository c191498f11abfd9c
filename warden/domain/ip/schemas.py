"""Pydantic schemas for IP tracking and admin endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BlockIpIn(BaseModel):
	ip: Annotated[str, Field(min_length=2, max_length=64)]
	note: Optional[Annotated[str, Field(max_length=500)]] = None


class PairBlockIn(BaseModel):
	blocked: bool


class UserIpOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	user_id: UUID
	ip: str
	is_blocked: bool
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None


class BlockedIpOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	ip: str
	note: Optional[str] = None
	created_by_admin_id: Optional[UUID] = None
	created_at: Optional[datetime] = None


class UserSyncOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	user_id: UUID
	total_ips: int
	blocked_ips: int
