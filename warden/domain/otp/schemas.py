"""Pydantic schemas for the phone OTP endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, Field


class OtpRequestIn(BaseModel):
	phone: Annotated[str, Field(min_length=1, max_length=32)]


class OtpRequestOut(BaseModel):
	message: str = "OTP_SENT"
	expires_at: datetime
	otp: Optional[str] = None


class OtpVerifyIn(BaseModel):
	phone: Annotated[str, Field(min_length=1, max_length=32)]
	otp: Annotated[str, Field(min_length=1, max_length=10)]


class OtpVerifyOut(BaseModel):
	token: str
	token_expires_at: datetime
