"""Phone OTP endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from warden.domain.otp import errors, schemas
from warden.domain.otp.service import OtpService

router = APIRouter(prefix="/auth/otp", tags=["otp"])


def get_otp_service(request: Request) -> OtpService:
	return request.app.state.otp_service


def _map_error(exc: errors.OtpError) -> HTTPException:
	if isinstance(exc, errors.OtpRateLimited):
		return HTTPException(
			status.HTTP_429_TOO_MANY_REQUESTS,
			detail={"detail": exc.reason, "retry_after_minutes": exc.retry_after_minutes},
			headers={"Retry-After": str(exc.retry_after_minutes * 60)},
		)
	return HTTPException(exc.status_code, detail=exc.reason)


@router.post("/request", response_model=schemas.OtpRequestOut, response_model_exclude_none=True)
async def request_otp(
	payload: schemas.OtpRequestIn,
	request: Request,
	service: OtpService = Depends(get_otp_service),
) -> schemas.OtpRequestOut:
	ip = getattr(request.state, "client_ip", None)
	try:
		result = await service.issue(payload.phone, ip_address=ip)
	except errors.OtpError as exc:
		raise _map_error(exc) from None
	return schemas.OtpRequestOut(expires_at=result.expires_at, otp=result.otp)


@router.post("/verify", response_model=schemas.OtpVerifyOut)
async def verify_otp(
	payload: schemas.OtpVerifyIn,
	service: OtpService = Depends(get_otp_service),
) -> schemas.OtpVerifyOut:
	try:
		result = await service.verify(payload.phone, payload.otp)
	except errors.OtpError as exc:
		raise _map_error(exc) from None
	return schemas.OtpVerifyOut(token=result.token, token_expires_at=result.token_expires_at)
