"""IP tracking endpoints for the caller and for administrators."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from warden.domain.ip import schemas
from warden.domain.ip.admin import IpAdminService, IpPolicyError
from warden.domain.ip.reconciler import IpReconciler
from warden.infra.auth import AuthenticatedUser, get_admin_user
from warden.middleware.ip_guard import guard_user_ip

router = APIRouter(tags=["ips"])


def get_ip_admin(request: Request) -> IpAdminService:
	return request.app.state.ip_admin


def get_reconciler(request: Request) -> IpReconciler:
	return request.app.state.ip_reconciler


def _map_policy_error(exc: IpPolicyError) -> HTTPException:
	return HTTPException(exc.status_code, detail=exc.reason)


def _user_uuid(user: AuthenticatedUser) -> Optional[UUID]:
	try:
		return UUID(str(user.id))
	except ValueError:
		return None


@router.get("/me/ips", response_model=List[schemas.UserIpOut])
async def my_ips(
	user: AuthenticatedUser = Depends(guard_user_ip),
	reconciler: IpReconciler = Depends(get_reconciler),
	admin: IpAdminService = Depends(get_ip_admin),
) -> List[schemas.UserIpOut]:
	user_id = _user_uuid(user)
	if user_id is None:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="invalid_user_id")
	await reconciler.refresh_after_login(user_id)
	records = await admin.list_user_ips(user_id)
	return [schemas.UserIpOut.model_validate(record) for record in records]


@router.post("/admin/ips/sync/{user_id}", response_model=schemas.UserSyncOut)
async def trigger_sync(
	user_id: UUID,
	_: AuthenticatedUser = Depends(get_admin_user),
	admin: IpAdminService = Depends(get_ip_admin),
) -> schemas.UserSyncOut:
	summary = await admin.trigger_sync(user_id)
	return schemas.UserSyncOut.model_validate(summary)


@router.get("/admin/ips/blocked", response_model=List[schemas.BlockedIpOut])
async def list_blocked(
	_: AuthenticatedUser = Depends(get_admin_user),
	admin: IpAdminService = Depends(get_ip_admin),
) -> List[schemas.BlockedIpOut]:
	records = await admin.list_blocked()
	return [schemas.BlockedIpOut.model_validate(record) for record in records]


@router.post("/admin/ips/blocked", response_model=schemas.BlockedIpOut, status_code=status.HTTP_201_CREATED)
async def block_ip(
	payload: schemas.BlockIpIn,
	actor: AuthenticatedUser = Depends(get_admin_user),
	admin: IpAdminService = Depends(get_ip_admin),
) -> schemas.BlockedIpOut:
	try:
		record = await admin.block_ip(payload.ip, note=payload.note, admin_id=_user_uuid(actor))
	except IpPolicyError as exc:
		raise _map_policy_error(exc) from None
	return schemas.BlockedIpOut.model_validate(record)


@router.delete("/admin/ips/blocked/{ip}", status_code=status.HTTP_204_NO_CONTENT)
async def unblock_ip(
	ip: str,
	actor: AuthenticatedUser = Depends(get_admin_user),
	admin: IpAdminService = Depends(get_ip_admin),
) -> Response:
	try:
		await admin.unblock_ip(ip, admin_id=_user_uuid(actor))
	except IpPolicyError as exc:
		raise _map_policy_error(exc) from None
	return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/admin/users/{user_id}/ips", response_model=List[schemas.UserIpOut])
async def list_user_ips(
	user_id: UUID,
	_: AuthenticatedUser = Depends(get_admin_user),
	admin: IpAdminService = Depends(get_ip_admin),
) -> List[schemas.UserIpOut]:
	records = await admin.list_user_ips(user_id)
	return [schemas.UserIpOut.model_validate(record) for record in records]


@router.put("/admin/users/{user_id}/ips/{ip}/block", response_model=schemas.UserIpOut)
async def set_pair_block(
	user_id: UUID,
	ip: str,
	payload: schemas.PairBlockIn,
	_: AuthenticatedUser = Depends(get_admin_user),
	admin: IpAdminService = Depends(get_ip_admin),
) -> schemas.UserIpOut:
	try:
		record = await admin.set_user_ip_blocked(user_id, ip, payload.blocked)
	except IpPolicyError as exc:
		raise _map_policy_error(exc) from None
	return schemas.UserIpOut.model_validate(record)
