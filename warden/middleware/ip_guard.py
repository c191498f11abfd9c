"""Blocked-IP enforcement.

`IpGuardMiddleware` rejects globally blocked client IPs before routing.
Per-user blocks need the authenticated identity, so they are checked by the
`guard_user_ip` dependency, which also records the sighting in the buffer.
Cache or Redis errors never deny a request.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from warden.api.request_id import get_request_id
from warden.domain.ip.addresses import client_ip
from warden.domain.ip.blocked_cache import BlockedIpCache
from warden.domain.ip.buffer import IpSightingBuffer
from warden.infra.auth import AuthenticatedUser, get_current_user
from warden.obs import metrics as obs_metrics
from warden.settings import settings

logger = logging.getLogger(__name__)

ACCESS_DENIED = "ACCESS_DENIED"
ADMIN_PREFIX = "/admin/"


class IpGuardMiddleware(BaseHTTPMiddleware):
	def __init__(
		self,
		app,
		*,
		cache: BlockedIpCache,
		skip_paths: Iterable[str] = (),
		trust_forwarded_for: bool = False,
	) -> None:
		super().__init__(app)
		self.cache = cache
		self.skip_paths = tuple(skip_paths)
		self.trust_forwarded_for = trust_forwarded_for

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		path = request.url.path
		if any(path.startswith(prefix) for prefix in self.skip_paths):
			return await call_next(request)
		ip = client_ip(request, trust_forwarded_for=self.trust_forwarded_for)
		request.state.client_ip = ip
		if ip is None or path.startswith(ADMIN_PREFIX):
			return await call_next(request)

		try:
			verdict = await self.cache.check_global(ip)
		except Exception as exc:
			obs_metrics.inc_ip_guard("error", "global")
			logger.error("ip_guard_check_failed", extra={"scope": "global", "error": type(exc).__name__})
			return await call_next(request)
		if verdict.blocked:
			obs_metrics.inc_ip_guard("blocked", "global")
			logger.warning("ip_guard_denied", extra={"ip": ip, "scope": "global", "path": path})
			return JSONResponse(
				{"detail": ACCESS_DENIED, "request_id": get_request_id(request)},
				status_code=status.HTTP_403_FORBIDDEN,
			)
		obs_metrics.inc_ip_guard("allowed", "global")
		return await call_next(request)


def _resolve_ip(request: Request) -> Optional[str]:
	if hasattr(request.state, "client_ip"):
		return request.state.client_ip
	return client_ip(request, trust_forwarded_for=settings.trust_forwarded_for)


def _as_uuid(value: str) -> Optional[UUID]:
	try:
		return UUID(str(value))
	except ValueError:
		return None


async def guard_user_ip(
	request: Request,
	user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
	"""Deny blocked (user, ip) pairs and buffer the sighting otherwise."""
	ip = _resolve_ip(request)
	user_id = _as_uuid(user.id)
	if ip is None or user_id is None:
		return user
	cache: BlockedIpCache = request.app.state.blocked_cache
	buffer: IpSightingBuffer = request.app.state.ip_buffer

	try:
		verdict = await cache.check(user_id, ip)
	except Exception as exc:
		obs_metrics.inc_ip_guard("error", "user")
		logger.error(
			"ip_guard_check_failed",
			extra={"scope": "user", "user_id": str(user_id), "error": type(exc).__name__},
		)
	else:
		if verdict.blocked:
			obs_metrics.inc_ip_guard("blocked", verdict.scope or "user")
			logger.warning(
				"ip_guard_denied",
				extra={"ip": ip, "scope": verdict.scope, "user_id": str(user_id)},
			)
			raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED)
		obs_metrics.inc_ip_guard("allowed", "user")

	try:
		await buffer.record(user_id, ip)
	except Exception as exc:
		logger.error("ip_tracking_failed", extra={"user_id": str(user_id), "error": type(exc).__name__})
	return user


__all__ = ["ACCESS_DENIED", "IpGuardMiddleware", "guard_user_ip"]
