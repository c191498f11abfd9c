"""ASGI application: phone OTP and IP protection API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from warden import obs
from warden.api import ips, otp, ops
from warden.api.errors import install_error_handlers
from warden.domain.ip.admin import IpAdminService
from warden.domain.ip.blocked_cache import BlockedIpCache
from warden.domain.ip.buffer import IpSightingBuffer
from warden.domain.ip.models import IpSyncConfig
from warden.domain.ip.reconciler import JOB_NAME, IpReconciler
from warden.domain.ip.repo import BlockedIpRepository, ProfileRepository, UserIpRepository
from warden.domain.otp.config import OtpConfig
from warden.domain.otp.repo import OtpRequestRepository
from warden.domain.otp.service import OtpService
from warden.domain.otp.sms import build_sms_sender
from warden.infra import postgres
from warden.infra.scheduler import JobScheduler
from warden.middleware.ip_guard import IpGuardMiddleware
from warden.settings import settings, skip_paths

logger = logging.getLogger(__name__)

otp_config = OtpConfig.from_settings(settings)
ip_config = IpSyncConfig.from_settings(settings)

user_ip_repo = UserIpRepository()
blocked_ip_repo = BlockedIpRepository()
blocked_cache = BlockedIpCache(
	user_ips=user_ip_repo,
	blocked_ips=blocked_ip_repo,
	ttl_seconds=ip_config.blocked_cache_ttl_seconds,
)
ip_buffer = IpSightingBuffer(ttl_seconds=ip_config.buffer_ttl_seconds)
ip_reconciler = IpReconciler(
	config=ip_config,
	buffer=ip_buffer,
	user_ips=user_ip_repo,
	profiles=ProfileRepository(),
	blocked_cache=blocked_cache,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	scheduler: JobScheduler | None = None
	if settings.ip_sync_enabled:
		scheduler = JobScheduler()
		scheduler.start()
		scheduler.schedule_every(JOB_NAME, ip_reconciler.run_once, seconds=ip_config.interval_seconds)
		app.state.scheduler = scheduler
		logger.info("ip_sync_scheduled", extra={"interval_seconds": ip_config.interval_seconds})
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		await postgres.close_pool()


app = FastAPI(title="Warden", lifespan=lifespan)
install_error_handlers(app)

app.state.otp_service = OtpService(
	config=otp_config,
	repository=OtpRequestRepository(),
	sms_sender=build_sms_sender(settings),
)
app.state.blocked_cache = blocked_cache
app.state.ip_buffer = ip_buffer
app.state.ip_reconciler = ip_reconciler
app.state.ip_admin = IpAdminService(
	reconciler=ip_reconciler,
	blocked_cache=blocked_cache,
	user_ips=user_ip_repo,
	blocked_ips=blocked_ip_repo,
)

app.add_middleware(
	IpGuardMiddleware,
	cache=blocked_cache,
	skip_paths=skip_paths(),
	trust_forwarded_for=settings.trust_forwarded_for,
)
# Added last so request ids and metrics wrap the IP guard as well.
obs.init(app)

app.include_router(otp.router)
app.include_router(ips.router)
app.include_router(ops.router)
