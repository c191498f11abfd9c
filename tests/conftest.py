import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Settings are read at import time; provide what the test environment needs.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-warden-tests")
os.environ.setdefault("ENV", "dev")

# Ensure the package is importable when tests run from the repo root
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from warden import main  # noqa: E402
from warden.infra import postgres  # noqa: E402
from warden.settings import settings  # noqa: E402

from tests.fakes import (  # noqa: E402
    InMemoryBlockedIpRepository,
    InMemoryOtpRepository,
    InMemoryProfileRepository,
    InMemoryUserIpRepository,
    RecordingSmsSender,
)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
    from warden.infra.redis import redis_client, set_redis_client

    original = redis_client._client
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(original)
        await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
    async def _noop():
        return None

    monkeypatch.setattr(postgres, "init_pool", _noop)
    monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
    """API tests authenticate via X-User-Id/X-User-Roles, which are only accepted in dev."""
    original_env = settings.environment
    settings.environment = "dev"
    try:
        yield
    finally:
        settings.environment = original_env


@pytest.fixture
def ip_store(monkeypatch):
    """Swap the app's IP repositories for in-memory ones."""
    user_ips = InMemoryUserIpRepository()
    blocked = InMemoryBlockedIpRepository()
    profiles = InMemoryProfileRepository()
    admin = main.app.state.ip_admin
    monkeypatch.setattr(main.blocked_cache, "user_ips", user_ips)
    monkeypatch.setattr(main.blocked_cache, "blocked_ips", blocked)
    monkeypatch.setattr(main.ip_reconciler, "user_ips", user_ips)
    monkeypatch.setattr(main.ip_reconciler, "profiles", profiles)
    monkeypatch.setattr(admin, "user_ips", user_ips)
    monkeypatch.setattr(admin, "blocked_ips", blocked)
    return user_ips, blocked, profiles


@pytest.fixture
def otp_store(monkeypatch):
    """Install an OtpService backed by memory and a recording SMS sender."""
    from warden.domain.otp.config import OtpConfig
    from warden.domain.otp.service import OtpService

    repo = InMemoryOtpRepository()
    sender = RecordingSmsSender()
    service = OtpService(config=OtpConfig(), repository=repo, sms_sender=sender)
    monkeypatch.setattr(main.app.state, "otp_service", service)
    return repo, sender


@pytest_asyncio.fixture
async def api_client():
    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
