from types import SimpleNamespace
from uuid import uuid4

import pytest

from tests.fakes import InMemoryBlockedIpRepository, InMemoryProfileRepository, InMemoryUserIpRepository
from warden.domain.ip.blocked_cache import BlockedIpCache
from warden.domain.ip.buffer import IpSightingBuffer
from warden.domain.ip.models import IpSyncConfig
from warden.domain.ip.reconciler import IpReconciler
from warden.infra import postgres
from warden.obs import health
from warden.settings import settings


class SchemaConnection:
    def __init__(self, tables, version):
        self.tables = set(tables)
        self.version = version

    async def fetchval(self, query, *args):
        if "to_regclass" in query:
            name = args[0] if args else "public.schema_migrations"
            return name if name.split(".", 1)[1] in self.tables else None
        if "schema_migrations" in query:
            return self.version
        raise AssertionError(query)


class SchemaPool:
    def __init__(self, conn):
        self.conn = conn

    def acquire(self):
        pool = self

        class _Ctx:
            async def __aenter__(self):
                return pool.conn

            async def __aexit__(self, exc_type, exc, tb):
                return False

        return _Ctx()


def _install_pool(monkeypatch, *, tables, version):
    pool = SchemaPool(SchemaConnection(tables, version))

    async def _get_pool():
        return pool

    monkeypatch.setattr(postgres, "get_pool", _get_pool)


ALL_TABLES = health.REQUIRED_TABLES + ("schema_migrations",)


@pytest.mark.asyncio
async def test_readiness_ok_when_schema_and_scheduler_are_up(monkeypatch):
    monkeypatch.setattr(settings, "ip_sync_enabled", True)
    _install_pool(monkeypatch, tables=ALL_TABLES, version="0001")

    status_code, payload = await health.readiness(scheduler=SimpleNamespace(running=True))

    assert status_code == 200
    assert payload["status"] == "ok"
    assert payload["checks"]["schema"]["missing_tables"] == []
    assert payload["checks"]["schema"]["version"] == "0001"
    assert payload["checks"]["ip_sync"]["scheduled"] is True


@pytest.mark.asyncio
async def test_readiness_reports_missing_warden_tables(monkeypatch):
    monkeypatch.setattr(settings, "ip_sync_enabled", False)
    _install_pool(monkeypatch, tables=("otp_requests", "schema_migrations"), version="0001")

    status_code, payload = await health.readiness()

    assert status_code == 503
    schema = payload["checks"]["schema"]
    assert schema["ok"] is False
    assert schema["missing_tables"] == ["user_ips", "blocked_ips", "user_profiles"]


@pytest.mark.asyncio
async def test_readiness_requires_minimum_migration(monkeypatch):
    monkeypatch.setattr(settings, "ip_sync_enabled", False)
    monkeypatch.setattr(settings, "health_min_migration", "0002")
    _install_pool(monkeypatch, tables=ALL_TABLES, version="0001")

    status_code, payload = await health.readiness()

    assert status_code == 503
    assert payload["checks"]["schema"]["required"] == "0002"


@pytest.mark.asyncio
async def test_readiness_degrades_when_postgres_is_unreachable(monkeypatch):
    monkeypatch.setattr(settings, "ip_sync_enabled", False)

    async def _broken():
        raise ConnectionRefusedError("postgres down")

    monkeypatch.setattr(postgres, "get_pool", _broken)

    status_code, payload = await health.readiness()

    assert status_code == 503
    assert payload["checks"]["schema"] == {"ok": False, "error": "postgres down"}
    assert payload["checks"]["redis"]["ok"] is True


@pytest.mark.asyncio
async def test_ip_sync_status_reports_last_batch_pass(monkeypatch):
    monkeypatch.setattr(settings, "ip_sync_enabled", True)
    user_ips = InMemoryUserIpRepository()
    reconciler = IpReconciler(
        config=IpSyncConfig(),
        buffer=IpSightingBuffer(),
        user_ips=user_ips,
        profiles=InMemoryProfileRepository(fail_for=set()),
        blocked_cache=BlockedIpCache(user_ips=user_ips, blocked_ips=InMemoryBlockedIpRepository()),
    )
    assert "last_run" not in health.ip_sync_status(reconciler, SimpleNamespace(running=True))

    await reconciler.buffer.record(uuid4(), "10.0.0.1")
    await reconciler.run_once()
    state = health.ip_sync_status(reconciler, SimpleNamespace(running=True))

    assert state["ok"] is True
    assert state["last_run"]["result"] == "success"
    assert state["last_run"]["chunks_committed"] == 1
    assert health.ip_sync_status(reconciler, None)["ok"] is False
