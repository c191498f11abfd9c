from uuid import uuid4

import pytest

ADMIN_ID = str(uuid4())
ADMIN_HEADERS = {"X-User-Id": ADMIN_ID, "X-User-Roles": "admin"}


def _user_headers(user_id: str) -> dict:
    return {"X-User-Id": user_id}


@pytest.mark.asyncio
async def test_me_ips_records_and_reconciles_caller_ip(api_client, ip_store):
    user_ips, _, profiles = ip_store
    user_id = str(uuid4())

    resp = await api_client.get("/me/ips", headers=_user_headers(user_id))

    assert resp.status_code == 200
    assert [item["ip"] for item in resp.json()] == ["127.0.0.1"]
    assert [str(key[0]) for key in user_ips.rows] == [user_id]
    assert list(profiles.last_ip.values()) == ["127.0.0.1"]


@pytest.mark.asyncio
async def test_me_ips_requires_authentication(api_client, ip_store):
    resp = await api_client.get("/me/ips")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_globally_blocked_ip_is_denied_except_admin_routes(api_client, ip_store):
    resp = await api_client.post("/admin/ips/blocked", json={"ip": "127.0.0.1", "note": "test"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 201
    assert resp.json()["ip"] == "127.0.0.1"

    denied = await api_client.get(
        "/me/ips",
        headers={**_user_headers(str(uuid4())), "X-Request-Id": "req-blocked"},
    )
    assert denied.status_code == 403
    assert denied.json() == {"detail": "ACCESS_DENIED", "request_id": "req-blocked"}

    listed = await api_client.get("/admin/ips/blocked", headers=ADMIN_HEADERS)
    assert listed.status_code == 200
    assert [item["ip"] for item in listed.json()] == ["127.0.0.1"]

    health = await api_client.get("/health/live")
    assert health.status_code == 200

    removed = await api_client.delete("/admin/ips/blocked/127.0.0.1", headers=ADMIN_HEADERS)
    assert removed.status_code == 204
    allowed = await api_client.get("/me/ips", headers=_user_headers(str(uuid4())))
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_pair_block_denies_only_that_user(api_client, ip_store):
    owner, other = str(uuid4()), str(uuid4())
    assert (await api_client.get("/me/ips", headers=_user_headers(owner))).status_code == 200

    resp = await api_client.put(
        f"/admin/users/{owner}/ips/127.0.0.1/block",
        json={"blocked": True},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["is_blocked"] is True

    denied = await api_client.get("/me/ips", headers=_user_headers(owner))
    assert denied.status_code == 403
    assert denied.json()["detail"] == "ACCESS_DENIED"
    assert (await api_client.get("/me/ips", headers=_user_headers(other))).status_code == 200

    listed = await api_client.get(f"/admin/users/{owner}/ips", headers=ADMIN_HEADERS)
    assert [(item["ip"], item["is_blocked"]) for item in listed.json()] == [("127.0.0.1", True)]


@pytest.mark.asyncio
async def test_pair_block_unknown_pair_is_not_found(api_client, ip_store):
    resp = await api_client.put(
        f"/admin/users/{uuid4()}/ips/10.0.0.1/block",
        json={"blocked": True},
        headers=ADMIN_HEADERS,
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "USER_IP_NOT_FOUND"


@pytest.mark.asyncio
async def test_block_invalid_ip_is_rejected(api_client, ip_store):
    resp = await api_client.post("/admin/ips/blocked", json={"ip": "not-an-ip"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "IP_INVALID"


@pytest.mark.asyncio
async def test_admin_routes_require_admin_role(api_client, ip_store):
    resp = await api_client.get("/admin/ips/blocked", headers=_user_headers(str(uuid4())))
    assert resp.status_code == 403
    assert resp.json()["detail"] == "insufficient_role"


@pytest.mark.asyncio
async def test_trigger_sync_reports_summary(api_client, ip_store):
    target = uuid4()
    from warden import main

    await main.ip_buffer.record(target, "198.51.100.2")
    await main.ip_buffer.record(target, "198.51.100.3")

    resp = await api_client.post(f"/admin/ips/sync/{target}", headers=ADMIN_HEADERS)

    assert resp.status_code == 200
    assert resp.json() == {"user_id": str(target), "total_ips": 2, "blocked_ips": 0}


@pytest.mark.asyncio
async def test_bearer_token_authenticates_admin_outside_dev(api_client, ip_store, monkeypatch):
    from warden.infra.jwt import encode_access
    from warden.settings import settings

    monkeypatch.setattr(settings, "environment", "staging")
    token = encode_access(ADMIN_ID, roles=["admin"])

    header_only = await api_client.get("/admin/ips/blocked", headers=ADMIN_HEADERS)
    assert header_only.status_code == 401

    resp = await api_client.get("/admin/ips/blocked", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json() == []

    tampered = await api_client.get("/admin/ips/blocked", headers={"Authorization": f"Bearer {token}x"})
    assert tampered.status_code == 401
