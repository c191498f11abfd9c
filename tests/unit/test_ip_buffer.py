from uuid import uuid4

import pytest

from warden.domain.ip.buffer import IpSightingBuffer, buffer_key, parse_buffer_key


def test_buffer_key_round_trips_user_id():
    user_id = uuid4()
    assert parse_buffer_key(buffer_key(user_id)) == user_id
    assert parse_buffer_key("user:ips:not-a-uuid") is None
    assert parse_buffer_key("other:key") is None


@pytest.mark.asyncio
async def test_record_adds_to_set_with_ttl(fake_redis):
    buffer = IpSightingBuffer(ttl_seconds=3600)
    user_id = uuid4()

    await buffer.record(user_id, "10.0.0.1")
    await buffer.record(user_id, "10.0.0.1")
    await buffer.record(user_id, "10.0.0.2")

    assert await buffer.ips_for(user_id) == ["10.0.0.1", "10.0.0.2"]
    ttl = await fake_redis.ttl(buffer_key(user_id))
    assert 0 < ttl <= 3600


@pytest.mark.asyncio
async def test_user_ids_skips_malformed_keys(fake_redis):
    buffer = IpSightingBuffer()
    first, second = uuid4(), uuid4()
    await buffer.record(first, "10.0.0.1")
    await buffer.record(second, "10.0.0.2")
    await fake_redis.sadd("user:ips:garbage", "10.0.0.3")

    found = [user_id async for user_id in buffer.user_ids()]

    assert sorted(found, key=str) == sorted([first, second], key=str)


@pytest.mark.asyncio
async def test_ips_for_unknown_user_is_empty():
    assert await IpSightingBuffer().ips_for(uuid4()) == []
