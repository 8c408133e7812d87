"""Tests for credential cache stores."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from weixin_gateway.cachestore import (
    MemoryCacheStore,
    RedisCacheStore,
    create_store,
)
from weixin_gateway.models import AccessToken


@pytest.mark.asyncio
async def test_memory_store_roundtrip():
    store = MemoryCacheStore()
    assert await store.get("k") is None
    token = AccessToken("T", 123.0)
    assert await store.set("k", token)
    assert await store.get("k") == token


# ---------------------------------------------------------------------------
# Redis (mocked client)
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_redis_get_decodes_json():
    client = AsyncMock()
    client.get.return_value = json.dumps({"token": "T", "expires": 99.5}).encode()
    store = RedisCacheStore(client=client)
    assert await store.get("weixin:access_token") == AccessToken("T", 99.5)
    client.get.assert_awaited_once_with("weixin:access_token")


@pytest.mark.asyncio
async def test_redis_set_encodes_json():
    client = AsyncMock()
    store = RedisCacheStore(client=client)
    assert await store.set("k", AccessToken("T", 1.0))
    key, raw = client.set.await_args.args
    assert key == "k"
    assert json.loads(raw) == {"token": "T", "expires": 1.0}


@pytest.mark.asyncio
async def test_redis_missing_key_is_miss():
    client = AsyncMock()
    client.get.return_value = None
    assert await RedisCacheStore(client=client).get("k") is None


@pytest.mark.asyncio
async def test_redis_failure_is_miss():
    client = AsyncMock()
    client.get.side_effect = ConnectionError("redis down")
    assert await RedisCacheStore(client=client).get("k") is None


@pytest.mark.asyncio
async def test_redis_garbage_is_miss():
    client = AsyncMock()
    client.get.return_value = b"not json"
    assert await RedisCacheStore(client=client).get("k") is None


@pytest.mark.asyncio
async def test_redis_set_failure_returns_false():
    client = AsyncMock()
    client.set.side_effect = ConnectionError("redis down")
    assert await RedisCacheStore(client=client).set("k", AccessToken("T", 1.0)) is False


@pytest.mark.asyncio
async def test_redis_close():
    client = AsyncMock()
    await RedisCacheStore(client=client).close()
    client.aclose.assert_awaited_once()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def test_create_store_none_without_config():
    assert create_store(None) is None
    assert create_store({}) is None


def test_create_store_memory():
    assert isinstance(create_store({"backend": "memory"}), MemoryCacheStore)


def test_create_store_redis():
    store = create_store({"backend": "redis", "addrs": ["10.0.0.1:6380"], "db": 2})
    assert isinstance(store, RedisCacheStore)


def test_create_store_unknown_backend():
    with pytest.raises(ValueError, match="memcached"):
        create_store({"backend": "memcached"})
