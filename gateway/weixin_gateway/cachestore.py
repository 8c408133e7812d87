"""Pluggable persistence for shared credentials.

A store lets several broadcaster instances (usually several processes)
share one access token.  Stores never raise: a failed ``get`` is a miss
and a failed ``set`` returns ``False``.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from .models import AccessToken

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """Key/value store for :class:`AccessToken` values."""

    @abstractmethod
    async def get(self, key: str) -> AccessToken | None: ...

    @abstractmethod
    async def set(self, key: str, token: AccessToken) -> bool: ...

    async def close(self) -> None:
        """Release any connection held by the store."""


class MemoryCacheStore(CacheStore):
    """Process-local store backed by a dict."""

    def __init__(self) -> None:
        self._items: dict[str, AccessToken] = {}

    async def get(self, key: str) -> AccessToken | None:
        return self._items.get(key)

    async def set(self, key: str, token: AccessToken) -> bool:
        self._items[key] = token
        return True


class RedisCacheStore(CacheStore):
    """Redis-backed store (single node or cluster) using ``redis.asyncio``.

    Config keys:
        addrs: List of ``host:port`` strings (first one is used unless ``cluster``)
        password: Optional password
        db: Database number for single-node mode (default ``0``)
        cluster: Connect to a Redis Cluster (default ``False``)
        timeout: Socket timeout in seconds (default ``5``)
    """

    def __init__(self, config: dict[str, Any] | None = None, client: Any = None) -> None:
        config = config or {}
        self._timeout: float = float(config.get("timeout", 5.0))
        self._client = client if client is not None else self._connect(config)

    def _connect(self, config: dict[str, Any]) -> Any:
        from redis.asyncio import Redis
        from redis.asyncio.cluster import ClusterNode, RedisCluster

        addrs: list[str] = list(config.get("addrs") or ["127.0.0.1:6379"])
        password: str | None = config.get("password") or None

        if config.get("cluster", False):
            nodes = []
            for addr in addrs:
                host, _, port = addr.rpartition(":")
                nodes.append(ClusterNode(host, int(port)))
            return RedisCluster(
                startup_nodes=nodes,
                password=password,
                socket_timeout=self._timeout,
                socket_connect_timeout=self._timeout,
            )

        host, _, port = addrs[0].rpartition(":")
        return Redis(
            host=host or "127.0.0.1",
            port=int(port or 6379),
            db=int(config.get("db", 0)),
            password=password,
            socket_timeout=self._timeout,
            socket_connect_timeout=self._timeout,
        )

    async def get(self, key: str) -> AccessToken | None:
        try:
            raw = await self._client.get(key)
        except Exception:
            logger.warning("Redis get failed for '%s', treating as miss", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return AccessToken.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError):
            logger.warning("Undecodable credential in Redis under '%s', treating as miss", key)
            return None

    async def set(self, key: str, token: AccessToken) -> bool:
        try:
            await self._client.set(key, json.dumps(token.to_dict()))
        except Exception:
            logger.warning("Redis set failed for '%s'", key, exc_info=True)
            return False
        return True

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except Exception:
            logger.debug("Error closing Redis client", exc_info=True)


def create_store(config: dict[str, Any] | None) -> CacheStore | None:
    """Build a store from a ``cache:`` config section (``None`` when absent)."""
    if not config:
        return None
    backend = config.get("backend", "memory")
    if backend == "memory":
        return MemoryCacheStore()
    if backend == "redis":
        return RedisCacheStore(config)
    raise ValueError(f"Unknown cache backend: {backend!r}")
