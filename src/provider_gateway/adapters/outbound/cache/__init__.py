"""Shared state store adapters implementing StateStore.

Provider health, rate windows, cached responses and metric aggregates all
live here so every gateway instance sees the same picture.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict

import orjson
import redis.asyncio as redis
import structlog

from provider_gateway.ports.outbound import StateStore

logger = structlog.get_logger(__name__)


class MemoryStateStore(StateStore):
    """In-process store for single-instance deployments and tests."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._data: Dict[str, bytes] = {}
        self._expiry: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._clock = clock
        logger.info("state_store_initialized_memory")

    def _expired(self, key: str) -> bool:
        if key in self._expiry and self._expiry[key] <= self._clock():
            self._data.pop(key, None)
            del self._expiry[key]
            return True
        return False

    async def get(self, key: str) -> Any | None:
        if self._expired(key):
            return None
        raw = self._data.get(key)
        return None if raw is None else orjson.loads(raw)

    async def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        self._data[key] = orjson.dumps(value)
        if ttl_seconds:
            self._expiry[key] = self._clock() + ttl_seconds
        else:
            self._expiry.pop(key, None)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)
        self._expiry.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        doomed = [k for k in self._data if k.startswith(prefix)]
        for key in doomed:
            await self.delete(key)
        return len(doomed)

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        # setdefault is atomic within one event loop
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield

    def keys(self) -> list[str]:
        return [k for k in list(self._data) if not self._expired(k)]


class RedisStateStore(StateStore):
    """Async Redis store shared across processes and hosts."""

    def __init__(
        self,
        url: str = "",
        *,
        max_connections: int = 50,
        lock_timeout_seconds: float = 5.0,
        client: redis.Redis | None = None,
    ) -> None:
        self._lock_timeout = lock_timeout_seconds
        self._pool: redis.ConnectionPool | None = None
        if client is not None:
            self._client = client
            return
        self._pool = redis.ConnectionPool.from_url(url, max_connections=max_connections)
        self._client = redis.Redis(connection_pool=self._pool)
        logger.info("state_store_initialized_redis", max_connections=max_connections)

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except redis.RedisError as exc:
            logger.error("redis_get_error", key=key, error=str(exc))
            return None
        return None if raw is None else orjson.loads(raw)

    async def set(self, key: str, value: Any, *, ttl_seconds: float | None = None) -> None:
        payload = orjson.dumps(value)
        try:
            if ttl_seconds:
                await self._client.set(key, payload, ex=max(1, int(ttl_seconds)))
            else:
                await self._client.set(key, payload)
        except redis.RedisError as exc:
            logger.error("redis_set_error", key=key, error=str(exc))

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except redis.RedisError as exc:
            logger.error("redis_delete_error", key=key, error=str(exc))

    async def delete_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            async for key in self._client.scan_iter(match=f"{prefix}*"):
                removed += await self._client.delete(key)
        except redis.RedisError as exc:
            logger.error("redis_delete_prefix_error", prefix=prefix, error=str(exc))
        return removed

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        async with self._client.lock(
            f"{key}:lock",
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_timeout,
        ):
            yield

    async def close(self) -> None:
        await self._client.aclose()
        if self._pool is not None:
            await self._pool.aclose()

    async def health_check(self) -> bool:
        try:
            return bool(await self._client.ping())
        except redis.RedisError:
            return False


def build_state_store(
    url: str,
    *,
    max_connections: int = 50,
    lock_timeout_seconds: float = 5.0,
) -> StateStore:
    """Pick an adapter from a URL: empty or ``memory://`` gives the in-process store."""
    if not url or url.startswith("memory://"):
        return MemoryStateStore()
    return RedisStateStore(
        url,
        max_connections=max_connections,
        lock_timeout_seconds=lock_timeout_seconds,
    )
