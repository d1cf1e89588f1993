"""Unit tests for the shared state store adapters.

The Redis adapter is exercised against a mocked client; no server is needed.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest
import redis.asyncio as redis

from provider_gateway.adapters.outbound.cache import (
    MemoryStateStore,
    RedisStateStore,
    build_state_store,
)


# ═══════════════════════════════════════════════════════════════
#  MemoryStateStore
# ═══════════════════════════════════════════════════════════════
class TestMemoryStateStore:
    @pytest.mark.asyncio
    async def test_round_trips_json_values(self, store) -> None:
        await store.set("k", {"count": 3, "items": ["a", "b"]})
        assert await store.get("k") == {"count": 3, "items": ["a", "b"]}
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_values_are_copies(self, store) -> None:
        value = {"count": 1}
        await store.set("k", value)
        value["count"] = 99
        assert await store.get("k") == {"count": 1}

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, store, clock) -> None:
        await store.set("k", 1, ttl_seconds=10)
        clock.advance(9)
        assert await store.get("k") == 1
        clock.advance(1)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_set_without_ttl_clears_previous_expiry(self, store, clock) -> None:
        await store.set("k", 1, ttl_seconds=10)
        await store.set("k", 2)
        clock.advance(100)
        assert await store.get("k") == 2

    @pytest.mark.asyncio
    async def test_delete_and_delete_prefix(self, store) -> None:
        await store.set("pgw:ai:cache:1", 1)
        await store.set("pgw:ai:cache:2", 2)
        await store.set("pgw:ai:health:openai", 3)
        await store.delete("pgw:ai:health:openai")
        assert await store.get("pgw:ai:health:openai") is None
        assert await store.delete_prefix("pgw:ai:cache:") == 2
        assert store.keys() == []

    @pytest.mark.asyncio
    async def test_lock_serialises_holders(self, store) -> None:
        order: list[str] = []

        async def holder(name: str) -> None:
            async with store.lock("k"):
                order.append(f"{name}:in")
                await asyncio.sleep(0)
                order.append(f"{name}:out")

        await asyncio.gather(holder("a"), holder("b"))
        assert order == ["a:in", "a:out", "b:in", "b:out"]

    @pytest.mark.asyncio
    async def test_health_check_and_close(self, store) -> None:
        assert await store.health_check()
        await store.close()


# ═══════════════════════════════════════════════════════════════
#  RedisStateStore
# ═══════════════════════════════════════════════════════════════
class TestRedisStateStore:
    @pytest.fixture
    def client(self) -> MagicMock:
        client = MagicMock()
        client.get = AsyncMock(return_value=None)
        client.set = AsyncMock()
        client.delete = AsyncMock(return_value=1)
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def redis_store(self, client) -> RedisStateStore:
        return RedisStateStore(client=client, lock_timeout_seconds=2.0)

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, redis_store, client) -> None:
        client.get.return_value = orjson.dumps({"status": "open"})
        assert await redis_store.get("k") == {"status": "open"}

    @pytest.mark.asyncio
    async def test_set_with_ttl(self, redis_store, client) -> None:
        await redis_store.set("k", {"a": 1}, ttl_seconds=60)
        client.set.assert_awaited_once_with("k", orjson.dumps({"a": 1}), ex=60)

    @pytest.mark.asyncio
    async def test_sub_second_ttl_rounds_up(self, redis_store, client) -> None:
        await redis_store.set("k", 1, ttl_seconds=0.2)
        assert client.set.await_args.kwargs["ex"] == 1

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, redis_store, client) -> None:
        await redis_store.set("k", 1)
        client.set.assert_awaited_once_with("k", b"1")

    @pytest.mark.asyncio
    async def test_read_errors_are_logged_not_raised(self, redis_store, client) -> None:
        client.get.side_effect = redis.RedisError("connection refused")
        assert await redis_store.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_prefix_scans(self, redis_store, client) -> None:
        async def scan_iter(match: str):
            assert match == "pgw:ai:cache:*"
            for key in (b"pgw:ai:cache:1", b"pgw:ai:cache:2"):
                yield key

        client.scan_iter = scan_iter
        assert await redis_store.delete_prefix("pgw:ai:cache:") == 2
        assert client.delete.await_count == 2

    @pytest.mark.asyncio
    async def test_lock_uses_redis_lock(self, redis_store, client) -> None:
        async with redis_store.lock("pgw:ai:health:openai"):
            pass
        client.lock.assert_called_once_with(
            "pgw:ai:health:openai:lock", timeout=2.0, blocking_timeout=2.0
        )

    @pytest.mark.asyncio
    async def test_health_check(self, redis_store, client) -> None:
        assert await redis_store.health_check()
        client.ping.side_effect = redis.ConnectionError("down")
        assert not await redis_store.health_check()

    @pytest.mark.asyncio
    async def test_close_does_not_touch_injected_pool(self, redis_store, client) -> None:
        await redis_store.close()
        client.aclose.assert_awaited_once()


# ═══════════════════════════════════════════════════════════════
#  Factory
# ═══════════════════════════════════════════════════════════════
class TestBuildStateStore:
    @pytest.mark.parametrize("url", ["", "memory://", "memory://local"])
    def test_memory_urls(self, url) -> None:
        assert isinstance(build_state_store(url), MemoryStateStore)

    def test_redis_url(self) -> None:
        store = build_state_store("redis://localhost:6379/0", max_connections=5)
        assert isinstance(store, RedisStateStore)
