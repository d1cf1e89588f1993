"""Response cache — memoises successful results of read-only capabilities.

Keys are SHA-256 digests of the canonical JSON of
``{provider, capability, payload}`` with volatile fields stripped, so the
same logical request maps to the same key on every instance.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Mapping

import orjson
import structlog

from provider_gateway.ports.outbound import StateStore
from provider_gateway.shared.providers.types import DispatchResult, ResultSource

logger = structlog.get_logger(__name__)

DEFAULT_VOLATILE_FIELDS = frozenset({"request_id", "message_id", "attempt", "timestamp"})


@dataclass
class CachePolicy:
    """Which dispatches may be served from, and stored in, the cache."""

    enabled: bool = True
    ttl_seconds: float = 3600.0
    cacheable_capabilities: frozenset[str] = frozenset()
    payload_markers: frozenset[str] = frozenset()
    volatile_fields: frozenset[str] = field(default_factory=lambda: DEFAULT_VOLATILE_FIELDS)

    def is_eligible(self, capability: str, payload: Mapping[str, Any]) -> bool:
        if not self.enabled:
            return False
        if capability in self.cacheable_capabilities:
            return True
        return any(payload.get(marker) for marker in self.payload_markers)


class ResponseCache:
    """Result cache backed by the shared state store."""

    def __init__(self, store: StateStore, *, namespace: str, policy: CachePolicy) -> None:
        self._store = store
        self._namespace = namespace
        self._policy = policy

    @property
    def policy(self) -> CachePolicy:
        return self._policy

    @property
    def enabled(self) -> bool:
        return self._policy.enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._policy.enabled = value
        logger.info("response_cache_toggled", namespace=self._namespace, enabled=value)

    def set_ttl(self, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            raise ValueError("Cache TTL must be positive")
        self._policy.ttl_seconds = ttl_seconds

    @property
    def _prefix(self) -> str:
        return f"{self._namespace}:cache:"

    def is_eligible(self, capability: str, payload: Mapping[str, Any]) -> bool:
        return self._policy.is_eligible(capability, payload)

    def build_key(self, provider: str, capability: str, payload: Mapping[str, Any]) -> str:
        stable = {k: v for k, v in payload.items() if k not in self._policy.volatile_fields}
        canonical = orjson.dumps(
            {"provider": provider, "capability": capability, "payload": stable},
            option=orjson.OPT_SORT_KEYS,
            default=str,
        )
        return self._prefix + hashlib.sha256(canonical).hexdigest()

    async def get(self, key: str) -> DispatchResult | None:
        data = await self._store.get(key)
        if not data:
            return None
        result = DispatchResult.from_dict(data)
        result.meta["source"] = ResultSource.CACHE.value
        return result

    async def set(self, key: str, result: DispatchResult, ttl: float | None = None) -> bool:
        """Store ``result``; failed results are never cached.

        Best-effort: an output that cannot be encoded is logged and skipped.
        """
        if not result.success:
            return False
        try:
            await self._store.set(key, result.to_dict(), ttl_seconds=ttl or self._policy.ttl_seconds)
        except TypeError as exc:  # orjson.JSONEncodeError subclasses TypeError
            logger.warning(
                "response_cache_store_failed",
                namespace=self._namespace,
                provider=result.provider,
                capability=result.capability,
                error=str(exc),
            )
            return False
        return True

    async def clear(self) -> int:
        removed = await self._store.delete_prefix(self._prefix)
        logger.info("response_cache_cleared", namespace=self._namespace, removed=removed)
        return removed
