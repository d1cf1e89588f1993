"""Performance metrics — running aggregates per (provider, capability).

Counters only ever grow (until an admin ``reset``).  Aggregates live in the
shared state store so every instance contributes to the same numbers; an
index key lists the known pairs for enumeration.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import structlog

from provider_gateway.ports.outbound import StateStore
from provider_gateway.shared.providers.types import PerformanceMetric

logger = structlog.get_logger(__name__)


class MetricsRecorder:
    """Records one sample per executor invocation."""

    def __init__(
        self,
        store: StateStore,
        *,
        namespace: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._namespace = namespace
        self._clock = clock

    def _key(self, code: str, capability: str) -> str:
        return f"{self._namespace}:metrics:{code}:{capability}"

    @property
    def _index_key(self) -> str:
        return f"{self._namespace}:metrics:index"

    # ── Recording ────────────────────────────────────────────
    async def record(
        self, code: str, capability: str, latency_ms: float, success: bool
    ) -> PerformanceMetric:
        def apply(metric: PerformanceMetric) -> None:
            metric.total_calls += 1
            metric.total_latency_ms += max(0.0, latency_ms)
            if success:
                metric.success_calls += 1
            else:
                metric.fail_calls += 1

        return await self._update(code, capability, apply)

    async def record_rejection(self, code: str, capability: str) -> PerformanceMetric:
        """Count a call refused by the rate limiter or the circuit breaker."""

        def apply(metric: PerformanceMetric) -> None:
            metric.rejected_calls += 1

        return await self._update(code, capability, apply)

    # ── Queries ──────────────────────────────────────────────
    async def get(self, code: str, capability: str) -> PerformanceMetric:
        data = await self._store.get(self._key(code, capability))
        if data:
            return PerformanceMetric.from_dict(data)
        return PerformanceMetric(provider_id=code, capability=capability)

    async def all_metrics(self) -> list[PerformanceMetric]:
        index = await self._store.get(self._index_key) or []
        metrics: list[PerformanceMetric] = []
        for entry in sorted(index):
            code, _, capability = entry.partition(":")
            metrics.append(await self.get(code, capability))
        return metrics

    async def totals(self) -> dict[str, Any]:
        """Gateway-wide totals across every provider and capability."""
        total = success = failed = rejected = 0
        latency = 0.0
        for metric in await self.all_metrics():
            total += metric.total_calls
            success += metric.success_calls
            failed += metric.fail_calls
            rejected += metric.rejected_calls
            latency += metric.total_latency_ms
        return {
            "total_requests": total,
            "successful_requests": success,
            "failed_requests": failed,
            "rejected_requests": rejected,
            "avg_latency_ms": float(f"{(latency / total if total else 0.0):.2f}"),
            "success_rate": float(f"{(success / total if total else 0.0):.4f}"),
        }

    async def reset(self) -> None:
        """Drop every aggregate (for admin override)."""
        removed = await self._store.delete_prefix(f"{self._namespace}:metrics:")
        logger.info("performance_metrics_reset", namespace=self._namespace, removed=removed)

    # ── Internals ────────────────────────────────────────────
    async def _update(
        self,
        code: str,
        capability: str,
        apply: Callable[[PerformanceMetric], None],
    ) -> PerformanceMetric:
        key = self._key(code, capability)
        async with self._store.lock(key):
            metric = await self.get(code, capability)
            apply(metric)
            metric.last_updated = self._clock()
            await self._store.set(key, metric.to_dict())
        await self._ensure_indexed(code, capability)
        return metric

    async def _ensure_indexed(self, code: str, capability: str) -> None:
        entry = f"{code}:{capability}"
        async with self._store.lock(self._index_key):
            index = await self._store.get(self._index_key) or []
            if entry not in index:
                index.append(entry)
                await self._store.set(self._index_key, index)
