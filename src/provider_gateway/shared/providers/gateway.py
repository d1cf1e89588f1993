"""Provider gateway: one dispatch call in front of many interchangeable vendors.

Composes ProviderSelector, RateLimiter, CircuitBreaker, RetryExecutor,
ResponseCache and MetricsRecorder into a single dispatch operation.
Callers name a capability and hand in a payload; the gateway handles
selection, gating, retries, backoff, fallback, caching and recording.

One ``Gateway`` serves one domain (AI, messaging or payment); the domain
differences live entirely in its ``GatewaySettings``.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable, Mapping

import structlog

from provider_gateway.config import GatewaySettings
from provider_gateway.domain.enums import GatewayDomain
from provider_gateway.domain.exceptions import (
    CircuitOpenError,
    GatewayDispatchError,
    GatewayError,
    ProviderError,
    RateLimitExceededError,
    UnknownProviderError,
)
from provider_gateway.ports.outbound import (
    EventSink,
    ProviderExecutor,
    ProviderRegistry,
    StateStore,
)
from provider_gateway.shared.providers.cache import CachePolicy, ResponseCache
from provider_gateway.shared.providers.circuit_breaker import CircuitBreaker
from provider_gateway.shared.providers.metrics import MetricsRecorder
from provider_gateway.shared.providers.rate_limiter import RateLimiter
from provider_gateway.shared.providers.retry import RetryExecutor
from provider_gateway.shared.providers.selector import ProviderSelector
from provider_gateway.shared.providers.types import (
    CircuitState,
    DispatchEvent,
    DispatchResult,
    ProviderMetadata,
    ResultSource,
)

logger = structlog.get_logger(__name__)


class Gateway:
    """Autonomous resilience layer in front of one domain's providers.

    Usage::

        gateway = Gateway(AiGatewaySettings(), registry=registry, store=store)

        result = await gateway.dispatch("chat", {"messages": [...]})
        result.provider, result.output, result.fallback_from
    """

    def __init__(
        self,
        settings: GatewaySettings,
        *,
        registry: ProviderRegistry,
        store: StateStore,
        sink: EventSink | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._domain = GatewayDomain(settings.domain)
        self._registry = registry
        self._store = store
        self._sink = sink
        self._clock = clock
        namespace = settings.key_namespace

        self._breaker = CircuitBreaker(
            store,
            namespace=namespace,
            failure_threshold=settings.circuit_breaker_threshold,
            timeout_seconds=settings.circuit_breaker_timeout_seconds,
            state_ttl_seconds=settings.health_ttl_seconds,
            clock=clock,
        )
        self._limiter = RateLimiter(
            store,
            namespace=namespace,
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.rate_limit_max_requests,
            clock=clock,
        )
        self._recorder = MetricsRecorder(store, namespace=namespace, clock=clock)
        self._cache = ResponseCache(
            store,
            namespace=namespace,
            policy=CachePolicy(
                enabled=settings.cache_enabled,
                ttl_seconds=settings.cache_ttl_seconds,
                cacheable_capabilities=frozenset(settings.cacheable_capabilities),
                payload_markers=frozenset(settings.cache_payload_markers),
                volatile_fields=frozenset(settings.volatile_fields),
            ),
        )
        self._selector = ProviderSelector(
            self._breaker,
            default_provider=settings.default_provider,
            fallback_order=settings.fallback_order,
        )
        self._retry = RetryExecutor(
            self._breaker,
            self._recorder,
            self._executor_for,
            max_retries=settings.max_retries,
            backoff_multiplier=settings.backoff_multiplier,
            backoff_formula=settings.backoff_formula,
            call_timeout=settings.call_timeout_seconds,
            sleep=sleep,
        )

        self._providers: dict[str, ProviderMetadata] = {}
        self._executors: dict[str, ProviderExecutor] = {}
        self.reload_providers()

    # ── Components ───────────────────────────────────────────
    @property
    def domain(self) -> GatewayDomain:
        return self._domain

    @property
    def settings(self) -> GatewaySettings:
        return self._settings

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def recorder(self) -> MetricsRecorder:
        return self._recorder

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def selector(self) -> ProviderSelector:
        return self._selector

    @property
    def retry(self) -> RetryExecutor:
        return self._retry

    # ── Main entry-point ─────────────────────────────────────
    async def dispatch(
        self,
        capability: str,
        payload: Mapping[str, Any] | None = None,
        provider_hint: str | None = None,
    ) -> DispatchResult:
        """Run ``capability`` on the best available provider.

        Args:
            capability:    What to do ("chat", "email", "authorize", ...).
            payload:       Opaque, JSON-compatible request body.
            provider_hint: Use this provider directly, skipping selection.
                           Rate and circuit checks still apply.

        Returns:
            The result of the first provider that succeeds (or a cached one).

        Raises:
            NoHealthyProviderError: if selection finds no healthy provider.
            GatewayDispatchError:   if every candidate failed.
        """
        body = dict(payload or {})
        request_id = self.new_request_id()

        with structlog.contextvars.bound_contextvars(
            request_id=request_id,
            gateway=self._domain.value,
            capability=capability,
        ):
            if provider_hint:
                if provider_hint not in self._providers:
                    raise GatewayDispatchError(
                        capability,
                        UnknownProviderError(provider_hint),
                        attempted=[provider_hint],
                    )
                current: str | None = provider_hint
                fallback_from: str | None = None
            else:
                selection = await self._selector.resolve(capability)
                current, fallback_from = selection.provider, selection.bypassed

            attempted: list[str] = []
            last_error: GatewayError | None = None

            while current is not None:
                attempted.append(current)
                try:
                    result = await self._attempt(current, capability, body, request_id)
                except GatewayError as exc:
                    last_error = exc
                    await self._emit_failure(request_id, current, capability, exc, fallback_from)
                    nxt = self._next_candidate(capability, current, attempted)
                    if nxt is not None:
                        logger.info(
                            "provider_fallback",
                            failed_provider=current,
                            next_provider=nxt,
                            error=exc.message,
                        )
                    fallback_from = current
                    current = nxt
                    continue

                result.fallback_from = fallback_from
                await self._emit_success(result)
                if len(attempted) > 1:
                    logger.info(
                        "provider_failover_success",
                        provider=result.provider,
                        attempts=len(attempted),
                        failed_providers=attempted[:-1],
                    )
                return result

            logger.error(
                "dispatch_failed",
                attempted=attempted,
                error=str(last_error) if last_error else None,
            )
            raise GatewayDispatchError(capability, last_error, attempted=attempted)

    def new_request_id(self) -> str:
        return f"{self._domain.request_prefix}_{uuid.uuid4().hex}"

    # ── Provider-level attempt (cache → gates → retry loop) ──
    async def _attempt(
        self,
        code: str,
        capability: str,
        payload: dict[str, Any],
        request_id: str,
    ) -> DispatchResult:
        cache_key: str | None = None
        if self._cache.is_eligible(capability, payload):
            cache_key = self._cache.build_key(code, capability, payload)
            cached = await self._cache.get(cache_key)
            if cached is not None:
                logger.debug("response_cache_hit", provider=code)
                cached.request_id = request_id
                return cached

        # Executor must resolve before the gates touch any state
        self._executor_for(code)

        try:
            await self._limiter.check_and_increment(code)
            await self._breaker.before_call(code)
        except (RateLimitExceededError, CircuitOpenError):
            await self._recorder.record_rejection(code, capability)
            raise

        result = await self._retry.execute_with_retry(
            code, capability, payload, request_id=request_id
        )
        if cache_key is not None:
            await self._cache.set(cache_key, result)
        return result

    def _next_candidate(self, capability: str, failed: str, attempted: list[str]) -> str | None:
        nxt = self._selector.next(capability, failed)
        while nxt is not None and (nxt not in self._providers or nxt in attempted):
            nxt = self._selector.next(capability, nxt)
        return nxt

    def _executor_for(self, code: str) -> ProviderExecutor:
        executor = self._executors.get(code)
        if executor is None:
            try:
                executor = self._registry.get(code)
            except KeyError as exc:
                raise UnknownProviderError(code) from exc
            self._executors[code] = executor
        return executor

    # ── Events ───────────────────────────────────────────────
    async def _emit_success(self, result: DispatchResult) -> None:
        await self._emit(
            DispatchEvent(
                request_id=result.request_id,
                domain=self._domain.value,
                provider=result.provider,
                capability=result.capability,
                success=True,
                latency_ms=float(result.meta.get("latency_ms", 0.0)),
                source=result.source or ResultSource.API.value,
                attempt=result.attempt,
                fallback_from=result.fallback_from,
                timestamp=self._clock(),
            )
        )

    async def _emit_failure(
        self,
        request_id: str,
        code: str,
        capability: str,
        error: GatewayError,
        fallback_from: str | None,
    ) -> None:
        if isinstance(error, ProviderError):
            kind, attempt = error.kind.value, error.attempts
        elif isinstance(error, RateLimitExceededError):
            kind, attempt = "rate_limited", 0
        elif isinstance(error, CircuitOpenError):
            kind, attempt = "circuit_open", 0
        else:
            kind, attempt = error.code.lower(), 0
        await self._emit(
            DispatchEvent(
                request_id=request_id,
                domain=self._domain.value,
                provider=code,
                capability=capability,
                success=False,
                attempt=attempt,
                error_kind=kind,
                error=error.message,
                fallback_from=fallback_from,
                timestamp=self._clock(),
            )
        )

    async def _emit(self, event: DispatchEvent) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.emit(event)
        except Exception as exc:
            logger.error(
                "dispatch_event_sink_failed",
                provider=event.provider,
                error=str(exc),
                exc_type=type(exc).__name__,
            )

    # ── Discovery ────────────────────────────────────────────
    def reload_providers(self) -> list[ProviderMetadata]:
        """Re-read the registry, keeping providers of this gateway's domain."""
        self._providers = {
            meta.code: meta
            for meta in self._registry.list()
            if meta.domain == self._domain.value
        }
        self._executors = {
            code: ex for code, ex in self._executors.items() if code in self._providers
        }
        self._selector.update_providers(self._providers)
        logger.info(
            "providers_discovered",
            gateway=self._domain.value,
            providers=sorted(self._providers),
        )
        return self.available_providers()

    def available_providers(self) -> list[ProviderMetadata]:
        return sorted(self._providers.values(), key=lambda m: (m.priority, m.code))

    def has_provider(self, code: str) -> bool:
        return code in self._providers

    # ── Health & statistics observation ──────────────────────
    async def get_provider_health(self) -> dict[str, dict[str, Any]]:
        report: dict[str, dict[str, Any]] = {}
        for code, health in (await self._breaker.all_health(sorted(self._providers))).items():
            entry = health.to_dict()
            entry["healthy"] = await self._breaker.is_healthy(code)
            entry["rate_limit_remaining"] = await self._limiter.remaining(code)
            report[code] = entry
        return report

    async def get_performance_metrics(self) -> list[dict[str, Any]]:
        return [metric.to_dict() for metric in await self._recorder.all_metrics()]

    async def get_statistics(self) -> dict[str, Any]:
        health = await self._breaker.all_health(self._providers)
        healthy = [code for code in health if await self._breaker.is_healthy(code)]
        open_circuits = [
            code for code, h in health.items() if h.status == CircuitState.OPEN
        ]
        return {
            "domain": self._domain.value,
            "total_providers": len(self._providers),
            "healthy_providers": len(healthy),
            "open_circuits": sorted(open_circuits),
            "default_provider": self._selector.default_provider,
            "cache_enabled": self._cache.enabled,
            "cache_ttl_seconds": self._cache.policy.ttl_seconds,
            **await self._recorder.totals(),
        }

    # ── Runtime configuration ────────────────────────────────
    def set_default_provider(self, code: str) -> None:
        if code not in self._providers:
            raise UnknownProviderError(code)
        self._selector.set_default_provider(code)

    def set_fallback_order(self, capability: str, codes: list[str]) -> None:
        self._selector.set_fallback_order(capability, codes)

    def set_cache_enabled(self, enabled: bool) -> None:
        self._cache.enabled = enabled

    def set_cache_ttl(self, ttl_seconds: float) -> None:
        self._cache.set_ttl(ttl_seconds)

    async def clear_cache(self) -> int:
        return await self._cache.clear()

    async def reset_provider(self, code: str) -> None:
        """Clear the circuit breaker and rate window of one provider."""
        if code not in self._providers:
            raise UnknownProviderError(code)
        await self._breaker.reset(code)
        await self._limiter.reset(code)
        logger.info("provider_admin_reset", provider=code, gateway=self._domain.value)

    async def close(self) -> None:
        for executor in self._executors.values():
            await executor.close()
        self._executors.clear()
