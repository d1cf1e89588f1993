"""Process wiring: builds the store, registry, sinks and one gateway per domain.

One container per process holds the shared state store, the provider
registry, the event sinks and one ``Gateway`` per domain.  FastAPI route
handlers reach it through ``request.app.state.container``.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Awaitable, Callable

import structlog

from provider_gateway.adapters.outbound.cache import build_state_store
from provider_gateway.adapters.outbound.executors import HttpExecutor
from provider_gateway.adapters.outbound.registry import StaticProviderRegistry
from provider_gateway.adapters.outbound.sinks import (
    CompositeEventSink,
    InMemoryEventSink,
    PrometheusEventSink,
    StructlogEventSink,
)
from provider_gateway.application.services import AiGateway, MessageGateway, PaymentGateway
from provider_gateway.config import HttpProviderConfig, Settings, get_settings
from provider_gateway.domain.enums import GatewayDomain
from provider_gateway.domain.exceptions import UnknownGatewayError
from provider_gateway.ports.outbound import EventSink, ProviderRegistry, StateStore
from provider_gateway.shared.providers.gateway import Gateway
from provider_gateway.shared.providers.types import ProviderMetadata

logger = structlog.get_logger(__name__)


# ── Settings ─────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_cached_settings() -> Settings:
    return get_settings()


# ── Registry ─────────────────────────────────────────────────
def build_registry(settings: Settings) -> StaticProviderRegistry:
    """Register every configured HTTP provider (executors are built lazily)."""
    registry = StaticProviderRegistry()
    for cfg in settings.http_providers:
        registry.register(
            ProviderMetadata(
                code=cfg.code,
                domain=cfg.domain.value,
                capabilities=frozenset(cfg.capabilities),
                priority=cfg.priority,
                description=cfg.description,
            ),
            _http_factory(cfg),
        )
    return registry


def _http_factory(cfg: HttpProviderConfig) -> Callable[[], HttpExecutor]:
    def factory() -> HttpExecutor:
        return HttpExecutor(
            cfg.code,
            cfg.base_url,
            api_key=cfg.api_key,
            headers=cfg.headers,
            timeout=cfg.timeout_seconds,
        )

    return factory


# ── Container ────────────────────────────────────────────────
@dataclass
class GatewayContainer:
    """Everything the running service shares."""

    settings: Settings
    store: StateStore
    registry: ProviderRegistry
    events: InMemoryEventSink
    sink: EventSink
    gateways: dict[GatewayDomain, Gateway] = field(default_factory=dict)

    def gateway(self, domain: GatewayDomain | str) -> Gateway:
        try:
            return self.gateways[GatewayDomain(domain)]
        except (KeyError, ValueError) as exc:
            raise UnknownGatewayError(str(domain)) from exc

    @property
    def ai(self) -> AiGateway:
        return AiGateway(self.gateway(GatewayDomain.AI))

    @property
    def messaging(self) -> MessageGateway:
        return MessageGateway(self.gateway(GatewayDomain.MESSAGING))

    @property
    def payment(self) -> PaymentGateway:
        return PaymentGateway(self.gateway(GatewayDomain.PAYMENT))

    async def close(self) -> None:
        for gateway in self.gateways.values():
            await gateway.close()
        await self.store.close()
        logger.info("gateway_container_closed")


def build_container(
    settings: Settings | None = None,
    *,
    registry: ProviderRegistry | None = None,
    store: StateStore | None = None,
    extra_sinks: list[EventSink] | None = None,
    clock: Callable[[], float] = time.time,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> GatewayContainer:
    s = settings or get_cached_settings()
    store = store or build_state_store(
        s.state_store_url,
        max_connections=s.redis_max_connections,
        lock_timeout_seconds=s.store_lock_timeout_seconds,
    )
    registry = registry or build_registry(s)

    events = InMemoryEventSink(maxlen=s.event_buffer_size)
    sinks: list[EventSink] = [events, StructlogEventSink()]
    if s.prometheus_enabled:
        sinks.append(PrometheusEventSink())
    sinks.extend(extra_sinks or [])
    sink = CompositeEventSink(sinks)

    gateways = {
        domain: Gateway(
            s.gateway(domain),
            registry=registry,
            store=store,
            sink=sink,
            clock=clock,
            sleep=sleep,
        )
        for domain in GatewayDomain
    }
    logger.info(
        "gateway_container_built",
        store=type(store).__name__,
        providers=len(registry.list()),
    )
    return GatewayContainer(
        settings=s,
        store=store,
        registry=registry,
        events=events,
        sink=sink,
        gateways=gateways,
    )
