"""REST API routers — diagnostics and admin surface for the gateways."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from provider_gateway import __version__
from provider_gateway.application.dtos import (
    CacheClearedResponse,
    DispatchRequest,
    DispatchResponse,
    FallbackOrderRequest,
    HealthResponse,
    ProviderResponseDTO,
)
from provider_gateway.dependencies import GatewayContainer
from provider_gateway.shared.providers.gateway import Gateway


def _container(request: Request) -> GatewayContainer:
    return request.app.state.container  # type: ignore[no-any-return]


def _gateway(request: Request, domain: str) -> Gateway:
    return _container(request).gateway(domain)


# ═══════════════════════════════════════════════════════════════
#  Health
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> Any:
    container = _container(request)
    store_ok = await container.store.health_check()
    body = HealthResponse(
        status="ok" if store_ok else "degraded",
        version=__version__,
        environment=container.settings.app_env.value,
        services={"state_store": "connected" if store_ok else "disconnected"},
    )
    if not store_ok:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body


@health_router.get("/metrics")
async def prometheus_metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# ═══════════════════════════════════════════════════════════════
#  Gateways
# ═══════════════════════════════════════════════════════════════
gateways_router = APIRouter(prefix="/gateways", tags=["Gateways"])


@gateways_router.get("/{domain}/providers", response_model=list[ProviderResponseDTO])
async def list_providers(domain: str, request: Request) -> list[dict[str, Any]]:
    """Providers discovered for this gateway, in priority order."""
    return [meta.to_dict() for meta in _gateway(request, domain).available_providers()]


@gateways_router.get("/{domain}/health")
async def provider_health(domain: str, request: Request) -> dict[str, dict[str, Any]]:
    """Circuit state and rate budget for every discovered provider."""
    return await _gateway(request, domain).get_provider_health()


@gateways_router.get("/{domain}/metrics")
async def performance_metrics(domain: str, request: Request) -> list[dict[str, Any]]:
    return await _gateway(request, domain).get_performance_metrics()


@gateways_router.get("/{domain}/statistics")
async def statistics(domain: str, request: Request) -> dict[str, Any]:
    return await _gateway(request, domain).get_statistics()


@gateways_router.get("/{domain}/events")
async def recent_events(
    domain: str,
    request: Request,
    limit: int = Query(50, ge=1, le=500),
) -> list[dict[str, Any]]:
    """Most recent dispatch events for this gateway, newest first."""
    gateway = _gateway(request, domain)
    events = _container(request).events.recent(limit, domain=gateway.domain.value)
    return [event.to_dict() for event in events]


@gateways_router.post("/{domain}/providers/{code}/reset")
async def reset_provider(domain: str, code: str, request: Request) -> dict[str, str]:
    """Admin: reset circuit breaker and rate window for a provider."""
    await _gateway(request, domain).reset_provider(code)
    return {"status": "reset", "domain": domain, "provider": code}


@gateways_router.put("/{domain}/fallback/{capability}")
async def set_fallback_order(
    domain: str,
    capability: str,
    body: FallbackOrderRequest,
    request: Request,
) -> dict[str, Any]:
    gateway = _gateway(request, domain)
    gateway.set_fallback_order(capability, body.providers)
    return {"capability": capability, "providers": gateway.selector.fallback_chain(capability)}


@gateways_router.delete("/{domain}/cache", response_model=CacheClearedResponse)
async def clear_cache(domain: str, request: Request) -> CacheClearedResponse:
    removed = await _gateway(request, domain).clear_cache()
    return CacheClearedResponse(domain=domain, removed=removed)


@gateways_router.post("/{domain}/dispatch", response_model=DispatchResponse)
async def dispatch(domain: str, body: DispatchRequest, request: Request) -> dict[str, Any]:
    result = await _gateway(request, domain).dispatch(body.capability, body.payload, body.provider)
    return result.to_dict()
