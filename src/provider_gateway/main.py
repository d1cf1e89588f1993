"""ASGI entry point for the provider gateway service.

Assembles routers, exception handlers, and lifecycle hooks.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from provider_gateway import __version__
from provider_gateway.adapters.inbound.rest.routers import gateways_router, health_router
from provider_gateway.config import Settings, get_settings
from provider_gateway.dependencies import GatewayContainer, build_container
from provider_gateway.shared.errors import register_exception_handlers
from provider_gateway.shared.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging on startup; close executors and the store on shutdown."""
    settings: Settings = app.state.settings
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs or settings.is_production,
    )
    logger.info(
        "application_starting",
        env=settings.app_env.value,
        store=type(app.state.container.store).__name__,
    )
    yield
    # Shutdown: close executors and the state store
    await app.state.container.close()
    logger.info("application_shutdown")


def create_app(
    settings: Settings | None = None,
    container: GatewayContainer | None = None,
) -> FastAPI:
    """Build the FastAPI app around a gateway container."""
    settings = settings or (container.settings if container else get_settings())

    app = FastAPI(
        title="Provider Gateway",
        description=(
            "Resilient outbound gateway for AI, messaging and payment providers. "
            "Exposes provider health, performance metrics, recent dispatch events "
            "and admin controls for each gateway."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Store settings and the container in app state for lifecycle access
    app.state.settings = settings
    app.state.container = container or build_container(settings)

    # ── Exception handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── REST routers (versioned) ─────────────────────────────
    api_v1 = "/api/v1"
    app.include_router(health_router, prefix=api_v1)
    app.include_router(gateways_router, prefix=api_v1)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {
            "message": "Provider Gateway is running",
            "docs": "/docs",
            "health": "/api/v1/health",
        }

    return app


# Uvicorn entry-point
app = create_app()
