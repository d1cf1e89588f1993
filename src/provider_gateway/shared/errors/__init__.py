"""Global exception handlers — map gateway errors to HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from provider_gateway.domain.exceptions import (
    GatewayDispatchError,
    GatewayError,
    NoHealthyProviderError,
    UnknownGatewayError,
    UnknownProviderError,
)

logger = structlog.get_logger(__name__)


def _body(exc: GatewayError) -> dict[str, str]:
    return {"code": exc.code, "message": exc.message}


def register_exception_handlers(app: FastAPI) -> None:
    """Register all gateway→HTTP exception mappings."""

    @app.exception_handler(NoHealthyProviderError)
    async def handle_no_healthy(request: Request, exc: NoHealthyProviderError) -> JSONResponse:
        logger.warning("no_healthy_provider_http", capability=exc.capability)
        return JSONResponse(status_code=503, content=_body(exc))

    @app.exception_handler(GatewayDispatchError)
    async def handle_dispatch(request: Request, exc: GatewayDispatchError) -> JSONResponse:
        logger.error(
            "dispatch_error_http",
            capability=exc.capability,
            attempted=exc.attempted,
            message=exc.message,
        )
        content: dict[str, object] = {**_body(exc), "attempted": exc.attempted}
        return JSONResponse(status_code=502, content=content)

    @app.exception_handler(UnknownGatewayError)
    async def handle_unknown_gateway(request: Request, exc: UnknownGatewayError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_body(exc))

    @app.exception_handler(UnknownProviderError)
    async def handle_unknown_provider(request: Request, exc: UnknownProviderError) -> JSONResponse:
        return JSONResponse(status_code=404, content=_body(exc))

    @app.exception_handler(GatewayError)
    async def handle_gateway(request: Request, exc: GatewayError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_body(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )
