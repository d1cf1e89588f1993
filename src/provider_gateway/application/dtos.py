"""Data Transfer Objects — Pydantic models for API boundaries."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════
#  Common
# ═══════════════════════════════════════════════════════════════
class ErrorResponse(BaseModel):
    code: str
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    environment: str = "development"
    services: dict[str, str] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════
#  Gateways
# ═══════════════════════════════════════════════════════════════
class ProviderResponseDTO(BaseModel):
    code: str
    domain: str
    capabilities: list[str]
    priority: int
    description: str = ""


class DispatchRequest(BaseModel):
    capability: str = Field(..., min_length=1, max_length=100)
    payload: dict[str, Any] = Field(default_factory=dict)
    provider: str | None = None


class DispatchResponse(BaseModel):
    success: bool
    provider: str
    capability: str
    attempt: int
    output: Any = None
    meta: dict[str, Any] = Field(default_factory=dict)
    fallback_from: str | None = None
    request_id: str


class FallbackOrderRequest(BaseModel):
    providers: list[str] = Field(..., min_length=1)


class CacheClearedResponse(BaseModel):
    domain: str
    removed: int
