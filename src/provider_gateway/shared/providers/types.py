"""Core types for the provider gateway.

Every record that lives in the shared state store exposes ``to_dict`` /
``from_dict`` so it can travel as plain JSON between processes.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Mapping


class CircuitState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ResultSource(str, enum.Enum):
    """Where a dispatch result came from."""

    API = "api"
    CACHE = "cache"


@dataclass(frozen=True)
class ProviderMetadata:
    """Static description of a provider, owned by the registry.

    Attributes:
        code:         Unique identifier (e.g. "openai", "sendgrid").
        domain:       Gateway domain the provider belongs to ("ai", "messaging", "payment").
        capabilities: Capabilities the provider can execute.
        priority:     Lower = preferred when no fallback chain decides.
        description:  Free-form human description.
    """

    code: str
    domain: str
    capabilities: frozenset[str] = frozenset()
    priority: int = 10
    description: str = ""

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "domain": self.domain,
            "capabilities": sorted(self.capabilities),
            "priority": self.priority,
            "description": self.description,
        }


@dataclass
class ProviderHealth:
    """Circuit-breaker record for one provider."""

    provider_id: str
    status: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_at: float | None = None
    last_success_at: float | None = None
    opened_at: float | None = None
    probe_started_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "status": self.status.value,
            "failure_count": self.failure_count,
            "last_failure_at": self.last_failure_at,
            "last_success_at": self.last_success_at,
            "opened_at": self.opened_at,
            "probe_started_at": self.probe_started_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProviderHealth:
        return cls(
            provider_id=data["provider_id"],
            status=CircuitState(data.get("status", CircuitState.CLOSED.value)),
            failure_count=int(data.get("failure_count", 0)),
            last_failure_at=data.get("last_failure_at"),
            last_success_at=data.get("last_success_at"),
            opened_at=data.get("opened_at"),
            probe_started_at=data.get("probe_started_at"),
        )


@dataclass
class RateWindow:
    """Fixed-window request counter for one provider."""

    count: int = 0
    window_start: float = 0.0
    warned: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "window_start": self.window_start, "warned": self.warned}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RateWindow:
        return cls(
            count=int(data.get("count", 0)),
            window_start=float(data.get("window_start", 0.0)),
            warned=bool(data.get("warned", False)),
        )


@dataclass
class PerformanceMetric:
    """Running aggregates for a (provider, capability) pair."""

    provider_id: str
    capability: str
    total_calls: int = 0
    success_calls: int = 0
    fail_calls: int = 0
    rejected_calls: int = 0
    total_latency_ms: float = 0.0
    last_updated: float | None = None

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.total_calls if self.total_calls else 0.0

    @property
    def success_rate(self) -> float:
        return self.success_calls / self.total_calls if self.total_calls else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "capability": self.capability,
            "total_calls": self.total_calls,
            "success_calls": self.success_calls,
            "fail_calls": self.fail_calls,
            "rejected_calls": self.rejected_calls,
            "total_latency_ms": self.total_latency_ms,
            "avg_latency_ms": float(f"{self.avg_latency_ms:.2f}"),
            "success_rate": float(f"{self.success_rate:.4f}"),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PerformanceMetric:
        return cls(
            provider_id=data["provider_id"],
            capability=data["capability"],
            total_calls=int(data.get("total_calls", 0)),
            success_calls=int(data.get("success_calls", 0)),
            fail_calls=int(data.get("fail_calls", 0)),
            rejected_calls=int(data.get("rejected_calls", 0)),
            total_latency_ms=float(data.get("total_latency_ms", 0.0)),
            last_updated=data.get("last_updated"),
        )


@dataclass
class ProviderResponse:
    """What an executor hands back on success."""

    output: Any = None
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Any) -> ProviderResponse:
        """Accept either a ``ProviderResponse`` or an ``{output, meta}`` mapping."""
        if isinstance(value, ProviderResponse):
            return value
        if isinstance(value, Mapping) and ("output" in value or "meta" in value):
            return cls(output=value.get("output"), meta=dict(value.get("meta") or {}))
        return cls(output=value)


@dataclass
class DispatchResult:
    """Outcome of a single ``Gateway.dispatch`` call. Transient."""

    success: bool
    provider: str
    capability: str
    attempt: int = 1
    output: Any = None
    meta: dict[str, Any] = field(default_factory=dict)
    fallback_from: str | None = None
    request_id: str = ""

    @property
    def source(self) -> str | None:
        return self.meta.get("source")

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "provider": self.provider,
            "capability": self.capability,
            "attempt": self.attempt,
            "output": self.output,
            "meta": dict(self.meta),
            "fallback_from": self.fallback_from,
            "request_id": self.request_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DispatchResult:
        return cls(
            success=bool(data["success"]),
            provider=data["provider"],
            capability=data["capability"],
            attempt=int(data.get("attempt", 1)),
            output=data.get("output"),
            meta=dict(data.get("meta") or {}),
            fallback_from=data.get("fallback_from"),
            request_id=data.get("request_id", ""),
        )


@dataclass(frozen=True)
class DispatchEvent:
    """Structured record of one provider outcome, sent to the observability sink."""

    request_id: str
    domain: str
    provider: str
    capability: str
    success: bool
    latency_ms: float = 0.0
    source: str = ResultSource.API.value
    attempt: int = 0
    error_kind: str | None = None
    error: str | None = None
    fallback_from: str | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def outcome(self) -> str:
        if self.success:
            return "success"
        return self.error_kind or "failure"

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "domain": self.domain,
            "provider": self.provider,
            "capability": self.capability,
            "success": self.success,
            "latency_ms": self.latency_ms,
            "source": self.source,
            "attempt": self.attempt,
            "error_kind": self.error_kind,
            "error": self.error,
            "fallback_from": self.fallback_from,
            "timestamp": self.timestamp,
        }
