"""Gateway exception hierarchy.

All exceptions inherit from ``GatewayError`` so callers can catch the entire
family in one clause while still discriminating on subclass.  Top-level
callers normally only ever observe ``GatewayDispatchError``.
"""

from __future__ import annotations

import asyncio
from typing import Sequence

import httpx

from provider_gateway.domain.enums import ErrorKind


class GatewayError(Exception):
    """Base class for all gateway errors."""

    def __init__(self, message: str, *, code: str = "GATEWAY_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Provider failures ────────────────────────────────────────
class ProviderError(GatewayError):
    """Raised by an executor (or on its behalf) when a provider call fails."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        kind: ErrorKind = ErrorKind.GENERIC,
    ) -> None:
        self.provider = provider
        self.kind = kind
        self.attempts = 0
        super().__init__(message, code=f"PROVIDER_{kind.name}")

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class ProviderAuthError(ProviderError):
    def __init__(self, message: str = "Provider authentication failed", *, provider: str = "") -> None:
        super().__init__(message, provider=provider, kind=ErrorKind.AUTH)


class ProviderQuotaError(ProviderError):
    def __init__(self, message: str = "Provider quota exhausted", *, provider: str = "") -> None:
        super().__init__(message, provider=provider, kind=ErrorKind.QUOTA)


class ProviderTimeoutError(ProviderError):
    def __init__(self, message: str = "Provider call timed out", *, provider: str = "") -> None:
        super().__init__(message, provider=provider, kind=ErrorKind.TIMEOUT)


# ── Gate rejections ──────────────────────────────────────────
class RateLimitExceededError(GatewayError):
    def __init__(self, provider: str, *, retry_after: float = 0.0) -> None:
        self.provider = provider
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded for provider {provider!r}",
            code="RATE_LIMIT_EXCEEDED",
        )


class CircuitOpenError(GatewayError):
    def __init__(self, provider: str, *, retry_after: float = 0.0) -> None:
        self.provider = provider
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker open for provider {provider!r}",
            code="CIRCUIT_OPEN",
        )


class UnknownProviderError(GatewayError):
    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unknown provider {provider!r}", code="UNKNOWN_PROVIDER")


class UnknownGatewayError(GatewayError):
    def __init__(self, domain: str) -> None:
        self.domain = domain
        super().__init__(f"Unknown gateway domain {domain!r}", code="UNKNOWN_GATEWAY")


class ExpressionError(GatewayError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="INVALID_EXPRESSION")


# ── Terminal dispatch failures ───────────────────────────────
class GatewayDispatchError(GatewayError):
    """Every candidate for a capability failed; wraps the last underlying error."""

    def __init__(
        self,
        capability: str,
        last_error: Exception | None = None,
        *,
        attempted: Sequence[str] = (),
        message: str | None = None,
        code: str = "DISPATCH_FAILED",
    ) -> None:
        self.capability = capability
        self.last_error = last_error
        self.attempted = list(attempted)
        if message is None:
            detail = f": {last_error}" if last_error is not None else ""
            message = f"Dispatch of {capability!r} failed{detail}"
        super().__init__(message, code=code)
        self.__cause__ = last_error


class NoHealthyProviderError(GatewayDispatchError):
    def __init__(self, capability: str) -> None:
        super().__init__(
            capability,
            message=f"No healthy provider available for {capability!r}",
            code="NO_HEALTHY_PROVIDER",
        )


def classify_error(exc: BaseException, provider: str = "") -> ProviderError:
    """Normalise any exception raised by an executor into a typed ``ProviderError``."""
    if isinstance(exc, ProviderError):
        if not exc.provider:
            exc.provider = provider
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ProviderTimeoutError(str(exc) or "Provider call timed out", provider=provider)
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        message = f"HTTP {status_code} from provider"
        if status_code in (401, 403):
            return ProviderAuthError(message, provider=provider)
        if status_code == 402:
            return ProviderQuotaError(message, provider=provider)
        return ProviderError(message, provider=provider)
    if isinstance(exc, httpx.TransportError):
        return ProviderError(f"Transport error: {exc}", provider=provider)
    return ProviderError(f"{type(exc).__name__}: {exc}", provider=provider)
