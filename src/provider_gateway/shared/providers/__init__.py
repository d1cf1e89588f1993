"""Provider gateway building blocks.

Provides selection, fallback, circuit breaking, rate limiting, retries,
response caching and performance metrics for any outbound provider.
"""

from provider_gateway.shared.providers.types import (
    CircuitState,
    DispatchEvent,
    DispatchResult,
    PerformanceMetric,
    ProviderHealth,
    ProviderMetadata,
    ProviderResponse,
    RateWindow,
    ResultSource,
)
from provider_gateway.shared.providers.cache import CachePolicy, ResponseCache
from provider_gateway.shared.providers.circuit_breaker import CircuitBreaker
from provider_gateway.shared.providers.metrics import MetricsRecorder
from provider_gateway.shared.providers.rate_limiter import RateLimiter
from provider_gateway.shared.providers.retry import RetryExecutor
from provider_gateway.shared.providers.selector import ProviderSelector, Selection
from provider_gateway.shared.providers.gateway import Gateway

__all__ = [
    "CachePolicy",
    "CircuitBreaker",
    "CircuitState",
    "DispatchEvent",
    "DispatchResult",
    "Gateway",
    "MetricsRecorder",
    "PerformanceMetric",
    "ProviderHealth",
    "ProviderMetadata",
    "ProviderResponse",
    "ProviderSelector",
    "RateLimiter",
    "RateWindow",
    "ResponseCache",
    "ResultSource",
    "RetryExecutor",
    "Selection",
]
