"""Prometheus metrics for the provider gateway."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


# ── Dispatch metrics ─────────────────────────────────────────
DISPATCH_OUTCOMES = Counter(
    "gateway_dispatch_outcomes_total",
    "Provider outcomes seen by the gateway",
    ["domain", "provider", "capability", "outcome", "source"],
)

DISPATCH_LATENCY = Histogram(
    "gateway_provider_latency_seconds",
    "Provider call latency",
    ["domain", "provider", "capability"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# ── Gate metrics ─────────────────────────────────────────────
GATE_REJECTIONS = Counter(
    "gateway_gate_rejections_total",
    "Calls refused by the rate limiter or circuit breaker",
    ["domain", "provider", "reason"],
)

FALLBACKS = Counter(
    "gateway_fallbacks_total",
    "Successful dispatches served by a fallback provider",
    ["domain", "capability", "from_provider", "to_provider"],
)
