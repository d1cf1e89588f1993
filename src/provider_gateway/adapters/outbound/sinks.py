"""Dispatch event sinks implementing EventSink.

Every provider outcome the gateway observes is handed to a sink.  Sinks are
write-only; the composite fans an event out to several of them.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Sequence

import structlog

from provider_gateway.ports.outbound import EventSink
from provider_gateway.shared.observability.metrics import (
    DISPATCH_LATENCY,
    DISPATCH_OUTCOMES,
    FALLBACKS,
    GATE_REJECTIONS,
)
from provider_gateway.shared.providers.types import DispatchEvent, ResultSource

logger = structlog.get_logger(__name__)

_GATE_KINDS = frozenset({"rate_limited", "circuit_open"})


class StructlogEventSink(EventSink):
    """Writes each event as one structured log line."""

    async def emit(self, event: DispatchEvent) -> None:
        fields = event.to_dict()
        if event.success:
            logger.info("dispatch_event", **fields)
        else:
            logger.warning("dispatch_event", **fields)


class PrometheusEventSink(EventSink):
    """Feeds the Prometheus dispatch, latency and rejection series."""

    async def emit(self, event: DispatchEvent) -> None:
        DISPATCH_OUTCOMES.labels(
            domain=event.domain,
            provider=event.provider,
            capability=event.capability,
            outcome=event.outcome,
            source=event.source,
        ).inc()
        if event.error_kind in _GATE_KINDS:
            GATE_REJECTIONS.labels(
                domain=event.domain,
                provider=event.provider,
                reason=event.error_kind,
            ).inc()
        if event.success and event.source == ResultSource.API.value:
            DISPATCH_LATENCY.labels(
                domain=event.domain,
                provider=event.provider,
                capability=event.capability,
            ).observe(event.latency_ms / 1000)
        if event.success and event.fallback_from:
            FALLBACKS.labels(
                domain=event.domain,
                capability=event.capability,
                from_provider=event.fallback_from,
                to_provider=event.provider,
            ).inc()


class InMemoryEventSink(EventSink):
    """Keeps the most recent events for diagnostics."""

    def __init__(self, maxlen: int = 500) -> None:
        self._events: deque[DispatchEvent] = deque(maxlen=maxlen)

    async def emit(self, event: DispatchEvent) -> None:
        self._events.append(event)

    def recent(self, limit: int | None = None, *, domain: str | None = None) -> list[DispatchEvent]:
        """Newest first."""
        events = [e for e in reversed(self._events) if domain is None or e.domain == domain]
        return events[:limit] if limit is not None else events

    def clear(self) -> None:
        self._events.clear()

    def __len__(self) -> int:
        return len(self._events)


class CompositeEventSink(EventSink):
    """Fan-out to multiple sinks; one failing sink never blocks the others."""

    def __init__(self, sinks: Sequence[EventSink]) -> None:
        self._sinks = list(sinks)

    async def emit(self, event: DispatchEvent) -> None:
        results = await asyncio.gather(
            *(sink.emit(event) for sink in self._sinks),
            return_exceptions=True,
        )
        for i, result in enumerate(results):
            if isinstance(result, Exception):
                logger.error(
                    "event_sink_error",
                    sink=type(self._sinks[i]).__name__,
                    request_id=event.request_id,
                    error=str(result),
                )
