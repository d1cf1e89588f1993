"""Circuit breaker: isolates a failing provider until it has had time to recover.

State machine:
    CLOSED    → (N consecutive failures)  → OPEN
    OPEN      → (timeout expires)         → HALF_OPEN   (on the next call)
    HALF_OPEN → (probe succeeds)          → CLOSED
    HALF_OPEN → (probe fails)             → OPEN

Health records live in the shared state store; every transition is a
read-modify-write under the store's per-key lock.
"""

from __future__ import annotations

import time
from typing import Callable, Iterable

import structlog

from provider_gateway.domain.exceptions import CircuitOpenError
from provider_gateway.ports.outbound import StateStore
from provider_gateway.shared.providers.types import CircuitState, ProviderHealth

logger = structlog.get_logger(__name__)


class CircuitBreaker:
    """Circuit breakers for every provider of one gateway."""

    def __init__(
        self,
        store: StateStore,
        *,
        namespace: str,
        failure_threshold: int = 5,
        timeout_seconds: float = 300.0,
        state_ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._namespace = namespace
        self._failure_threshold = failure_threshold
        self._timeout = timeout_seconds
        self._ttl = state_ttl_seconds
        self._clock = clock

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def _key(self, code: str) -> str:
        return f"{self._namespace}:health:{code}"

    async def get_health(self, code: str) -> ProviderHealth:
        data = await self._store.get(self._key(code))
        return ProviderHealth.from_dict(data) if data else ProviderHealth(provider_id=code)

    async def all_health(self, codes: Iterable[str]) -> dict[str, ProviderHealth]:
        return {code: await self.get_health(code) for code in codes}

    async def is_healthy(self, code: str) -> bool:
        """True unless the circuit is open and still cooling down."""
        health = await self.get_health(code)
        if health.status != CircuitState.OPEN:
            return True
        return self._elapsed(health.opened_at) >= self._timeout

    async def before_call(self, code: str) -> ProviderHealth:
        """Gate a call through the circuit.

        Raises:
            CircuitOpenError: while the circuit is open, or while another
                half-open probe is still in flight.
        """
        key = self._key(code)
        async with self._store.lock(key):
            health = await self.get_health(code)
            now = self._clock()

            if health.status == CircuitState.OPEN:
                elapsed = self._elapsed(health.opened_at)
                if elapsed < self._timeout:
                    raise CircuitOpenError(code, retry_after=self._timeout - elapsed)
                health.status = CircuitState.HALF_OPEN
                health.probe_started_at = now
                await self._save(health)
                logger.info(
                    "circuit_breaker_half_open",
                    provider=code,
                    elapsed_s=round(elapsed, 1),
                )

            elif health.status == CircuitState.HALF_OPEN:
                probe_age = self._elapsed(health.probe_started_at)
                if probe_age < self._timeout:
                    raise CircuitOpenError(code, retry_after=self._timeout - probe_age)
                # Abandoned probe: take it over
                health.probe_started_at = now
                await self._save(health)
                logger.info("circuit_breaker_probe_taken_over", provider=code)

            return health

    async def record_success(self, code: str) -> None:
        """Close the circuit and clear the failure count."""
        async with self._store.lock(self._key(code)):
            health = await self.get_health(code)
            prev = health.status
            health.status = CircuitState.CLOSED
            health.failure_count = 0
            health.last_success_at = self._clock()
            health.opened_at = None
            health.probe_started_at = None
            await self._save(health)
            if prev != CircuitState.CLOSED:
                logger.info(
                    "circuit_breaker_closed",
                    provider=code,
                    previous_state=prev.value,
                )

    async def record_failure(self, code: str) -> None:
        """Count a failure; trips the circuit at the threshold or from half-open."""
        async with self._store.lock(self._key(code)):
            health = await self.get_health(code)
            now = self._clock()
            health.failure_count += 1
            health.last_failure_at = now

            if health.status == CircuitState.HALF_OPEN:
                health.status = CircuitState.OPEN
                health.opened_at = now
                health.probe_started_at = None
                logger.warning(
                    "circuit_breaker_reopened",
                    provider=code,
                    failures=health.failure_count,
                )
            elif (
                health.status == CircuitState.CLOSED
                and health.failure_count >= self._failure_threshold
            ):
                health.status = CircuitState.OPEN
                health.opened_at = now
                logger.warning(
                    "circuit_breaker_opened",
                    provider=code,
                    failures=health.failure_count,
                    timeout_s=self._timeout,
                )
            await self._save(health)

    async def reset(self, code: str) -> None:
        """Put the circuit back to CLOSED with no failures on record."""
        async with self._store.lock(self._key(code)):
            await self._save(ProviderHealth(provider_id=code))
        logger.info("circuit_breaker_force_reset", provider=code)

    # ── Internals ────────────────────────────────────────────
    def _elapsed(self, since: float | None) -> float:
        if since is None:
            return float("inf")
        return self._clock() - since

    async def _save(self, health: ProviderHealth) -> None:
        await self._store.set(
            self._key(health.provider_id), health.to_dict(), ttl_seconds=self._ttl
        )
