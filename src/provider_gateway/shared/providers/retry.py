"""Retry executor — bounded retries with backoff against a single provider.

One ``execute_with_retry`` call is one "retry loop", driven by tenacity.
The circuit breaker hears about its outcome exactly once: a success as soon
as an attempt succeeds, a failure only after the loop is exhausted.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Mapping

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from provider_gateway.domain.exceptions import (
    ProviderError,
    ProviderTimeoutError,
    classify_error,
)
from provider_gateway.ports.outbound import ProviderExecutor
from provider_gateway.shared.expressions import Expression, compile_expression
from provider_gateway.shared.providers.circuit_breaker import CircuitBreaker
from provider_gateway.shared.providers.metrics import MetricsRecorder
from provider_gateway.shared.providers.types import (
    DispatchResult,
    ProviderResponse,
    ResultSource,
)

logger = structlog.get_logger(__name__)

BACKOFF_NAMES = frozenset({"attempt", "multiplier"})


class RetryExecutor:
    """Runs a provider call up to ``max_retries`` times."""

    def __init__(
        self,
        breaker: CircuitBreaker,
        recorder: MetricsRecorder,
        executor_lookup: Callable[[str], ProviderExecutor],
        *,
        max_retries: int = 3,
        backoff_multiplier: float = 2.0,
        backoff_formula: str | None = None,
        call_timeout: float | None = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._breaker = breaker
        self._recorder = recorder
        self._lookup = executor_lookup
        self._max_retries = max(1, max_retries)
        self._multiplier = backoff_multiplier
        self._formula: Expression | None = (
            compile_expression(backoff_formula, BACKOFF_NAMES) if backoff_formula else None
        )
        self._call_timeout = call_timeout
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-based)."""
        if self._formula is not None:
            value = self._formula.evaluate({"attempt": attempt, "multiplier": self._multiplier})
        else:
            value = self._multiplier ** (attempt - 1)
        return max(0.0, float(value))

    def should_retry(self, error: ProviderError, attempt: int) -> bool:
        if attempt >= self._max_retries:
            return False
        return error.retryable

    async def execute_with_retry(
        self,
        code: str,
        capability: str,
        payload: Mapping[str, Any],
        *,
        request_id: str = "",
    ) -> DispatchResult:
        """Call ``code`` until it succeeds or the retry budget is spent.

        Raises:
            ProviderError: the last (classified) failure once retries are
                exhausted or the error is not retryable.
        """
        executor = self._lookup(code)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=self._wait,
            retry=self._retry_allowed,
            before_sleep=self._log_backoff,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._call_once(
                        executor,
                        code,
                        capability,
                        payload,
                        attempt.retry_state.attempt_number,
                        request_id,
                    )
        except ProviderError:
            await self._breaker.record_failure(code)
            raise
        raise RuntimeError(f"Retry loop for {code!r} ended without an outcome")

    # ── tenacity hooks ───────────────────────────────────────
    def _wait(self, state: RetryCallState) -> float:
        return self.backoff_delay(state.attempt_number)

    def _retry_allowed(self, state: RetryCallState) -> bool:
        if state.outcome is None or not state.outcome.failed:
            return False
        error = state.outcome.exception()
        return isinstance(error, ProviderError) and self.should_retry(error, state.attempt_number)

    @staticmethod
    def _log_backoff(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        logger.info(
            "provider_retry_scheduled",
            provider=getattr(error, "provider", ""),
            attempt=state.attempt_number,
            delay_s=state.next_action.sleep if state.next_action else 0.0,
        )

    # ── Single attempt ───────────────────────────────────────
    async def _call_once(
        self,
        executor: ProviderExecutor,
        code: str,
        capability: str,
        payload: Mapping[str, Any],
        attempt: int,
        request_id: str,
    ) -> DispatchResult:
        log = logger.bind(provider=code, capability=capability, attempt=attempt)
        start = time.monotonic()
        try:
            raw = await self._call(executor, capability, payload, attempt, request_id)
        except Exception as exc:
            latency_ms = (time.monotonic() - start) * 1000
            error = classify_error(exc, code)
            error.attempts = attempt
            await self._recorder.record(code, capability, latency_ms, False)
            log.warning(
                "provider_request_failed",
                error=error.message,
                error_kind=error.kind.value,
                latency_ms=float(f"{latency_ms:.1f}"),
            )
            if error is exc:
                raise
            raise error from exc

        latency_ms = (time.monotonic() - start) * 1000
        await self._recorder.record(code, capability, latency_ms, True)
        await self._breaker.record_success(code)
        log.info("provider_request_success", latency_ms=float(f"{latency_ms:.1f}"))

        response = ProviderResponse.coerce(raw)
        meta = dict(response.meta)
        meta["source"] = ResultSource.API.value
        meta["latency_ms"] = float(f"{latency_ms:.2f}")
        return DispatchResult(
            success=True,
            provider=code,
            capability=capability,
            attempt=attempt,
            output=response.output,
            meta=meta,
            request_id=request_id,
        )

    async def _call(
        self,
        executor: ProviderExecutor,
        capability: str,
        payload: Mapping[str, Any],
        attempt: int,
        request_id: str,
    ) -> Any:
        call_payload = {**payload, "attempt": attempt, "request_id": request_id}
        if not self._call_timeout:
            return await executor.execute(capability, call_payload)
        try:
            return await asyncio.wait_for(
                executor.execute(capability, call_payload),
                timeout=self._call_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeoutError(f"Timeout after {self._call_timeout}s") from exc
