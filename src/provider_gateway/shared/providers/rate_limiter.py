"""Rate limiter — fixed-window request budget per provider.

The window lives in the shared state store so every gateway instance draws
from the same budget.  Each check-and-increment runs under the store's
per-key lock.
"""

from __future__ import annotations

import time
from typing import Callable

import structlog

from provider_gateway.domain.exceptions import RateLimitExceededError
from provider_gateway.ports.outbound import StateStore
from provider_gateway.shared.providers.types import RateWindow

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Per-provider fixed-window request counter."""

    def __init__(
        self,
        store: StateStore,
        *,
        namespace: str,
        window_seconds: float = 60.0,
        max_requests: int = 100,
        warning_threshold: float = 0.90,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._namespace = namespace
        self._window = window_seconds
        self._max = max_requests
        self._warning_thr = warning_threshold
        self._clock = clock

    @property
    def max_requests(self) -> int:
        return self._max

    @property
    def window_seconds(self) -> float:
        return self._window

    def _key(self, code: str) -> str:
        return f"{self._namespace}:rate:{code}"

    async def check_and_increment(self, code: str) -> RateWindow:
        """Count one request against ``code``'s window.

        Raises:
            RateLimitExceededError: if the window budget is spent.  The
                counter is not incremented in that case.
        """
        key = self._key(code)
        async with self._store.lock(key):
            now = self._clock()
            window = await self._load(key)
            if window is None or now - window.window_start >= self._window:
                window = RateWindow(count=0, window_start=now)

            if self._max > 0 and window.count >= self._max:
                retry_after = max(0.0, window.window_start + self._window - now)
                logger.warning(
                    "rate_limit_exceeded",
                    provider=code,
                    count=window.count,
                    limit=self._max,
                    retry_after_s=round(retry_after, 1),
                )
                raise RateLimitExceededError(code, retry_after=retry_after)

            window.count += 1
            self._check_warning(code, window)
            await self._store.set(key, window.to_dict(), ttl_seconds=self._window)
            return window

    async def get_window(self, code: str) -> RateWindow:
        window = await self._load(self._key(code))
        if window is None or self._clock() - window.window_start >= self._window:
            return RateWindow(count=0, window_start=self._clock())
        return window

    async def remaining(self, code: str) -> int | None:
        """Requests left in the current window (``None`` when unlimited)."""
        if self._max <= 0:
            return None
        window = await self.get_window(code)
        return max(0, self._max - window.count)

    async def reset(self, code: str) -> None:
        """Drop the current window (for admin override)."""
        await self._store.delete(self._key(code))
        logger.info("rate_limit_force_reset", provider=code)

    # ── Internals ────────────────────────────────────────────
    async def _load(self, key: str) -> RateWindow | None:
        data = await self._store.get(key)
        return RateWindow.from_dict(data) if data else None

    def _check_warning(self, code: str, window: RateWindow) -> None:
        """Emit one early warning per window when nearing the limit."""
        if self._max <= 0 or window.warned:
            return
        usage_pct = window.count / self._max
        if usage_pct >= self._warning_thr:
            window.warned = True
            logger.warning(
                "rate_limit_warning",
                provider=code,
                usage_pct=float(f"{(usage_pct * 100):.1f}"),
                requests_used=window.count,
                limit=self._max,
            )
